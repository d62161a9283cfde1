from .binder import BoundStatement, EncodedValue, Statement, StatementBinder

__all__ = ["BoundStatement", "EncodedValue", "Statement", "StatementBinder"]
