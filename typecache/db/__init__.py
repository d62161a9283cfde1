from .connection import DatabaseConnection, QueryResult, SQLAlchemyConnection

__all__ = ["DatabaseConnection", "QueryResult", "SQLAlchemyConnection"]
