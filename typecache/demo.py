"""
End-to-end demonstration of stale type OIDs and their recovery.

Creates a table with an enum column, inserts, then drops and recreates the
enum under the same name so its OID changes. The connection that cached the
old OID recovers on its next insert; a fresh connection never notices.
"""
import copy
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import Column
from sqlmodel import Field, Session, SQLModel, select

from typecache.binding.binder import Statement
from typecache.config import Config
from typecache.errors import TypeCacheError
from typecache.models.sa_types import EnumLabelString
from typecache.recovery.policy import RecoveryCounter
from typecache.session import TypedConnection, connect


class MyEnum(str, Enum):
    ONE = "one"
    TWO = "two"


class MyTable(SQLModel, table=True):
    __tablename__ = "my_table"

    a: int = Field(primary_key=True)
    b: Optional[MyEnum] = Field(default=None, sa_column=Column(EnumLabelString(MyEnum)))


INIT_SCHEMA = """
    DROP TABLE IF EXISTS my_table;
    DROP TYPE IF EXISTS my_enum;
    CREATE TYPE my_enum AS ENUM ('one', 'two');
    CREATE TABLE my_table (a INT4, b my_enum);
"""

# Same shape as before, but every OID involved is new
RECREATE_ENUM = """
    ALTER TABLE my_table DROP COLUMN b;
    DROP TYPE my_enum;
    CREATE TYPE my_enum AS ENUM ('one', 'two');
    ALTER TABLE my_table ADD COLUMN b my_enum DEFAULT 'one';
"""

INSERT_ROW = Statement.insert("my_table", {"a": None, "b": "my_enum"})


def list_rows(conn: TypedConnection) -> List[Tuple[int, Optional[MyEnum]]]:
    """List my_table through an SQLModel session bound to this very connection."""
    with Session(bind=conn.connection.sa_connection) as session:
        rows = session.exec(select(MyTable.a, MyTable.b).order_by(MyTable.a)).all()
    return [(a, b) for a, b in rows]


def run_demo(url: str, config: Optional[Config] = None) -> int:
    """
    Run the scenario against `url`. Returns a process exit code.

    Every step is committed, so the scenario behaves the same with savepoints
    enabled. A caller-supplied `on_recovery` hook still sees every event.
    """
    counter = RecoveryCounter()
    config = copy.copy(config) if config is not None else Config()
    user_hook = config.on_recovery

    def on_recovery(event):
        counter(event)
        if user_hook is not None:
            user_hook(event)

    config.on_recovery = on_recovery

    enum_classes = {"my_enum": MyEnum}
    conn1: Optional[TypedConnection] = None
    conn2: Optional[TypedConnection] = None
    failed = False
    try:
        print(f"connecting to: {url}")
        conn1 = connect(url, config, enum_classes=enum_classes)
        print("connected!")

        conn1.batch_execute(INIT_SCHEMA)
        conn1.commit()
        print("initialized schema")

        result = conn1.execute(INSERT_ROW, {"a": 0, "b": MyEnum.ONE})
        conn1.commit()
        print(f"inserted rows: {result.rowcount}")
        print(f"found rows: {list_rows(conn1)}")
        print(f"cached my_enum: oid={conn1.cache.lookup('my_enum').oid}, epoch={conn1.cache.epoch('my_enum')}")

        conn1.batch_execute(RECREATE_ENUM)
        conn1.commit()
        print("updated schema")

        # The first connection still holds the old OID; the retry path has to fix it
        try:
            result = conn1.execute(INSERT_ROW, {"a": 1, "b": MyEnum.ONE})
            conn1.commit()
            print(f"inserted rows after type change: {result.rowcount} "
                  f"(recoveries so far: {counter.recoveries})")
            print(f"cached my_enum: oid={conn1.cache.lookup('my_enum').oid}, epoch={conn1.cache.epoch('my_enum')}")
        except TypeCacheError as e:
            print(f"ERROR: second insert failed: {e}")
            failed = True

        print("establishing second connection")
        conn2 = connect(url, config, enum_classes=enum_classes)
        print("connected!")
        try:
            result = conn2.execute(INSERT_ROW, {"a": 2, "b": MyEnum.TWO})
            conn2.commit()
            print(f"insert on second connection worked: {result.rowcount}")
        except TypeCacheError as e:
            print(f"ERROR: third insert failed: {e}")
            failed = True

        print("contents of table after second insert (second conn):")
        print(f"rows: {list_rows(conn2)}")
        print("contents of table after second insert (first conn):")
        print(f"rows: {list_rows(conn1)}")

        typed = conn1.execute(Statement.select("my_table", ["a", "b"]))
        print(f"rows decoded by typecache (first conn): {typed.rows}")
    finally:
        for conn in (conn2, conn1):
            if conn is not None:
                conn.close()

    print(f"recoveries: {counter.recoveries}, persistent failures: {counter.failures}")
    return 1 if failed else 0
