"""
Catalog SQL.

Kept to a dialect subset that runs on PostgreSQL and on SQLite with an
attached `pg_catalog` database: no casts to reg* types, no ::, and OIDs are
compared as BIGINT so a driver may bind them as any integer width.
"""

TYPE_BY_NAME = """
    SELECT CAST(t.oid AS BIGINT), t.typname, n.nspname, t.typtype, CAST(t.typrelid AS BIGINT)
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
    WHERE t.typname = :type_name
      AND n.nspname = :schema_name
"""

TYPE_BY_OID = """
    SELECT CAST(t.oid AS BIGINT), t.typname, n.nspname, t.typtype, CAST(t.typrelid AS BIGINT)
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
    WHERE CAST(t.oid AS BIGINT) = :type_oid
"""

ENUM_LABELS = """
    SELECT e.enumlabel
    FROM pg_catalog.pg_enum e
    WHERE CAST(e.enumtypid AS BIGINT) = :type_oid
    ORDER BY e.enumsortorder
"""

COMPOSITE_FIELDS = """
    SELECT a.attname, CAST(a.atttypid AS BIGINT)
    FROM pg_catalog.pg_attribute a
    WHERE CAST(a.attrelid AS BIGINT) = :relation_oid
      AND a.attnum > 0
      AND NOT a.attisdropped
    ORDER BY a.attnum
"""
