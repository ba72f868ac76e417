import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

MIGRATIONS_ROOT = Path(__file__).with_name("postgres_migrations")


@dataclass(frozen=True)
class PostgresMigration:
    version: str
    name: str
    sql: str
    checksum: str


def load_migrations(*, namespace: str, root: Optional[Path] = None) -> list[PostgresMigration]:
    """Read ``NNNN_name.sql`` files of one namespace in version order."""
    namespace_path = (root or MIGRATIONS_ROOT) / namespace
    if not namespace_path.is_dir():
        raise RuntimeError(f"POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:{namespace}")
    migrations = []
    for sql_path in sorted(namespace_path.glob("*.sql")):
        version, _, name = sql_path.stem.partition("_")
        sql = sql_path.read_text(encoding="utf-8")
        migrations.append(
            PostgresMigration(
                version=version,
                name=name,
                sql=sql,
                checksum=hashlib.sha256(sql.encode("utf-8")).hexdigest(),
            )
        )
    return migrations


def apply_postgres_migrations(
    *, connection: Any, namespace: str, root: Optional[Path] = None
) -> list[str]:
    """Apply pending migrations under a namespace-scoped advisory lock.

    Returns the versions applied by this call. An already-applied migration whose
    file content changed fails with a checksum mismatch.
    """
    migrations = load_migrations(namespace=namespace, root=root)
    lock_key = migration_lock_key(namespace)
    connection.execute("SELECT pg_advisory_lock(%s::bigint)", (lock_key,))
    try:
        applied = _apply_pending(connection=connection, namespace=namespace, migrations=migrations)
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.execute("SELECT pg_advisory_unlock(%s::bigint)", (lock_key,))
    if applied:
        logger.info(
            "postgres.migrations.applied",
            extra={"extra_fields": {"namespace": namespace, "versions": applied}},
        )
    return applied


def migration_lock_key(namespace: str) -> int:
    digest = hashlib.sha256(f"migrations:{namespace}".encode("utf-8")).digest()[:8]
    return int.from_bytes(digest, byteorder="big", signed=True)


def split_sql_statements(sql: str) -> list[str]:
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [statement.strip() for statement in "\n".join(lines).split(";") if statement.strip()]


def _apply_pending(
    *, connection: Any, namespace: str, migrations: list[PostgresMigration]
) -> list[str]:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            namespace TEXT NOT NULL,
            version TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL,
            PRIMARY KEY (namespace, version)
        )
        """
    )
    rows = connection.execute(
        "SELECT version, checksum FROM schema_migrations WHERE namespace = %s",
        (namespace,),
    ).fetchall()
    recorded = {str(row["version"]): str(row["checksum"]) for row in rows}

    applied: list[str] = []
    for migration in migrations:
        checksum = recorded.get(migration.version)
        if checksum is not None:
            if checksum != migration.checksum:
                raise RuntimeError(
                    f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{migration.version}"
                )
            continue
        for statement in split_sql_statements(migration.sql):
            connection.execute(statement)
        connection.execute(
            """
            INSERT INTO schema_migrations (namespace, version, checksum, applied_at)
            VALUES (%s, %s, %s, %s)
            """,
            (
                namespace,
                migration.version,
                migration.checksum,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        applied.append(migration.version)
    connection.commit()
    return applied
