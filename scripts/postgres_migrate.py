import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the review request store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("REVIEW_REQUEST_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the review request store.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List migration files without connecting.",
    )
    args = parser.parse_args()

    from src.infrastructure.postgres_migrations import apply_postgres_migrations, load_migrations

    if args.dry_run:
        for migration in load_migrations(namespace="review_requests"):
            print(f"{migration.version} {migration.name} sha256={migration.checksum[:12]}")
        return 0

    if not args.dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED:review_requests")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        applied = apply_postgres_migrations(connection=connection, namespace="review_requests")
    print(f"Applied {len(applied)} migration(s): {', '.join(applied) or 'none pending'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
