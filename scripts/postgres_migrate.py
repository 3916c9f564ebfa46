import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the proposal workflow store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("PROPOSAL_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN. Defaults to PROPOSAL_POSTGRES_DSN.",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List bundled migration versions without connecting.",
    )
    args = parser.parse_args(argv)

    from src.infrastructure.postgres_migrations import apply_postgres_migrations, load_migrations

    if args.list:
        for migration in load_migrations(namespace="proposals"):
            print(f"{migration.version} {migration.sql_path.name} {migration.checksum[:12]}")
        return 0

    if not args.dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED:proposals")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        applied = apply_postgres_migrations(connection=connection, namespace="proposals")
    print(f"Applied {len(applied)} migration(s) for namespace=proposals: {', '.join(applied)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
