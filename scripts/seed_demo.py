from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from feedback_engine.infrastructure.config import DatabaseConfig  # noqa: E402
from feedback_engine.infrastructure.db import (  # noqa: E402
    create_database_engine,
    create_session_factory,
    initialise_database,
)
from feedback_engine.infrastructure.uow import UnitOfWork  # noqa: E402
from feedback_engine.utils.seed import seed_demo_data  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create tables and seed demo templates/subjects")
    parser.add_argument("--backend", choices=["sqlite", "mysql"], default="sqlite")
    parser.add_argument("--sqlite-path", default="./feedback.db")
    parser.add_argument("--mysql-host")
    parser.add_argument("--mysql-port", type=int, default=3306)
    parser.add_argument("--mysql-user")
    parser.add_argument("--mysql-password", default="")
    parser.add_argument("--mysql-database")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.backend == "sqlite":
        config = DatabaseConfig(backend="sqlite", sqlite_path=args.sqlite_path)
    else:
        config = DatabaseConfig(
            backend="mysql",
            mysql_host=args.mysql_host,
            mysql_port=args.mysql_port,
            mysql_user=args.mysql_user,
            mysql_password=args.mysql_password,
            mysql_database=args.mysql_database,
        )

    engine = create_database_engine(config)
    initialise_database(engine)

    with UnitOfWork(create_session_factory(engine)).begin() as session:
        summary = seed_demo_data(session)

    for kind, (template_id, version) in summary["templates"].items():
        print(f"[seed] {kind}: template {template_id} at version {version}")
    print(f"[seed] subjects: {summary['subject_ids']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
