# surgibill/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy.engine import Engine

from surgibill.db.base import Base
from surgibill.db.session import engine as default_engine

# Import all models so metadata is complete
from surgibill.models import material, document  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine | None = None) -> None:
    eng = engine or default_engine
    Base.metadata.create_all(bind=eng)
    logger.info("Tables ready: %s", sorted(Base.metadata.tables))


def main() -> None:
    parser = argparse.ArgumentParser(description="Create surgibill tables")
    parser.add_argument("--drop", action="store_true",
                        help="drop all tables before creating them")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    if args.drop:
        Base.metadata.drop_all(bind=default_engine)
        logger.warning("All tables dropped")
    init_db()


if __name__ == "__main__":
    main()
