# surgibill/api/deps.py
from __future__ import annotations

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from surgibill.db.session import SessionLocal
from surgibill.services.catalog_cache import CachedMaterialCatalog
from surgibill.services.material_catalog import SqlMaterialCatalog


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_catalog(db: Session = Depends(get_db)) -> CachedMaterialCatalog:
    return CachedMaterialCatalog(SqlMaterialCatalog(db))
