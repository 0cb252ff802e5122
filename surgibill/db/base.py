# surgibill/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All catalog and document tables inherit from this."""
    pass
