"""
Declarative base shared by every ORM model.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    # Models annotate classic ``Column`` attributes without ``Mapped[]``.
    __allow_unmapped__ = True
