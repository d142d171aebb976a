"""
Declarative base for the ORM models (SQLAlchemy 2.0 style)
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# shared metadata, used by create_tables and migrations
metadata = Base.metadata
