"""Declarative base for ledgerauth SQLAlchemy models."""

from sqlalchemy.orm import DeclarativeBase


class BaseEntity(DeclarativeBase):
    """Base class for all ledgerauth database entities."""
