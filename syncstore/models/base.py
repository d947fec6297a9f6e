"""Declarative bases for the main and per-folder databases."""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base for tables in the main database (folder registry)."""


class FolderBase(DeclarativeBase):
    """Base for tables living inside each folder's own database."""
