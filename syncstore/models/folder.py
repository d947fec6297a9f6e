"""Folder registry model."""

from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from syncstore.models.base import Base


class Folder(Base):
    """A known folder and the file name of its database."""

    __tablename__ = "folders"

    folder_id: Mapped[str] = mapped_column(Text, primary_key=True)
    database_name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
