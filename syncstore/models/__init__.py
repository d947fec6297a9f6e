"""SQLAlchemy ORM models for syncstore."""

from syncstore.models.base import Base, FolderBase
from syncstore.models.file import FileRow
from syncstore.models.folder import Folder
from syncstore.models.kv import KeyValue

__all__ = [
    "Base",
    "FileRow",
    "Folder",
    "FolderBase",
    "KeyValue",
]
