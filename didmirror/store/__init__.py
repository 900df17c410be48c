"""Document store backends."""

from didmirror.store.filesystem import FilesystemStore
from didmirror.store.interface import DocumentStore
from didmirror.store.sql import SQLStore

__all__ = ["DocumentStore", "FilesystemStore", "SQLStore"]
