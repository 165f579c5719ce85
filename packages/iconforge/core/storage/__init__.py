"""Icon persistence."""

from iconforge.core.storage.base import IconStore
from iconforge.core.storage.filesystem import FileSystemIconStore, sanitize_path_component

__all__ = ["FileSystemIconStore", "IconStore", "sanitize_path_component"]
