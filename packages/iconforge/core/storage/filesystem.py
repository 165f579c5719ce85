"""Filesystem-backed icon store."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import re

from iconforge.core.generation.models import Icon

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_path_component(value: str) -> str:
    """Make ``value`` safe to use as a single path segment."""
    cleaned = _UNSAFE.sub("_", value).strip("._")
    return cleaned or "_"


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class FileSystemIconStore:
    """Writes icons as PNG files under ``<root>/<user>/<request>/``.

    File names follow ``<provider>-gen<index>-<position>-<id>.png``.

    Args:
        root: Base directory
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    async def save(self, request_id: str, user_id: str, icon: Icon) -> str:
        path = (
            self.root
            / sanitize_path_component(user_id)
            / sanitize_path_component(request_id)
            / sanitize_path_component(
                f"{icon.provider}-gen{icon.generation_index}-{icon.position}-{icon.id}.png"
            )
        )
        await asyncio.to_thread(_write, path, icon.image)
        logger.debug(f"Stored icon {icon.id} at {path}")
        return str(path)
