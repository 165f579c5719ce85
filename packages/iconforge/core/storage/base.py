"""Persistence collaborator interface."""

from __future__ import annotations

from typing import Protocol

from iconforge.core.generation.models import Icon


class IconStore(Protocol):
    """Receives finished icons once their request completes successfully."""

    async def save(self, request_id: str, user_id: str, icon: Icon) -> str:
        """Persist one icon.

        Args:
            request_id: Owning request
            user_id: Owning user
            icon: Icon to store

        Returns:
            Opaque storage path/identifier
        """
        ...
