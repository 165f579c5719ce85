"""Balance storage collaborator."""

from __future__ import annotations

from typing import Protocol

from iconforge.core.ledger.models import Balance


class BalanceStore(Protocol):
    """Read/write access to user balances.

    Provided by the auth/user collaborator. The ledger serializes access per
    user, so implementations need no locking of their own.
    """

    async def get(self, user_id: str) -> Balance:
        """Return the user's balance (zero balance for unknown users)."""
        ...

    async def put(self, user_id: str, balance: Balance) -> None:
        """Persist the user's balance."""
        ...


class InMemoryBalanceStore:
    """Dict-backed balance store for the CLI and tests.

    Example:
        >>> store = InMemoryBalanceStore({"alice": Balance(coins=5)})
    """

    def __init__(self, balances: dict[str, Balance] | None = None) -> None:
        self._balances: dict[str, Balance] = dict(balances or {})

    async def get(self, user_id: str) -> Balance:
        return self._balances.get(user_id, Balance())

    async def put(self, user_id: str, balance: Balance) -> None:
        self._balances[user_id] = balance

    def snapshot(self, user_id: str) -> Balance:
        """Synchronous read for reporting."""
        return self._balances.get(user_id, Balance())
