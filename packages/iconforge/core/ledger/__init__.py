"""Coin cost ledger."""

from iconforge.core.ledger.ledger import CoinLedger, insufficient_coins_message
from iconforge.core.ledger.models import (
    Balance,
    CostReservation,
    ReservationResult,
    SettlementOutcome,
)
from iconforge.core.ledger.store import BalanceStore, InMemoryBalanceStore

__all__ = [
    "Balance",
    "BalanceStore",
    "CoinLedger",
    "CostReservation",
    "InMemoryBalanceStore",
    "ReservationResult",
    "SettlementOutcome",
    "insufficient_coins_message",
]
