"""Ledger types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Balance:
    """A user's coin balance. Paid and trial coins are separate buckets."""

    coins: int = 0
    trial_coins: int = 0


class SettlementOutcome(str, Enum):
    """How a reservation was settled."""

    KEPT = "kept"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


@dataclass
class CostReservation:
    """Coins held for one request. Settled exactly once.

    Attributes:
        request_id: Owning request
        user_id: User the coins were drawn from
        amount: Coins actually drawn (1 when trial coins were used)
        used_trial_coins: Bucket the coins came from; refunds go back to it
        outcome: Settlement outcome, None while pending
        refunded: Coins returned at settlement
    """

    request_id: str
    user_id: str
    amount: int
    used_trial_coins: bool
    outcome: SettlementOutcome | None = None
    refunded: int = 0

    @property
    def settled(self) -> bool:
        return self.outcome is not None


@dataclass(frozen=True)
class ReservationResult:
    """Result of a reservation attempt."""

    success: bool
    used_trial_coins: bool = False
    error: str | None = None
    reservation: CostReservation | None = None
