"""Coin ledger: atomic reservation and exactly-once settlement."""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4
import weakref

from iconforge.core.config.models import SettlementPolicy
from iconforge.core.errors import LedgerError
from iconforge.core.ledger.models import (
    Balance,
    CostReservation,
    ReservationResult,
    SettlementOutcome,
)
from iconforge.core.ledger.store import BalanceStore

logger = logging.getLogger(__name__)

# A trial generation always costs exactly one trial coin
TRIAL_COST = 1


def insufficient_coins_message(amount: int) -> str:
    return (
        f"Insufficient coins. You need {amount} coin(s) to generate icons, "
        "or you can purchase coins in the store."
    )


class CoinLedger:
    """Reserves and settles coin costs against a BalanceStore.

    Paid coins are drawn first. A user without enough paid coins but with a
    trial coin pays one trial coin regardless of the cost. Refunds always go
    back to the bucket the reservation drew from.

    Reservations for the same user are serialized with a per-user lock, so
    two concurrent requests cannot both spend the same coins.

    Args:
        store: Balance store collaborator
        policy: Settlement policy for partially successful requests

    Example:
        >>> ledger = CoinLedger(InMemoryBalanceStore({"u": Balance(coins=2)}))
        >>> result = await ledger.reserve("u", 2, request_id="r1")
        >>> await ledger.settle(result.reservation, succeeded=0, total=2)
        <SettlementOutcome.REFUNDED: 'refunded'>
    """

    def __init__(
        self,
        store: BalanceStore,
        *,
        policy: SettlementPolicy = SettlementPolicy.FULL_CHARGE_ON_ANY_SUCCESS,
    ) -> None:
        self._store = store
        self.policy = policy
        # Held weakly: a lock lives only while some coroutine is using it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def reserve(
        self,
        user_id: str,
        amount: int,
        request_id: str | None = None,
    ) -> ReservationResult:
        """Atomically draw ``amount`` coins (or one trial coin) from the user.

        Args:
            user_id: User to charge
            amount: Coins required (at least 1)
            request_id: Owning request (generated if None)

        Returns:
            ReservationResult; ``success=False`` with an error message when the
            user cannot pay
        """
        if amount < 1:
            raise ValueError(f"Reservation amount must be >= 1, got {amount}")
        request_id = request_id or uuid4().hex

        async with self._lock_for(user_id):
            balance = await self._store.get(user_id)

            if balance.coins >= amount:
                await self._store.put(
                    user_id, Balance(balance.coins - amount, balance.trial_coins)
                )
                used_trial, drawn = False, amount
            elif balance.trial_coins >= TRIAL_COST:
                await self._store.put(
                    user_id, Balance(balance.coins, balance.trial_coins - TRIAL_COST)
                )
                used_trial, drawn = True, TRIAL_COST
            else:
                logger.info(
                    f"Reservation rejected for user {user_id}: needs {amount}, "
                    f"has {balance.coins} coins / {balance.trial_coins} trial"
                )
                return ReservationResult(success=False, error=insufficient_coins_message(amount))

        reservation = CostReservation(
            request_id=request_id,
            user_id=user_id,
            amount=drawn,
            used_trial_coins=used_trial,
        )
        logger.debug(
            f"Reserved {drawn} {'trial ' if used_trial else ''}coin(s) "
            f"from {user_id} for {request_id}"
        )
        return ReservationResult(success=True, used_trial_coins=used_trial, reservation=reservation)

    async def settle(
        self,
        reservation: CostReservation,
        *,
        succeeded: int,
        total: int,
    ) -> SettlementOutcome:
        """Settle a reservation once all of its attempts are finished.

        Zero successes always refunds in full. Otherwise the configured
        policy decides: keep everything, or refund the failed share
        (rounded down).

        Raises:
            LedgerError: If the reservation was already settled
        """
        if succeeded <= 0:
            return await self.refund(reservation)

        refund_amount = 0
        if self.policy is SettlementPolicy.PROPORTIONAL_REFUND and total > 0:
            refund_amount = reservation.amount * (total - succeeded) // total

        if refund_amount == 0:
            return self.keep(reservation)

        return await self.refund(reservation, refund_amount)

    def keep(self, reservation: CostReservation) -> SettlementOutcome:
        """Settle a reservation without refunding anything.

        Raises:
            LedgerError: If the reservation was already settled
        """
        self._mark_settled(reservation, SettlementOutcome.KEPT, 0)
        logger.debug(f"Kept {reservation.amount} coin(s) for {reservation.request_id}")
        return SettlementOutcome.KEPT

    async def refund(
        self,
        reservation: CostReservation,
        amount: int | None = None,
    ) -> SettlementOutcome:
        """Return coins to the bucket the reservation drew from.

        Args:
            reservation: Pending reservation
            amount: Coins to return (defaults to the full reservation)

        Raises:
            LedgerError: If the reservation was already settled or amount is invalid
        """
        amount = reservation.amount if amount is None else amount
        if not 0 < amount <= reservation.amount:
            raise LedgerError(f"Invalid refund amount {amount} for {reservation.request_id}")

        outcome = (
            SettlementOutcome.REFUNDED
            if amount == reservation.amount
            else SettlementOutcome.PARTIALLY_REFUNDED
        )
        # Mark before awaiting so a concurrent settle cannot slip in
        self._mark_settled(reservation, outcome, amount)

        async with self._lock_for(reservation.user_id):
            balance = await self._store.get(reservation.user_id)
            if reservation.used_trial_coins:
                updated = Balance(balance.coins, balance.trial_coins + amount)
            else:
                updated = Balance(balance.coins + amount, balance.trial_coins)
            await self._store.put(reservation.user_id, updated)

        logger.info(
            f"Refunded {amount} {'trial ' if reservation.used_trial_coins else ''}coin(s) "
            f"to {reservation.user_id} for {reservation.request_id}"
        )
        return outcome

    @staticmethod
    def _mark_settled(
        reservation: CostReservation,
        outcome: SettlementOutcome,
        refunded: int,
    ) -> None:
        if reservation.settled:
            raise LedgerError(f"Reservation {reservation.request_id} already settled")
        reservation.outcome = outcome
        reservation.refunded = refunded
