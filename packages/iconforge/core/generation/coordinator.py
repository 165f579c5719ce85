"""Request coordinator: validation, cost reservation, fan-out, and settlement.

One submitted request fans out into one attempt per (enabled provider,
generation round). Attempts run concurrently and independently; a failure
in one never affects another. Once every attempt has reached a terminal
state the request is aggregated, persisted, settled exactly once, and a
single terminal progress event is published.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from uuid import uuid4

from iconforge.core.config.models import GenerationConfig
from iconforge.core.errors import (
    DecompositionError,
    InsufficientCoinsError,
    ProviderError,
    ProviderTimeoutError,
    RequestValidationError,
)
from iconforge.core.generation.enhancer import PromptEnhancer
from iconforge.core.generation.models import (
    Attempt,
    AttemptStatus,
    ErrorCategory,
    GenerationRequest,
    GenerationResult,
    Icon,
    MoreIconsRequest,
    RequestStatus,
)
from iconforge.core.generation.prompts import PromptBuilder
from iconforge.core.generation.sanitizer import (
    categorize_error,
    is_temporary_failure,
    most_informative,
    sanitize,
)
from iconforge.core.generation.seeds import SeedManager
from iconforge.core.imaging.grid import GridDecomposer, grid_side
from iconforge.core.ledger.ledger import CoinLedger
from iconforge.core.ledger.models import CostReservation
from iconforge.core.progress.broadcaster import ProgressBroadcaster, Subscription
from iconforge.core.progress.events import EventType, ProgressEvent
from iconforge.core.providers.base import ImageProvider
from iconforge.core.storage.base import IconStore
from iconforge.core.utils.logging import get_logger

logger = logging.getLogger(__name__)

ALL_SUCCEEDED_MESSAGE = "All generations completed successfully across all enabled services"
ALL_DISABLED_MESSAGE = "All AI services are disabled in configuration"
ALL_UNAVAILABLE_MESSAGE = (
    "All AI services are temporarily unavailable. Your coins have been refunded. "
    "Please try again in a few minutes."
)
REFUNDED_SUFFIX = "Your coins have been refunded."

# Failure categories that mean "try again later" rather than "change the prompt"
_TRANSIENT_CATEGORIES = (ErrorCategory.RATE_LIMIT, ErrorCategory.TIMEOUT, ErrorCategory.CONNECTION)


def _partial_message(succeeded: list[Attempt]) -> str:
    labels = ", ".join(a.label for a in succeeded)
    return f"Generated {len(succeeded)} successful generation(s) across services: {labels}"


def _unavailable_message(provider: str) -> str:
    return (
        f"The {provider} service is temporarily unavailable. Your coins have been refunded. "
        "Please try again in a few minutes."
    )


@dataclass
class _RequestState:
    """Everything the coordinator tracks for one accepted request."""

    request_id: str
    request: GenerationRequest
    reservation: CostReservation
    base_seed: int
    attempts: list[Attempt]
    task: asyncio.Task[None] | None = None
    result: GenerationResult | None = None
    expiry: asyncio.TimerHandle | None = None
    stored_paths: list[str] = field(default_factory=list)

    @property
    def trial_mode(self) -> bool:
        return self.reservation.used_trial_coins


class RequestCoordinator:
    """Accepts generation requests and drives their attempts to completion.

    Each accepted request is reserved against the ledger once, fanned out
    across every enabled provider and generation round, and settled once
    after all attempts finish. Progress is published through the
    broadcaster; the final state stays queryable via :meth:`poll_status`
    for ``retention_seconds`` after the terminal event.

    Args:
        providers: Enabled providers keyed by name, in fan-out order
        ledger: Coin ledger collaborator
        broadcaster: Progress broadcaster
        decomposer: Grid decomposer
        store: Optional icon store; icons are persisted before the terminal event
        config: Generation configuration
        seeds: Seed manager (random base seeds unless the caller supplies one)
        prompts: Prompt builder
        enhancer: Optional prompt enhancer
        retention_seconds: How long a finished request stays queryable

    Example:
        >>> coordinator = RequestCoordinator(providers, ledger, broadcaster, GridDecomposer())
        >>> request_id = await coordinator.submit(GenerationRequest(user_id="u", theme="space"))
        >>> result = await coordinator.wait(request_id)
    """

    def __init__(
        self,
        providers: Mapping[str, ImageProvider],
        ledger: CoinLedger,
        broadcaster: ProgressBroadcaster,
        decomposer: GridDecomposer,
        *,
        store: IconStore | None = None,
        config: GenerationConfig | None = None,
        seeds: SeedManager | None = None,
        prompts: PromptBuilder | None = None,
        enhancer: PromptEnhancer | None = None,
        retention_seconds: float = 600.0,
    ) -> None:
        self.providers = dict(providers)
        self.ledger = ledger
        self.broadcaster = broadcaster
        self.decomposer = decomposer
        self.store = store
        self.config = config or GenerationConfig()
        self.seeds = seeds or SeedManager()
        self.prompts = prompts or PromptBuilder()
        self.enhancer = enhancer
        self.retention_seconds = retention_seconds

        limit = self.config.max_concurrent_attempts
        self._semaphore = asyncio.Semaphore(limit) if limit else None
        self._requests: dict[str, _RequestState] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def cost(request: GenerationRequest) -> int:
        """Coins reserved for a request: one per generation round."""
        return max(1, request.generations_per_provider)

    def validate_request(self, request: GenerationRequest) -> None:
        """Reject malformed requests before any coins are reserved.

        Raises:
            RequestValidationError: On a missing theme/reference, a bad grid
                size, too many rounds, too many descriptions, or no providers
        """
        if not request.has_theme and not request.has_reference_image:
            raise RequestValidationError("Either a theme or a reference image is required")

        count = request.icon_count
        if count > self.config.max_icon_count:
            raise RequestValidationError(
                f"icon_count {count} exceeds the maximum of {self.config.max_icon_count}"
            )
        try:
            grid_side(count)
        except ValueError as e:
            raise RequestValidationError(str(e)) from e

        if request.generations_per_provider > self.config.max_generations:
            raise RequestValidationError(
                f"generations_per_provider {request.generations_per_provider} exceeds "
                f"the maximum of {self.config.max_generations}"
            )

        limit = count * request.generations_per_provider
        if len(request.icon_descriptions) > limit:
            raise RequestValidationError(
                f"Got {len(request.icon_descriptions)} icon descriptions; at most {limit} allowed"
            )

        if not self.providers:
            raise RequestValidationError(ALL_DISABLED_MESSAGE)

    async def submit(self, request: GenerationRequest) -> str:
        """Accept a request and start its attempts in the background.

        Reserves the cost once, publishes an ``attempt_started`` event for
        every attempt, then returns without waiting for provider work.

        Returns:
            The request id

        Raises:
            RequestValidationError: If the request is malformed
            InsufficientCoinsError: If the user cannot pay
        """
        self.validate_request(request)

        request_id = uuid4().hex
        amount = self.cost(request)
        reservation_result = await self.ledger.reserve(request.user_id, amount, request_id)
        if not reservation_result.success or reservation_result.reservation is None:
            raise InsufficientCoinsError(
                reservation_result.error or "Insufficient coins", required=amount
            )
        reservation = reservation_result.reservation

        try:
            base_seed = self.seeds.base_seed(request.seed)
            attempts = [
                Attempt(
                    provider=name,
                    generation_index=index,
                    seed=SeedManager.attempt_seed(base_seed, index),
                )
                for name in self.providers
                for index in range(1, request.generations_per_provider + 1)
            ]
            state = _RequestState(
                request_id=request_id,
                request=request,
                reservation=reservation,
                base_seed=base_seed,
                attempts=attempts,
            )
            self.broadcaster.open(request_id, trial_mode=state.trial_mode)
            self._requests[request_id] = state
        except Exception:
            await self.ledger.refund(reservation)
            raise

        logger.info(
            f"Accepted request {request_id} from {request.user_id}: "
            f"{len(attempts)} attempt(s), cost {reservation.amount}"
            f"{' (trial)' if state.trial_mode else ''}, seed {base_seed}"
        )

        for attempt in attempts:
            attempt.advance(AttemptStatus.STARTED)
            self._publish_attempt(state, attempt, EventType.ATTEMPT_STARTED)

        state.task = asyncio.create_task(self._run(state), name=f"request-{request_id}")
        return request_id

    def subscribe(self, request_id: str) -> Subscription:
        """Live progress for a request; replaces any previous subscriber.

        Raises:
            KeyError: If the request is unknown or has expired
        """
        if not self.broadcaster.has_channel(request_id):
            raise KeyError(f"Unknown request {request_id}")
        return self.broadcaster.subscribe(request_id)

    def poll_status(self, request_id: str) -> GenerationResult:
        """Last known state of a request; ``not_found`` once it has expired."""
        state = self._requests.get(request_id)
        if state is None:
            return GenerationResult.not_found(request_id)
        if state.result is not None:
            return state.result

        last = self.broadcaster.last_event(request_id)
        return GenerationResult(
            request_id=request_id,
            status=RequestStatus.IN_PROGRESS,
            message=last.message if last else None,
            icons=[icon for a in state.attempts for icon in a.icons],
            attempts=[a.summary() for a in state.attempts],
            seed=state.base_seed,
            trial_mode=state.trial_mode,
        )

    async def wait(self, request_id: str) -> GenerationResult:
        """Block until a request finishes and return its final result.

        Raises:
            KeyError: If the request is unknown or has expired
        """
        state = self._requests.get(request_id)
        if state is None:
            raise KeyError(f"Unknown request {request_id}")
        if state.task is not None:
            await asyncio.shield(state.task)
        if state.result is None:
            raise RuntimeError(f"Request {request_id} finished without a result")
        return state.result

    def active_generations(self) -> dict[str, list[str]]:
        """Unfinished requests mapped to the labels of their unfinished attempts."""
        return {
            request_id: [a.label for a in state.attempts if not a.status.is_terminal]
            for request_id, state in self._requests.items()
            if state.result is None
        }

    async def shutdown(self) -> None:
        """Wait for in-flight requests, then drop all retained state."""
        tasks = [s.task for s in self._requests.values() if s.task is not None and not s.task.done()]
        if tasks:
            logger.info(f"Waiting for {len(tasks)} in-flight request(s)")
            await asyncio.gather(*tasks, return_exceptions=True)
        for request_id in list(self._requests):
            self._expire(request_id)

    async def generate_more(self, request: MoreIconsRequest) -> GenerationResult:
        """Generate a follow-up grid in the style of an earlier attempt.

        Uses image-to-image generation on the earlier composite with the
        earlier seed. Charges ``more_icons_cost`` coins; the charge is
        refunded only when the provider failure looks temporary.

        Raises:
            RequestValidationError: Unknown provider, bad grid size, or the
                original composite is not available
            InsufficientCoinsError: If the user cannot pay
        """
        provider = self.providers.get(request.provider)
        if provider is None:
            raise RequestValidationError(f"Provider {request.provider!r} is not enabled")
        if request.icon_count > self.config.max_icon_count:
            raise RequestValidationError(
                f"icon_count {request.icon_count} exceeds the maximum of {self.config.max_icon_count}"
            )

        original_image, seed = self._resolve_original(request)
        request_id = uuid4().hex

        reservation: CostReservation | None = None
        trial_mode = False
        if self.config.more_icons_cost > 0:
            reservation_result = await self.ledger.reserve(
                request.user_id, self.config.more_icons_cost, request_id
            )
            if not reservation_result.success or reservation_result.reservation is None:
                raise InsufficientCoinsError(
                    reservation_result.error or "Insufficient coins",
                    required=self.config.more_icons_cost,
                )
            reservation = reservation_result.reservation
            trial_mode = reservation.used_trial_coins

        attempt = Attempt(
            provider=request.provider, generation_index=request.generation_index, seed=seed
        )
        attempt.advance(AttemptStatus.STARTED)
        prompt = self.prompts.missing_icons_prompt(
            request.icon_descriptions, icon_count=request.icon_count
        )
        logger.info(
            f"More icons for {request.original_request_id} via {attempt.label} (request {request_id})"
        )

        try:
            try:
                composite = await asyncio.wait_for(
                    provider.generate_from_image(prompt, original_image, seed),
                    timeout=self.config.attempt_timeout_seconds,
                )
                payloads = await self.decomposer.decompose_async(composite, request.icon_count)
            except (ProviderError, DecompositionError, asyncio.TimeoutError) as e:
                return await self._more_failed(
                    request_id, request, attempt, reservation, e, categorize_error(e)
                )
            except Exception as e:
                logger.exception(f"More icons via {attempt.label} crashed")
                return await self._more_failed(
                    request_id, request, attempt, reservation, e, ErrorCategory.UNKNOWN
                )

            descriptions = list(request.icon_descriptions)
            attempt.composite_image = composite
            attempt.icons = [
                Icon(
                    position=position,
                    image=payload,
                    provider=request.provider,
                    generation_index=request.generation_index,
                    attempt_label=attempt.label,
                    description=(
                        descriptions[position]
                        if position < len(descriptions) and descriptions[position].strip()
                        else f"Generated Icon {position + 1}"
                    ),
                )
                for position, payload in enumerate(payloads)
            ]
            attempt.advance(AttemptStatus.SUCCEEDED)
            if reservation is not None:
                self.ledger.keep(reservation)
        finally:
            if reservation is not None and not reservation.settled:
                # Cancelled or crashed before settlement
                await self.ledger.refund(reservation)

        stored_paths = await self._persist(request_id, request.user_id, attempt.icons)
        message = f"Generated {len(attempt.icons)} more icon(s) with {request.provider}"
        return GenerationResult(
            request_id=request_id,
            status=RequestStatus.COMPLETED,
            message=message,
            icons=attempt.icons,
            attempts=[attempt.summary(message)],
            seed=seed,
            trial_mode=trial_mode,
            stored_paths=stored_paths,
        )

    async def _more_failed(
        self,
        request_id: str,
        request: MoreIconsRequest,
        attempt: Attempt,
        reservation: CostReservation | None,
        error: BaseException,
        category: ErrorCategory,
    ) -> GenerationResult:
        """Record a failed generate-more call and settle its reservation.

        Temporary failures are refunded; anything else keeps the charge.
        """
        attempt.error = str(error) or type(error).__name__
        attempt.error_category = category
        attempt.advance(AttemptStatus.FAILED)
        logger.warning(f"More icons via {attempt.label} failed: {attempt.error}")

        if is_temporary_failure(error):
            message = _unavailable_message(request.provider)
            if reservation is not None:
                await self.ledger.refund(reservation)
        else:
            message = sanitize(category)
            if reservation is not None:
                self.ledger.keep(reservation)

        return GenerationResult(
            request_id=request_id,
            status=RequestStatus.ERROR,
            message=message,
            attempts=[attempt.summary(message)],
            seed=attempt.seed,
            trial_mode=reservation.used_trial_coins if reservation else False,
            refunded=reservation.refunded if reservation else 0,
        )

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    async def _run(self, state: _RequestState) -> None:
        try:
            theme = await self._effective_theme(state.request)
            tasks = [
                asyncio.create_task(
                    self._run_attempt(state, attempt, theme), name=f"{state.request_id}-{attempt.label}"
                )
                for attempt in state.attempts
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            for attempt, outcome in zip(state.attempts, results, strict=True):
                if isinstance(outcome, BaseException) and not attempt.status.is_terminal:
                    logger.error(f"Attempt {attempt.label} crashed: {outcome}", exc_info=outcome)
                    self._fail_attempt(state, attempt, outcome, category=ErrorCategory.UNKNOWN)

            await self._finish(state)
        except Exception:
            logger.exception(f"Request {state.request_id} aborted")
            await self._abort(state)
        finally:
            if not state.reservation.settled:
                # Cancelled before settlement
                await self.ledger.refund(state.reservation)

    async def _effective_theme(self, request: GenerationRequest) -> str:
        theme = (request.theme or "").strip()
        wants_enhancement = request.enhance_prompt or self.config.enhance_prompts
        if not (wants_enhancement and self.enhancer and theme and not request.has_reference_image):
            return theme
        enhanced = await self.enhancer.enhance(theme)
        logger.debug(f"Enhanced theme {theme!r} -> {enhanced!r}")
        return enhanced

    async def _run_attempt(self, state: _RequestState, attempt: Attempt, theme: str) -> None:
        if self._semaphore is None:
            await self._execute_attempt(state, attempt, theme)
            return
        async with self._semaphore:
            await self._execute_attempt(state, attempt, theme)

    async def _execute_attempt(self, state: _RequestState, attempt: Attempt, theme: str) -> None:
        request = state.request
        # Elapsed time covers provider work only, not the wait for a concurrency slot
        attempt.restart_clock()
        try:
            composite = await asyncio.wait_for(
                self._call_provider(request, attempt, theme),
                timeout=self.config.attempt_timeout_seconds,
            )
            attempt.composite_image = composite
            attempt.advance(AttemptStatus.UPSCALING)
            self._publish_attempt(state, attempt, EventType.ATTEMPT_UPSCALING)

            payloads = await self.decomposer.decompose_async(composite, request.icon_count)
        except asyncio.TimeoutError:
            self._fail_attempt(
                state,
                attempt,
                ProviderTimeoutError(
                    f"Attempt exceeded {self.config.attempt_timeout_seconds}s",
                    provider=attempt.provider,
                ),
            )
            return
        except (ProviderError, DecompositionError) as e:
            self._fail_attempt(state, attempt, e)
            return
        except Exception as e:
            get_logger(__name__, request_id=state.request_id, attempt=attempt.label).exception(
                f"Attempt {attempt.label} for {state.request_id} crashed"
            )
            self._fail_attempt(state, attempt, e, category=ErrorCategory.UNKNOWN)
            return

        descriptions = request.slot_descriptions(attempt.generation_index)
        attempt.icons = [
            Icon(
                position=position,
                image=payload,
                provider=attempt.provider,
                generation_index=attempt.generation_index,
                attempt_label=attempt.label,
                description=descriptions[position],
            )
            for position, payload in enumerate(payloads)
        ]
        attempt.advance(AttemptStatus.SUCCEEDED)
        get_logger(__name__, request_id=state.request_id, attempt=attempt.label).info(
            f"Attempt {attempt.label} for {state.request_id} produced {len(attempt.icons)} icons "
            f"in {attempt.elapsed_ms:.0f}ms"
        )
        self._publish_attempt(
            state,
            attempt,
            EventType.ATTEMPT_SUCCEEDED,
            message=f"{attempt.label} completed",
            icons=attempt.icons,
        )

    async def _call_provider(self, request: GenerationRequest, attempt: Attempt, theme: str) -> bytes:
        provider = self.providers[attempt.provider]
        count = request.icon_count
        descriptions = request.slot_descriptions(attempt.generation_index)
        avoid = (
            request.slot_descriptions(attempt.generation_index - 1)
            if attempt.generation_index > 1
            else None
        )

        if request.has_reference_image:
            prompt = self.prompts.reference_prompt(
                descriptions, theme, icon_count=count, icons_to_avoid=avoid
            )
            return await provider.generate_from_image(
                prompt, request.reference_image or b"", attempt.seed
            )

        if attempt.generation_index > 1 and self.config.second_generation_variation:
            theme = self.prompts.with_variation(theme)
        prompt = self.prompts.grid_prompt(theme, descriptions, icon_count=count, icons_to_avoid=avoid)
        return await provider.generate_from_text(prompt, attempt.seed)

    def _fail_attempt(
        self,
        state: _RequestState,
        attempt: Attempt,
        error: BaseException,
        *,
        category: ErrorCategory | None = None,
    ) -> None:
        attempt.error = str(error) or type(error).__name__
        attempt.error_category = category or categorize_error(error)
        attempt.advance(AttemptStatus.FAILED)
        get_logger(__name__, request_id=state.request_id, attempt=attempt.label).warning(
            f"Attempt {attempt.label} for {state.request_id} failed: {attempt.error}"
        )
        self._publish_attempt(
            state,
            attempt,
            EventType.ATTEMPT_FAILED,
            message=sanitize(attempt.error_category),
            error_category=attempt.error_category,
        )

    async def _finish(self, state: _RequestState) -> None:
        succeeded = [a for a in state.attempts if a.succeeded]
        icons = [icon for a in succeeded for icon in a.icons]

        if succeeded:
            state.stored_paths = await self._persist(state.request_id, state.request.user_id, icons)
            await self.ledger.settle(
                state.reservation, succeeded=len(succeeded), total=len(state.attempts)
            )
            message = (
                ALL_SUCCEEDED_MESSAGE
                if len(succeeded) == len(state.attempts)
                else _partial_message(succeeded)
            )
            self._resolve(state, EventType.REQUEST_COMPLETED, RequestStatus.COMPLETED, message, icons)
            return

        await self.ledger.settle(state.reservation, succeeded=0, total=len(state.attempts))
        category = most_informative(
            [a.error_category or ErrorCategory.UNKNOWN for a in state.attempts]
        )
        if category in _TRANSIENT_CATEGORIES:
            message = ALL_UNAVAILABLE_MESSAGE
        else:
            message = f"{sanitize(category).rstrip('.')}. {REFUNDED_SUFFIX}"
        self._resolve(
            state, EventType.REQUEST_ERROR, RequestStatus.ERROR, message, [], error_category=category
        )

    async def _abort(self, state: _RequestState) -> None:
        for attempt in state.attempts:
            if not attempt.status.is_terminal:
                attempt.error_category = ErrorCategory.UNKNOWN
                attempt.advance(AttemptStatus.FAILED)
        if not state.reservation.settled:
            await self.ledger.refund(state.reservation)
        if state.result is None:
            message = f"{sanitize(ErrorCategory.UNKNOWN)}. {REFUNDED_SUFFIX}"
            self._resolve(
                state,
                EventType.REQUEST_ERROR,
                RequestStatus.ERROR,
                message,
                [],
                error_category=ErrorCategory.UNKNOWN,
            )

    async def _persist(self, request_id: str, user_id: str, icons: list[Icon]) -> list[str]:
        if self.store is None or not icons:
            return []
        paths: list[str] = []
        for icon in icons:
            try:
                paths.append(await self.store.save(request_id, user_id, icon))
            except OSError as e:
                logger.error(f"Failed to store icon {icon.id} for {request_id}: {e}")
        return paths

    def _resolve(
        self,
        state: _RequestState,
        event_type: EventType,
        status: RequestStatus,
        message: str,
        icons: list[Icon],
        *,
        error_category: ErrorCategory | None = None,
    ) -> None:
        reservation = state.reservation
        state.result = GenerationResult(
            request_id=state.request_id,
            status=status,
            message=message,
            icons=icons,
            attempts=[a.summary(self._attempt_message(a)) for a in state.attempts],
            seed=state.base_seed,
            trial_mode=state.trial_mode,
            refunded=reservation.refunded,
            stored_paths=state.stored_paths,
        )
        self.broadcaster.publish(
            ProgressEvent(
                type=event_type,
                request_id=state.request_id,
                message=message,
                icons=icons,
                error_category=error_category,
                trial_mode=state.trial_mode,
            )
        )
        logger.info(
            f"Request {state.request_id} {status.value}: {message} "
            f"(settlement {reservation.outcome.value if reservation.outcome else 'none'})"
        )
        self._schedule_expiry(state)

    @staticmethod
    def _attempt_message(attempt: Attempt) -> str | None:
        if attempt.succeeded:
            return f"{attempt.label} completed"
        if attempt.error_category is not None:
            return sanitize(attempt.error_category)
        return None

    def _publish_attempt(
        self,
        state: _RequestState,
        attempt: Attempt,
        event_type: EventType,
        *,
        message: str | None = None,
        icons: list[Icon] | None = None,
        error_category: ErrorCategory | None = None,
    ) -> None:
        self.broadcaster.publish(
            ProgressEvent(
                type=event_type,
                request_id=state.request_id,
                attempt_label=attempt.label,
                provider=attempt.provider,
                generation_index=attempt.generation_index,
                message=message,
                icons=icons or [],
                composite_image=attempt.composite_image if icons else None,
                elapsed_ms=attempt.elapsed_ms,
                error_category=error_category,
                trial_mode=state.trial_mode,
            )
        )

    # ------------------------------------------------------------------
    # Lookup and retention
    # ------------------------------------------------------------------

    def _resolve_original(self, request: MoreIconsRequest) -> tuple[bytes, int]:
        image, seed = request.original_image, request.seed
        if image is None or seed is None:
            state = self._requests.get(request.original_request_id)
            match = None
            if state is not None:
                match = next(
                    (
                        a
                        for a in state.attempts
                        if a.provider == request.provider
                        and a.generation_index == request.generation_index
                        and a.composite_image is not None
                    ),
                    None,
                )
            if match is None:
                raise RequestValidationError(
                    f"Original grid for {request.original_request_id} "
                    f"({request.provider}-gen{request.generation_index}) is not available"
                )
            image = image if image is not None else match.composite_image
            seed = seed if seed is not None else match.seed
        return image or b"", seed

    def _schedule_expiry(self, state: _RequestState) -> None:
        if self.retention_seconds <= 0:
            self._expire(state.request_id)
            return
        loop = asyncio.get_running_loop()
        state.expiry = loop.call_later(self.retention_seconds, self._expire, state.request_id)

    def _expire(self, request_id: str) -> None:
        state = self._requests.pop(request_id, None)
        if state is not None and state.expiry is not None:
            state.expiry.cancel()
        self.broadcaster.close(request_id)
        logger.debug(f"Expired request {request_id}")
