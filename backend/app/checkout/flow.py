"""Reconciliation flow driving activation attempts and retries.

A flow is created once per checkout return. It validates the redirect
parameters, runs activation attempts one at a time under a deadline, retries a
failed attempt automatically exactly once, and afterwards waits for an explicit
manual retry. All methods must be called from the event loop that owns the
flow.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Mapping, Optional, Protocol, Tuple

from .config import CheckoutConfig
from .exceptions import CheckoutError, SessionValidationError
from .guard import ActivationGuard
from .invoker import ActivationInvoker, SubscriptionActivator
from .models import (
    ActivationAttempt,
    ActivationResult,
    AttemptOutcome,
    PaymentSession,
    ReconciliationPhase,
    ReconciliationState,
)
from .session import SESSION_ID_PARAM, extract_payment_session, mask_session_id
from .timeout import TimeoutSupervisor

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Premium subscription activated successfully!"
ERROR_MESSAGE_TEMPLATE = "Error activating subscription: {detail}"
SUBSCRIPTION_VIEW_TAGS = ("my_subscription", "can_register_more_objects")


class CheckoutNotifier(Protocol):
    """User-facing notification surface of the hosting UI."""

    def notify_success(self, message: str) -> None:
        ...

    def notify_error(self, message: str) -> None:
        ...


class EntitlementInvalidator(Protocol):
    """Drops cached views that depend on subscription state."""

    def invalidate(self, tags: Iterable[str]) -> None:
        ...


class ReconciliationFlow:
    """State machine reconciling one checkout return with its subscription."""

    def __init__(
        self,
        session: Optional[PaymentSession],
        *,
        activator: Optional[SubscriptionActivator],
        notifier: CheckoutNotifier,
        config: Optional[CheckoutConfig] = None,
        invalidator: Optional[EntitlementInvalidator] = None,
        validation_error: Optional[SessionValidationError] = None,
        raw_session_id: Optional[str] = None,
    ) -> None:
        if session is None and validation_error is None:
            raise ValueError("a flow needs either a session or a validation error")

        self.config = config or CheckoutConfig()
        self.session = session
        self._invoker = ActivationInvoker(activator, display_length=self.config.session_display_length)
        self._notifier = notifier
        self._invalidator = invalidator
        self._guard = ActivationGuard()
        self._supervisor = TimeoutSupervisor(
            self._guard, timeout_seconds=self.config.activation_timeout_seconds
        )
        self._attempts: List[ActivationAttempt] = []
        self._attempt_task: Optional[asyncio.Task] = None
        self._auto_retry_task: Optional[asyncio.Task] = None
        self._settled = asyncio.Event()
        self._closed = False

        raw = session.session_id if session is not None else raw_session_id
        self._state = ReconciliationState(
            display_session_id=mask_session_id(raw, length=self.config.session_display_length)
        )

        if validation_error is not None:
            self._state = self._state.model_copy(
                update={
                    "phase": ReconciliationPhase.ERROR,
                    "last_error_detail": validation_error.detail,
                    "last_error_kind": validation_error.kind,
                }
            )
            self._settled.set()

    @classmethod
    def from_redirect(
        cls,
        params: Mapping[str, str],
        *,
        activator: Optional[SubscriptionActivator],
        notifier: CheckoutNotifier,
        config: Optional[CheckoutConfig] = None,
        invalidator: Optional[EntitlementInvalidator] = None,
    ) -> "ReconciliationFlow":
        """Create a flow from raw redirect parameters.

        Invalid parameters produce a flow that is already in ``error`` and
        never contacts the activator.
        """

        config = config or CheckoutConfig()
        raw_session_id = params.get(SESSION_ID_PARAM)
        try:
            session = extract_payment_session(params, placeholder=config.session_placeholder)
        except SessionValidationError as exc:
            masked = mask_session_id(raw_session_id, length=config.session_display_length)
            logger.error(
                "Rejected checkout return session=%s: %s",
                masked,
                exc.detail,
                extra={"session": masked, "error_kind": exc.kind.value},
            )
            return cls(
                None,
                activator=activator,
                notifier=notifier,
                config=config,
                invalidator=invalidator,
                validation_error=exc,
                raw_session_id=raw_session_id,
            )
        return cls(
            session,
            activator=activator,
            notifier=notifier,
            config=config,
            invalidator=invalidator,
        )

    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def attempts(self) -> Tuple[ActivationAttempt, ...]:
        return tuple(self._attempts)

    @property
    def generation(self) -> int:
        return self._guard.generation

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def auto_retry_pending(self) -> bool:
        return self._auto_retry_task is not None

    def begin(self) -> Optional[int]:
        """Start an activation attempt.

        Returns the attempt's generation, or ``None`` when nothing was started
        because an attempt is already running, an automatic retry is already
        scheduled, or the flow is terminal.
        """

        if self._closed or self.session is None or self._state.is_terminal:
            return None
        if self._auto_retry_task is not None:
            logger.debug("Automatic retry already scheduled; ignoring begin")
            return None

        generation = self._guard.begin()
        if generation is None:
            logger.info(
                "Activation already in progress session=%s",
                self._state.display_session_id,
                extra={"session": self._state.display_session_id},
            )
            return None

        self._start_attempt(generation)
        return generation

    def request_manual_retry(self) -> bool:
        """Retry activation on user request; returns ``True`` if an attempt started."""

        if self._closed or self.session is None or self._guard.in_flight:
            return False

        phase = self._state.phase
        if phase == ReconciliationPhase.ERROR:
            self._cancel_auto_retry()
            self._settled.clear()
            self._transition(
                phase=ReconciliationPhase.PROCESSING,
                auto_retry_consumed=False,
                last_error_detail=None,
                last_error_kind=None,
                is_retrying=True,
            )
        elif phase == ReconciliationPhase.PROCESSING and self._auto_retry_task is not None:
            # The manual attempt takes the place of the scheduled one.
            self._cancel_auto_retry()
            self._transition(is_retrying=True, auto_retry_pending=False)
        else:
            return False

        logger.info(
            "Manual retry requested session=%s",
            self._state.display_session_id,
            extra={"session": self._state.display_session_id},
        )
        return self.begin() is not None

    async def wait_until_settled(self, timeout: Optional[float] = None) -> ReconciliationState:
        """Wait until the flow reaches ``success`` or ``error`` (or is closed)."""

        await asyncio.wait_for(self._settled.wait(), timeout)
        return self._state

    def continue_to(self) -> str:
        """Destination for the post-activation continue action."""

        if self._state.phase != ReconciliationPhase.SUCCESS:
            raise RuntimeError("Subscription activation has not completed")
        return self.config.continue_url

    def close(self) -> None:
        """Tear the flow down; results arriving afterwards are ignored."""

        if self._closed:
            return
        self._closed = True
        self._cancel_auto_retry()
        if self._guard.in_flight:
            self._guard.retire(self._guard.generation)
        if self._attempt_task is not None and not self._attempt_task.done():
            self._attempt_task.cancel()
        self._settled.set()

    def _start_attempt(self, generation: int) -> None:
        started_at = datetime.now(timezone.utc)
        attempt = ActivationAttempt(
            generation=generation,
            started_at=started_at,
            deadline=started_at + timedelta(seconds=self.config.activation_timeout_seconds),
        )
        self._attempts.append(attempt)
        if self._state.phase != ReconciliationPhase.PROCESSING:
            self._transition(phase=ReconciliationPhase.PROCESSING)

        logger.info(
            "Processing payment session=%s plan=%s generation=%s",
            self._state.display_session_id,
            self.session.plan.value if self.session else None,
            generation,
            extra={"session": self._state.display_session_id, "generation": generation},
        )
        self._attempt_task = asyncio.get_running_loop().create_task(self._run_attempt(generation))

    async def _run_attempt(self, generation: int) -> None:
        assert self.session is not None
        result = await self._supervisor.run(
            generation,
            self._invoker.invoke(self.session),
            on_late_result=self._on_late_result,
        )
        if self._closed or generation != self._guard.generation:
            self._discard(generation, result)
            return
        self._apply_result(generation, result)

    def _on_late_result(self, generation: int, result: ActivationResult) -> None:
        # Late results always belong to a retired generation.
        self._discard(generation, result)

    def _discard(self, generation: int, result: ActivationResult) -> None:
        logger.warning(
            "Discarding stale activation result generation=%s current=%s ok=%s",
            generation,
            self._guard.generation,
            result.ok,
            extra={"generation": generation},
        )

    def _apply_result(self, generation: int, result: ActivationResult) -> None:
        self._guard.end(generation)

        if result.ok:
            self._resolve_attempt(generation, AttemptOutcome.SUCCESS)
            self._transition(
                phase=ReconciliationPhase.SUCCESS,
                last_error_detail=None,
                last_error_kind=None,
                is_retrying=False,
                auto_retry_pending=False,
            )
            self._invalidate_subscription_views()
            self._notify(self._notifier.notify_success, SUCCESS_MESSAGE)
            self._settled.set()
            return

        error = result.error
        assert error is not None
        self._resolve_attempt(generation, AttemptOutcome.FAILURE, error.detail)

        if error.retryable and not self._state.auto_retry_consumed:
            self._transition(
                auto_retry_consumed=True,
                last_error_detail=error.detail,
                last_error_kind=error.kind,
                auto_retry_pending=True,
            )
            self._schedule_auto_retry(error)
            return

        self._fail(error)

    def _fail(self, error: CheckoutError) -> None:
        self._transition(
            phase=ReconciliationPhase.ERROR,
            last_error_detail=error.detail,
            last_error_kind=error.kind,
            is_retrying=False,
            auto_retry_pending=False,
        )
        logger.error(
            "Activation failed session=%s: %s",
            self._state.display_session_id,
            error.detail,
            extra={"session": self._state.display_session_id, "error_kind": error.kind.value},
        )
        self._notify(self._notifier.notify_error, ERROR_MESSAGE_TEMPLATE.format(detail=error.detail))
        self._settled.set()

    def _schedule_auto_retry(self, error: CheckoutError) -> None:
        delay = self.config.auto_retry_delay_seconds
        logger.warning(
            "Activation attempt failed (%s); retrying in %.1fs",
            error.detail,
            delay,
            extra={"session": self._state.display_session_id, "error_kind": error.kind.value},
        )
        self._auto_retry_task = asyncio.get_running_loop().create_task(self._auto_retry(delay))

    async def _auto_retry(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._auto_retry_task = None
        self._transition(auto_retry_pending=False)
        self.begin()

    def _cancel_auto_retry(self) -> None:
        task = self._auto_retry_task
        self._auto_retry_task = None
        if task is not None and not task.done():
            task.cancel()

    def _resolve_attempt(
        self,
        generation: int,
        outcome: AttemptOutcome,
        failure_reason: Optional[str] = None,
    ) -> None:
        for index, attempt in enumerate(self._attempts):
            if attempt.generation == generation and attempt.is_pending:
                self._attempts[index] = attempt.model_copy(
                    update={"outcome": outcome, "failure_reason": failure_reason}
                )
                return

    def _transition(self, **changes: object) -> None:
        previous = self._state.phase
        self._state = self._state.model_copy(
            update={**changes, "updated_at": datetime.now(timezone.utc)}
        )
        if self._state.phase != previous:
            logger.info(
                "Reconciliation phase %s -> %s session=%s",
                previous.value,
                self._state.phase.value,
                self._state.display_session_id,
                extra={"session": self._state.display_session_id, "phase": self._state.phase.value},
            )

    def _invalidate_subscription_views(self) -> None:
        if self._invalidator is None:
            return
        try:
            self._invalidator.invalidate(SUBSCRIPTION_VIEW_TAGS)
        except Exception:
            logger.exception("Failed to invalidate subscription views")

    def _notify(self, send, message: str) -> None:
        try:
            send(message)
        except Exception:
            logger.exception("Checkout notification failed")


__all__ = [
    "CheckoutNotifier",
    "ERROR_MESSAGE_TEMPLATE",
    "EntitlementInvalidator",
    "ReconciliationFlow",
    "SUBSCRIPTION_VIEW_TAGS",
    "SUCCESS_MESSAGE",
]
