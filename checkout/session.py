"""
Checkout session state machine.

One session per checkout page visit. It resolves the target, runs the
countdown, validates the pay action, dispatches the order, drives the
gateway session and lands in a terminal view. Every ``CheckoutError``
raised by the components below is caught here and turned into state the
page can render.

    loading -> ready -> processing -> awaiting_gateway -> verifying -> succeeded | failed
    loading -> unavailable (not found, expired)
    processing -> ready (dispatch error) | redirected | unavailable (gateway load failure)
    awaiting_gateway -> ready (dismissed) | failed
"""
import time
import uuid
from enum import Enum
from typing import Dict, Optional

from checkout import attempts
from checkout.amount import AmountResolver
from checkout.attempts import AttemptStatus
from checkout.backend import BackendClient
from checkout.dispatcher import OrderDispatcher
from checkout.errors import (
    AlreadyPaid,
    CheckoutError,
    CheckoutValidationError,
    DispatchError,
    GatewayLoadError,
    InvalidCallback,
    PayerNameRequired,
    PaymentInFlight,
    QRExpired,
)
from checkout.expiry import ExpiryClock
from checkout.gateway import (
    EmbeddedGatewaySession,
    GatewayLaunch,
    GatewayRuntime,
    RedirectForm,
    open_gateway_session,
)
from checkout.logging_config import get_logger
from checkout.resolver import RequestResolver
from checkout.schemas import (
    AmountMode,
    CompletionArtifacts,
    PayerInfo,
    TargetKind,
    TargetRef,
    TerminalView,
    VerificationResult,
)
from checkout.verifier import OutcomeVerifier

logger = get_logger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    PROCESSING = "processing"
    AWAITING_GATEWAY = "awaiting_gateway"
    VERIFYING = "verifying"
    REDIRECTED = "redirected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


BUSY_STATES = (SessionState.LOADING, SessionState.PROCESSING, SessionState.VERIFYING)
ATTEMPT_STATES = (SessionState.PROCESSING, SessionState.AWAITING_GATEWAY, SessionState.VERIFYING)


class CheckoutSession:
    def __init__(
        self,
        kind: TargetKind,
        target_id: str,
        backend: BackendClient,
        session_id: str = None,
        runtime: GatewayRuntime = None,
        clock_factory=ExpiryClock.for_target,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.ref = TargetRef(kind=kind, id=target_id)
        self.created_at = time.monotonic()

        self.resolver = RequestResolver(backend)
        self.amounts = AmountResolver()
        self.dispatcher = OrderDispatcher(backend)
        self.verifier = OutcomeVerifier(backend)
        self.runtime = runtime
        self._clock_factory = clock_factory

        self.state = SessionState.LOADING
        self.target = None
        self.clock: Optional[ExpiryClock] = None
        self.gateway = None
        self.error: Optional[CheckoutError] = None
        self.view: Optional[TerminalView] = None

        self._attempt_id: Optional[int] = None
        self._in_flight = False
        self._closed = False
        self.log = logger.bind(session_id=self.id, target_kind=kind.value, target_id=target_id)

    # ----- derived state -----

    @property
    def busy(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pay_enabled(self) -> bool:
        if self.state is not SessionState.READY or self._in_flight:
            return False
        return not (self.clock and self.clock.expired)

    # ----- transitions -----

    async def load(self) -> None:
        resolution = await self.resolver.resolve(self.ref.kind, self.ref.id)
        if self._closed:
            return

        if resolution.view is not None:
            self._finish(resolution.view)
            return
        if resolution.error is not None:
            self.error = resolution.error
            self.state = SessionState.UNAVAILABLE
            return

        self.target = resolution.target
        self.clock = self._clock_factory(self.target, on_expire=self._on_expire)
        self.state = SessionState.READY
        if self.clock.expired:
            self._on_expire()
        else:
            self.clock.start()

    async def pay(self, payer: PayerInfo = None, amount_input=None) -> Optional[GatewayLaunch]:
        if self._in_flight or self.state in ATTEMPT_STATES:
            self.error = PaymentInFlight()
            return None
        if self.state is not SessionState.READY:
            return None

        payer = payer or PayerInfo()
        self.error = None
        try:
            amount = self._validate(payer, amount_input)
        except CheckoutValidationError as exc:
            self.error = exc
            if isinstance(exc, QRExpired):
                self.state = SessionState.UNAVAILABLE
            return None

        self._in_flight = True
        self.state = SessionState.PROCESSING
        try:
            launch = await self._dispatch(payer, amount)
        finally:
            self._in_flight = False
        return launch

    def _validate(self, payer: PayerInfo, amount_input) -> int:
        if self.clock is not None and self.clock.expired:
            raise QRExpired()
        if self.ref.kind is TargetKind.QR and not payer.name:
            raise PayerNameRequired()
        return self.amounts.resolve(self.target, amount_input)

    async def _dispatch(self, payer: PayerInfo, amount: int) -> Optional[GatewayLaunch]:
        self._attempt_id = None
        try:
            order = await self.dispatcher.create_order(self.target, amount, payer)
            if self._closed:
                return None
            self._attempt_id = attempts.record_order(order, self.ref)
            self.gateway = open_gateway_session(order, self.target, payer, self.verifier, self.runtime)
            launch = await self.gateway.start()
        except AlreadyPaid:
            # someone else paid between resolution and now
            self.log.info("target_paid_during_dispatch")
            self._finish(TerminalView.success(self.ref, already=True))
            return None
        except QRExpired as exc:
            self.error = exc
            self.state = SessionState.UNAVAILABLE
            if self.clock is not None:
                self.clock.force_expire()
            return None
        except GatewayLoadError as exc:
            attempts.update_status(self._attempt_id, AttemptStatus.FAILED)
            self.gateway = None
            self.error = exc
            self.state = SessionState.UNAVAILABLE
            return None
        except CheckoutError as exc:
            self.log.warning("dispatch_failed", error=exc.message)
            self.gateway = None
            self.error = exc
            self.state = SessionState.READY
            return None
        except Exception:
            self.log.error("dispatch_crashed", exc_info=True)
            self.gateway = None
            self.error = DispatchError()
            self.state = SessionState.READY
            return None

        if self._closed:
            return None
        if isinstance(launch, RedirectForm):
            attempts.update_status(self._attempt_id, AttemptStatus.REDIRECTED)
            self.state = SessionState.REDIRECTED
            self._stop_clock()
        else:
            self.state = SessionState.AWAITING_GATEWAY
        self.log.info("gateway_started", gateway_mode=launch.mode.value)
        return launch

    async def complete(self, artifacts: CompletionArtifacts) -> Optional[TerminalView]:
        gateway = self.gateway
        if not isinstance(gateway, EmbeddedGatewaySession) or not gateway.accepts(artifacts):
            raise InvalidCallback()

        self.state = SessionState.VERIFYING
        result = await gateway.complete(artifacts)
        if self._closed:
            return None

        if result is VerificationResult.VERIFIED:
            attempts.update_status(self._attempt_id, AttemptStatus.VERIFIED)
            view = TerminalView.success(self.ref)
        else:
            attempts.update_status(self._attempt_id, AttemptStatus.REJECTED)
            view = TerminalView.failed(self.ref)
        self._finish(view)
        return view

    def fail(self, reason: str = None) -> TerminalView:
        if not isinstance(self.gateway, EmbeddedGatewaySession) or self.state is not SessionState.AWAITING_GATEWAY:
            raise InvalidCallback()
        self.gateway.fail()
        attempts.update_status(self._attempt_id, AttemptStatus.FAILED)
        self.log.info("gateway_reported_failure", reason=reason)
        view = TerminalView.failed(self.ref, message=reason)
        self._finish(view)
        return view

    def dismiss(self) -> None:
        if not isinstance(self.gateway, EmbeddedGatewaySession) or self.state is not SessionState.AWAITING_GATEWAY:
            raise InvalidCallback()
        self.gateway.dismiss()
        attempts.update_status(self._attempt_id, AttemptStatus.ABANDONED)
        self.log.info("gateway_dismissed")
        if self.clock is not None and self.clock.expired:
            self.error = QRExpired()
            self.state = SessionState.UNAVAILABLE
        else:
            self.state = SessionState.READY

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_clock()
        self.log.info("session_closed", state=self.state.value)

    # ----- internals -----

    def _on_expire(self) -> None:
        self.error = QRExpired()
        if self.state is SessionState.READY:
            self.state = SessionState.UNAVAILABLE

    def _finish(self, view: TerminalView) -> None:
        self.view = view
        self.state = SessionState.SUCCEEDED if view.outcome == "success" else SessionState.FAILED
        self._stop_clock()
        self.log.info("session_finished", outcome=view.outcome, already=view.already)

    def _stop_clock(self) -> None:
        if self.clock is not None:
            self.clock.stop()

    def snapshot(self) -> dict:
        target = None
        if self.target is not None:
            target = self.target.model_dump(mode="json", by_alias=True)
            target["kind"] = self.ref.kind.value
            target["amount_editable"] = self.target.amount_mode is AmountMode.VARIABLE
        return {
            "session_id": self.id,
            "state": self.state.value,
            "target_kind": self.ref.kind.value,
            "target_id": self.ref.id,
            "busy": self.busy,
            "pay_enabled": self.pay_enabled,
            "target": target,
            "clock": self.clock.to_dict() if self.clock is not None else None,
            "error": _error_dict(self.error),
            "view": self.view.to_dict() if self.view is not None else None,
        }


def _error_dict(error: Optional[CheckoutError]) -> Optional[dict]:
    if error is None:
        return None
    return {"type": type(error).__name__, "message": error.message, "retryable": error.retryable}


class SessionRegistry:
    """In-memory sessions keyed by session id. Sessions share nothing."""

    def __init__(self, backend: BackendClient, runtime: GatewayRuntime = None, ttl_seconds: int = 1800):
        self.backend = backend
        self.runtime = runtime
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, CheckoutSession] = {}

    async def open(self, kind: TargetKind, target_id: str) -> CheckoutSession:
        self.prune()
        session = CheckoutSession(kind, target_id, self.backend, runtime=self.runtime)
        self._sessions[session.id] = session
        await session.load()
        return session

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def prune(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        for session_id in [s.id for s in self._sessions.values() if s.created_at < cutoff]:
            self.close(session_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
