from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from checkout.backend import BackendClient
from checkout.errors import AlreadyPaid, CheckoutError, MalformedTarget, QRExpired, TargetNotFound
from checkout.logging_config import get_logger
from checkout.schemas import (
    CheckoutTarget,
    PaymentLink,
    QRCode,
    TargetKind,
    TargetRef,
    TargetStatus,
    TerminalView,
)

logger = get_logger(__name__)

_WRAPPERS = {TargetKind.LINK: "paymentLink", TargetKind.QR: "qrCode"}
_MODELS = {TargetKind.LINK: PaymentLink, TargetKind.QR: QRCode}


@dataclass
class Resolution:
    """Outcome of resolving a target: exactly one of the three is set."""
    ref: TargetRef
    target: Optional[CheckoutTarget] = None
    view: Optional[TerminalView] = None
    error: Optional[CheckoutError] = None

    @property
    def is_active(self) -> bool:
        return self.target is not None


class RequestResolver:
    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def resolve(self, kind: TargetKind, target_id: str) -> Resolution:
        ref = TargetRef(kind=kind, id=target_id)
        log = logger.bind(target_kind=kind.value, target_id=target_id)

        try:
            payload = await self.backend.fetch_target(kind, target_id)
            target = self._parse(kind, target_id, payload)
        except AlreadyPaid:
            log.info("target_already_paid")
            return Resolution(ref=ref, view=TerminalView.success(ref, already=True))
        except TargetNotFound as exc:
            log.info("target_not_found")
            return Resolution(ref=ref, error=TargetNotFound(_backend_message(exc) or kind.not_found_message))
        except CheckoutError as exc:
            log.warning("target_resolution_failed", error=exc.message)
            return Resolution(ref=ref, error=exc)

        if target.status is TargetStatus.PAID:
            log.info("target_already_paid")
            return Resolution(ref=ref, view=TerminalView.success(ref, already=True))
        if target.status is TargetStatus.EXPIRED:
            return Resolution(ref=ref, error=QRExpired())
        if target.status is TargetStatus.NOT_FOUND:
            return Resolution(ref=ref, error=TargetNotFound(kind.not_found_message))

        log.info("target_resolved", amount_mode=target.amount_mode.value, is_static=target.is_static)
        return Resolution(ref=ref, target=target)

    @staticmethod
    def _parse(kind: TargetKind, target_id: str, payload: dict) -> CheckoutTarget:
        raw = payload.get(_WRAPPERS[kind]) or payload.get("target")
        if not isinstance(raw, dict):
            raise MalformedTarget()
        try:
            return _MODELS[kind].model_validate({**raw, "id": target_id})
        except ValidationError as exc:
            raise MalformedTarget() from exc


def _backend_message(exc: CheckoutError) -> Optional[str]:
    if exc.message == type(exc).default_message:
        return None
    return exc.message
