from enum import Enum
from typing import Optional

from checkout.database import SessionLocal
from checkout.models import CheckoutAttempt
from checkout.schemas import GatewayOrder, TargetRef


class AttemptStatus(str, Enum):
    CREATED = "created"
    REDIRECTED = "redirected"
    VERIFIED = "verified"
    REJECTED = "rejected"
    FAILED = "failed"
    ABANDONED = "abandoned"


def record_order(order: GatewayOrder, target: TargetRef) -> int:
    db = SessionLocal()
    try:
        attempt = CheckoutAttempt(
            order_id=order.order_id,
            target_kind=target.kind.value,
            target_id=target.id,
            amount=order.amount,
            currency=order.currency,
            gateway_mode=order.gateway_mode.value,
            status=AttemptStatus.CREATED.value,
        )
        db.add(attempt)
        db.commit()
        return attempt.id
    finally:
        db.close()


def update_status(attempt_id: Optional[int], status: AttemptStatus) -> None:
    if attempt_id is None:
        return
    db = SessionLocal()
    try:
        attempt = db.get(CheckoutAttempt, attempt_id)
        if attempt and attempt.status != status.value:
            attempt.status = status.value
            db.commit()
    finally:
        db.close()
