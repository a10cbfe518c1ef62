from typing import Optional

from checkout.backend import BackendClient
from checkout.errors import AlreadyPaid, CheckoutError
from checkout.logging_config import get_logger
from checkout.schemas import CompletionArtifacts, PayerInfo, TargetRef, VerificationResult

logger = get_logger(__name__)

RETURN_VERIFICATION_FAILED = "Payment verification failed. Please contact support."


class OutcomeVerifier:
    """
    Server-side verification of gateway outcomes.

    Fail-closed: only an explicit ``verified: true`` (or the older
    ``success: true``) counts as verified. Transport errors, error payloads
    and anything malformed are ``REJECTED``.
    """

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def verify(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        target: TargetRef,
        payer: Optional[PayerInfo] = None,
    ) -> VerificationResult:
        log = logger.bind(target_kind=target.kind.value, target_id=target.id, order_id=order_id)
        artifacts = CompletionArtifacts(order_id=order_id, payment_id=payment_id, signature=signature)

        try:
            body = await self.backend.verify_payment(target, artifacts, payer=payer)
        except CheckoutError as exc:
            log.warning("payment_verification_error", error=exc.message)
            return VerificationResult.REJECTED

        result = VerificationResult.VERIFIED if _confirmed(body) else VerificationResult.REJECTED
        log.info("payment_verification_result", result=result.value)
        return result

    async def verify_return(self, flow: str, order_id: str, target: Optional[TargetRef] = None) -> Optional[str]:
        """Confirm a redirect-gateway return. Returns an error message, or None when confirmed."""
        try:
            body = await self.backend.verify_return(flow, order_id, target)
        except AlreadyPaid:
            body = {}
        except CheckoutError as exc:
            logger.warning("return_verification_failed", flow=flow, order_id=order_id, error=exc.message)
            if exc.message == type(exc).default_message:
                return RETURN_VERIFICATION_FAILED
            return exc.message
        if body.get("success") is False:
            return body.get("message") or RETURN_VERIFICATION_FAILED
        logger.info("return_verified", flow=flow, order_id=order_id)
        return None


def _confirmed(body) -> bool:
    if not isinstance(body, dict):
        return False
    if "verified" in body:
        return body["verified"] is True
    return body.get("success") is True
