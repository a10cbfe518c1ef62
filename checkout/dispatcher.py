"""
Order creation and gateway-mode classification.

The backend answers ``create-order`` with one of two disjoint payloads. The
newer shape carries an explicit ``gatewayMode``; the older one is recognised
by ``gateway == "payu"`` plus ``payuData`` (redirect) or ``order`` plus
``key`` (embedded).
"""
from typing import Any, Dict, Optional

from pydantic import ValidationError

from checkout.backend import BackendClient
from checkout.config import settings
from checkout.errors import AlreadyPaid, BackendError, DispatchError, QRExpired
from checkout.logging_config import get_logger
from checkout.schemas import (
    AmountMode,
    CheckoutTarget,
    EmbeddedOrder,
    GatewayMode,
    GatewayOrder,
    PayerInfo,
    RedirectOrder,
)

logger = get_logger(__name__)

# keys that name the form target rather than a form field
REDIRECT_URL_KEYS = ("url", "payuUrl", "actionUrl", "endpoint")


class OrderDispatcher:
    def __init__(self, backend: BackendClient, currency: str = None):
        self.backend = backend
        self.currency = currency or settings.currency

    async def create_order(
        self,
        target: CheckoutTarget,
        amount: int,
        payer: Optional[PayerInfo] = None,
    ) -> GatewayOrder:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise DispatchError("Refusing to create an order without a positive amount")

        try:
            data = await self.backend.create_order(
                target.ref,
                amount=amount if target.amount_mode is AmountMode.VARIABLE else None,
                payer=payer,
            )
        except (AlreadyPaid, QRExpired):
            raise
        except BackendError as exc:
            message = exc.message if exc.message != type(exc).default_message else None
            raise DispatchError(message) from exc

        if data.get("success") is False:
            raise DispatchError(data.get("message") or "Failed to create order")

        order = self.classify(data, amount)
        logger.info(
            "gateway_order_created",
            target_kind=target.kind.value,
            target_id=target.id,
            gateway_mode=order.gateway_mode.value,
            order_id=order.order_id,
            amount=order.amount,
        )
        return order

    def classify(self, data: Dict[str, Any], amount: int) -> GatewayOrder:
        mode = data.get("gatewayMode")
        if mode is None:
            if data.get("gateway") == "payu" and data.get("payuData"):
                mode = GatewayMode.REDIRECT.value
            elif data.get("order") and data.get("key"):
                mode = GatewayMode.EMBEDDED.value

        try:
            if mode == GatewayMode.EMBEDDED.value:
                return self._embedded(data)
            if mode == GatewayMode.REDIRECT.value:
                return self._redirect(data, amount)
        except (ValidationError, TypeError, KeyError) as exc:
            raise DispatchError("Payment gateway returned an incomplete order") from exc
        raise DispatchError("Unsupported payment gateway response")

    def _embedded(self, data: Dict[str, Any]) -> EmbeddedOrder:
        order = data["order"]
        return EmbeddedOrder(
            order_id=order["id"],
            amount=order["amount"],
            currency=order.get("currency") or self.currency,
            key=data["key"],
        )

    def _redirect(self, data: Dict[str, Any], amount: int) -> RedirectOrder:
        payload = data.get("redirectData") or data.get("payuData")
        if not isinstance(payload, dict):
            raise KeyError("redirect payload")

        url = next((payload[k] for k in REDIRECT_URL_KEYS if payload.get(k)), None)
        if url is None:
            raise KeyError("redirect url")
        fields = {
            key: "" if value is None else str(value)
            for key, value in payload.items()
            if key not in REDIRECT_URL_KEYS
        }
        return RedirectOrder(
            order_id=_optional_str(data.get("orderId") or payload.get("txnid")),
            amount=amount,
            currency=data.get("currency") or self.currency,
            url=url,
            fields=fields,
        )


def _optional_str(value) -> Optional[str]:
    return None if value is None else str(value)
