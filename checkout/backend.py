"""
Async client for the payment backend's checkout endpoints.

Every failure is mapped onto the checkout error taxonomy so callers never
see raw ``httpx`` exceptions.
"""
from typing import Any, Dict, Optional

import httpx

from checkout.config import settings
from checkout.errors import (
    AlreadyPaid,
    BackendError,
    BackendUnavailable,
    QRExpired,
    TargetNotFound,
)
from checkout.logging_config import get_logger
from checkout.schemas import CompletionArtifacts, PayerInfo, TargetKind, TargetRef

logger = get_logger(__name__)


def _payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def raise_for_checkout_error(response: httpx.Response) -> None:
    if response.is_success:
        return

    body = _payload(response)
    status = body.get("status")
    message = body.get("message")

    if status == "paid":
        raise AlreadyPaid(message)
    if status == "expired":
        raise QRExpired(message)
    if response.status_code == 404 or status == "not_found":
        raise TargetNotFound(message)
    raise BackendError(message, status_code=response.status_code)


class BackendClient:
    def __init__(self, base_url: str = None, timeout: float = None, transport=None):
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.backend_url).rstrip("/"),
            timeout=timeout if timeout is not None else settings.request_timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: dict = None) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("backend_timeout", path=path)
            raise BackendUnavailable() from exc
        except httpx.HTTPError as exc:
            logger.warning("backend_unreachable", path=path, error=str(exc))
            raise BackendUnavailable() from exc

        raise_for_checkout_error(response)
        return _payload(response)

    async def fetch_target(self, kind: TargetKind, target_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/{kind.api_prefix}/checkout/{target_id}")

    async def create_order(
        self,
        target: TargetRef,
        amount: Optional[int] = None,
        payer: Optional[PayerInfo] = None,
    ) -> Dict[str, Any]:
        body = {target.kind.query_param: target.id}
        if amount is not None:
            body["amount"] = amount
        if payer is not None:
            body.update(_payer_fields(payer))
        return await self._request("POST", f"/{target.kind.api_prefix}/checkout/create-order", json=body)

    async def verify_payment(
        self,
        target: TargetRef,
        artifacts: CompletionArtifacts,
        payer: Optional[PayerInfo] = None,
    ) -> Dict[str, Any]:
        body = artifacts.model_dump(by_alias=True)
        body[target.kind.query_param] = target.id
        if payer is not None:
            body.update(_payer_fields(payer))
        return await self._request("POST", f"/{target.kind.api_prefix}/checkout/verify", json=body)

    async def verify_return(self, flow: str, order_id: str, target: Optional[TargetRef] = None) -> Dict[str, Any]:
        body = {"flow": flow, "orderId": order_id}
        if target is not None:
            body[target.kind.query_param] = target.id
        return await self._request("POST", "/payment/cashfree/verify-return", json=body)


def _payer_fields(payer: PayerInfo) -> Dict[str, str]:
    fields = {}
    if payer.name:
        fields["payerName"] = payer.name
    if payer.email:
        fields["payerEmail"] = payer.email
    if payer.phone:
        fields["payerPhone"] = payer.phone
    return fields
