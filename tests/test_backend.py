import json

import httpx
import pytest

from checkout.backend import BackendClient
from checkout.errors import AlreadyPaid, BackendError, BackendUnavailable, QRExpired, TargetNotFound
from checkout.schemas import CompletionArtifacts, PayerInfo, TargetKind, TargetRef


def client_for(handler):
    return BackendClient(base_url="http://backend.test/api", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_target_hits_kind_specific_path():
    seen = []

    def handler(request):
        seen.append(request.url.path)
        return httpx.Response(200, json={"qrCode": {"isStatic": True}})

    client = client_for(handler)
    body = await client.fetch_target(TargetKind.QR, "qr_9")
    await client.aclose()

    assert seen == ["/api/qr/checkout/qr_9"]
    assert body == {"qrCode": {"isStatic": True}}


@pytest.mark.asyncio
@pytest.mark.parametrize("status, body, error", [
    (400, {"status": "paid", "message": "Already paid"}, AlreadyPaid),
    (410, {"status": "expired", "message": "QR Code has expired"}, QRExpired),
    (404, {"message": "QR Code not found"}, TargetNotFound),
    (400, {"status": "not_found"}, TargetNotFound),
    (500, {"message": "boom"}, BackendError),
    (502, None, BackendError),
])
async def test_error_payloads_are_mapped(status, body, error):
    def handler(request):
        if body is None:
            return httpx.Response(status, text="<html>bad gateway</html>")
        return httpx.Response(status, json=body)

    client = client_for(handler)
    with pytest.raises(error) as excinfo:
        await client.fetch_target(TargetKind.LINK, "link_1")
    await client.aclose()

    if body and body.get("message"):
        assert excinfo.value.message == body["message"]


@pytest.mark.asyncio
async def test_transport_failure_is_backend_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = client_for(handler)
    with pytest.raises(BackendUnavailable) as excinfo:
        await client.fetch_target(TargetKind.LINK, "link_1")
    await client.aclose()

    assert excinfo.value.retryable is True


@pytest.mark.asyncio
async def test_create_order_body():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    client = client_for(handler)
    await client.create_order(
        TargetRef(kind=TargetKind.QR, id="qr_1"),
        amount=500,
        payer=PayerInfo(name="Asha", email="asha@example.com"),
    )
    await client.aclose()

    assert captured["path"] == "/api/qr/checkout/create-order"
    assert captured["body"] == {
        "qrId": "qr_1",
        "amount": 500,
        "payerName": "Asha",
        "payerEmail": "asha@example.com",
    }


@pytest.mark.asyncio
async def test_verify_payment_body():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"verified": True})

    client = client_for(handler)
    await client.verify_payment(
        TargetRef(kind=TargetKind.LINK, id="link_1"),
        CompletionArtifacts(order_id="order_1", payment_id="pay_1", signature="sig_1"),
    )
    await client.aclose()

    assert captured["path"] == "/api/payment/checkout/verify"
    assert captured["body"] == {
        "razorpay_order_id": "order_1",
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": "sig_1",
        "linkId": "link_1",
    }
