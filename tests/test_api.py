import pytest
from fastapi.testclient import TestClient

import checkout.gateway
from checkout.errors import AlreadyPaid, TargetNotFound
from checkout.main import app as fastapi_app
from conftest import EMBEDDED_ORDER, LINK_PAYLOAD, REDIRECT_ORDER, STATIC_QR_PAYLOAD


@pytest.fixture
def client(monkeypatch, mocker):
    # Fresh gateway runtime that never touches the network
    monkeypatch.setattr(checkout.gateway, "_runtime", None)
    mocker.patch("checkout.gateway.download_script", return_value=b"window.Gateway = {};")
    with TestClient(fastapi_app) as c:
        yield c


def open_session(client, kind, target_id):
    response = client.post(f"/checkout/{kind}/{target_id}/session")
    assert response.status_code == 200
    body = response.json()
    return body, {"X-Checkout-Session": body["token"]}


def test_open_session_renders_checkout_form(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=LINK_PAYLOAD)

    body, _ = open_session(client, "link", "link_1")

    assert body["state"] == "ready"
    assert body["pay_enabled"] is True
    assert body["target"]["amount"] == 2500
    assert body["target"]["merchant"] == "Acme Traders"
    assert body["target"]["amount_editable"] is False
    assert body["clock"]["state"] == "inactive"
    assert body["error"] is None


def test_already_paid_link_goes_to_success(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", side_effect=AlreadyPaid())

    body, _ = open_session(client, "link", "link_paid")

    assert body["state"] == "succeeded"
    assert body["target"] is None
    assert body["view"]["url"] == "/payment/success?linkId=link_paid&already=true"


def test_unknown_target_shows_message_without_retry(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", side_effect=TargetNotFound("QR Code is inactive"))

    body, _ = open_session(client, "qr", "qr_gone")

    assert body["state"] == "unavailable"
    assert body["error"] == {"type": "TargetNotFound", "message": "QR Code is inactive", "retryable": False}


def test_pay_returns_embedded_launch(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=STATIC_QR_PAYLOAD)
    create_order = mocker.patch("checkout.backend.BackendClient.create_order", return_value=EMBEDDED_ORDER)

    _, headers = open_session(client, "qr", "qr_1")
    response = client.post(
        "/checkout/session/pay",
        json={"payer": {"name": "Asha"}, "amount": "500"},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "awaiting_gateway"
    assert body["launch"]["mode"] == "embedded"
    assert body["launch"]["options"]["order_id"] == "order_abc"
    assert create_order.call_args.kwargs["amount"] == 500


def test_pay_validation_error_is_inline(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=STATIC_QR_PAYLOAD)
    create_order = mocker.patch("checkout.backend.BackendClient.create_order")

    _, headers = open_session(client, "qr", "qr_1")
    response = client.post("/checkout/session/pay", json={"payer": {"name": "Asha"}, "amount": "0"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["launch"] is None
    assert response.json()["error"]["message"] == "Please enter a valid amount"
    create_order.assert_not_called()


def test_pay_returns_redirect_form(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=LINK_PAYLOAD)
    mocker.patch("checkout.backend.BackendClient.create_order", return_value=REDIRECT_ORDER)
    verify = mocker.patch("checkout.backend.BackendClient.verify_payment")

    _, headers = open_session(client, "link", "link_1")
    body = client.post("/checkout/session/pay", json={}, headers=headers).json()

    assert body["state"] == "redirected"
    assert body["launch"]["mode"] == "redirect"
    assert body["launch"]["action"] == "https://secure.payu.test/_payment"
    assert 'name="txnid" value="txn_001"' in body["launch"]["html"]

    response = client.post(
        "/checkout/session/complete",
        json={"razorpay_order_id": "txn_001", "razorpay_payment_id": "p", "razorpay_signature": "s"},
        headers=headers,
    )
    assert response.status_code == 409
    verify.assert_not_called()


def test_failure_callback(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=LINK_PAYLOAD)
    mocker.patch("checkout.backend.BackendClient.create_order", return_value=EMBEDDED_ORDER)
    verify = mocker.patch("checkout.backend.BackendClient.verify_payment")

    _, headers = open_session(client, "link", "link_1")
    client.post("/checkout/session/pay", json={}, headers=headers)
    body = client.post("/checkout/session/failure", json={"reason": "BAD_REQUEST_ERROR"}, headers=headers).json()

    assert body["state"] == "failed"
    assert body["view"]["url"] == "/payment/failed?linkId=link_1"
    assert body["view"]["retry_url"] == "/pay/link_1"
    verify.assert_not_called()


def test_dismiss_then_pay_again(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=LINK_PAYLOAD)
    create_order = mocker.patch("checkout.backend.BackendClient.create_order", return_value=EMBEDDED_ORDER)

    _, headers = open_session(client, "link", "link_1")
    client.post("/checkout/session/pay", json={}, headers=headers)
    body = client.post("/checkout/session/dismiss", headers=headers).json()
    assert body["state"] == "ready"
    assert body["pay_enabled"] is True

    body = client.post("/checkout/session/pay", json={}, headers=headers).json()
    assert body["state"] == "awaiting_gateway"
    assert create_order.call_count == 2


def test_stray_dismiss_is_conflict(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=LINK_PAYLOAD)

    _, headers = open_session(client, "link", "link_1")
    response = client.post("/checkout/session/dismiss", headers=headers)

    assert response.status_code == 409


def test_invalid_token_is_rejected(client):
    response = client.get("/checkout/session", headers={"X-Checkout-Session": "not-a-token"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired checkout session"


def test_left_session_is_gone(client, mocker):
    mocker.patch("checkout.backend.BackendClient.fetch_target", return_value=LINK_PAYLOAD)

    _, headers = open_session(client, "link", "link_1")
    assert client.delete("/checkout/session", headers=headers).json() == {"closed": True}

    response = client.get("/checkout/session", headers=headers)
    assert response.status_code == 404


def test_success_page_plain_and_already(client):
    body = client.get("/payment/success?linkId=link_1").json()
    assert body["title"] == "Payment Successful!"
    assert body["target_kind"] == "link"

    body = client.get("/payment/success?qrId=qr_1&already=true").json()
    assert body["title"] == "Already Paid!"
    assert body["message"] == "This payment has already been completed."


def test_success_page_verifies_gateway_return(client, mocker):
    verify_return = mocker.patch(
        "checkout.backend.BackendClient.verify_return",
        side_effect=TargetNotFound("Order not found"),
    )

    body = client.get("/payment/success?flow=link&cf_order_id=cf_1&linkId=link_1").json()

    assert body["outcome"] == "verification_failed"
    assert body["title"] == "Payment Verification Failed"
    assert body["message"] == "Order not found"
    assert verify_return.await_count == 1


def test_failed_page_offers_retry(client):
    body = client.get("/payment/failed?qrId=qr_1").json()

    assert body["title"] == "Payment Failed"
    assert body["retry_url"] == "/qr/qr_1"


def test_gateway_script_is_served(client):
    response = client.get("/checkout/gateway.js")

    assert response.status_code == 200
    assert response.text == "window.Gateway = {};"
    assert response.headers["content-type"].startswith("application/javascript")
