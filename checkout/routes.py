from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field

from checkout.auth import issue_session_token, verify_session_token
from checkout.errors import GatewayLoadError, InvalidCallback
from checkout.schemas import CompletionArtifacts, PayerInfo, TargetKind, TargetRef
from checkout.session import CheckoutSession, SessionRegistry

router = APIRouter()

SUCCESS_MESSAGE = "Thank you for your payment. Your transaction has been processed successfully."
ALREADY_PAID_MESSAGE = "This payment has already been completed."
FAILED_MESSAGE = "Unfortunately, your payment could not be processed. Please try again."


class PayRequest(BaseModel):
    payer: PayerInfo = Field(default_factory=PayerInfo)
    amount: Optional[Union[int, str]] = None


class FailureReport(BaseModel):
    reason: Optional[str] = None


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_session(
    claims: dict = Depends(verify_session_token),
    registry: SessionRegistry = Depends(get_registry),
) -> CheckoutSession:
    session = registry.get(claims["sid"])
    if session is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return session


@router.post("/checkout/{kind}/{target_id}/session")
async def open_session(kind: TargetKind, target_id: str, registry: SessionRegistry = Depends(get_registry)):
    session = await registry.open(kind, target_id)
    return {"token": issue_session_token(session.id, session.ref), **session.snapshot()}


@router.get("/checkout/session")
def read_session(session: CheckoutSession = Depends(get_session)):
    return session.snapshot()


@router.post("/checkout/session/pay")
async def pay(request: PayRequest, session: CheckoutSession = Depends(get_session)):
    launch = await session.pay(request.payer, request.amount)
    return {**session.snapshot(), "launch": launch.to_dict() if launch is not None else None}


@router.post("/checkout/session/complete")
async def complete(artifacts: CompletionArtifacts, session: CheckoutSession = Depends(get_session)):
    try:
        await session.complete(artifacts)
    except InvalidCallback as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    return session.snapshot()


@router.post("/checkout/session/failure")
def failure(report: FailureReport, session: CheckoutSession = Depends(get_session)):
    try:
        session.fail(report.reason)
    except InvalidCallback as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    return session.snapshot()


@router.post("/checkout/session/dismiss")
def dismiss(session: CheckoutSession = Depends(get_session)):
    try:
        session.dismiss()
    except InvalidCallback as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    return session.snapshot()


@router.delete("/checkout/session")
def leave(claims: dict = Depends(verify_session_token), registry: SessionRegistry = Depends(get_registry)):
    registry.close(claims["sid"])
    return {"closed": True}


@router.get("/checkout/gateway.js")
async def gateway_script(request: Request):
    runtime = request.app.state.runtime
    try:
        await runtime.ensure_loaded()
    except GatewayLoadError as exc:
        raise HTTPException(status_code=503, detail=exc.message)
    return Response(content=runtime.script, media_type="application/javascript")


def _target_from_query(link_id: Optional[str], qr_id: Optional[str]) -> Optional[TargetRef]:
    if link_id:
        return TargetRef(kind=TargetKind.LINK, id=link_id)
    if qr_id:
        return TargetRef(kind=TargetKind.QR, id=qr_id)
    return None


def _target_fields(target: Optional[TargetRef]) -> dict:
    return {
        "target_kind": target.kind.value if target else None,
        "target_id": target.id if target else None,
    }


@router.get("/payment/success")
async def payment_success(
    request: Request,
    linkId: Optional[str] = None,
    qrId: Optional[str] = None,
    already: bool = False,
    flow: Optional[str] = None,
    cf_order_id: Optional[str] = None,
    message: Optional[str] = None,
):
    target = _target_from_query(linkId, qrId)

    # redirect gateways land here directly; confirm before celebrating
    if flow and cf_order_id:
        error = await request.app.state.verifier.verify_return(flow, cf_order_id, target)
        if error:
            return {
                "outcome": "verification_failed",
                "title": "Payment Verification Failed",
                "message": error,
                "already": False,
                "confirmation_sent": False,
                **_target_fields(target),
            }

    if already:
        title, text = "Already Paid!", ALREADY_PAID_MESSAGE
    else:
        title, text = "Payment Successful!", message or SUCCESS_MESSAGE
    return {
        "outcome": "success",
        "title": title,
        "message": text,
        "already": already,
        "confirmation_sent": True,
        **_target_fields(target),
    }


@router.get("/payment/failed")
def payment_failed(linkId: Optional[str] = None, qrId: Optional[str] = None):
    target = _target_from_query(linkId, qrId)
    return {
        "outcome": "failed",
        "title": "Payment Failed",
        "message": FAILED_MESSAGE,
        "retry_url": target.checkout_url if target else None,
        **_target_fields(target),
    }
