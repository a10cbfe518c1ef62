from enum import Enum
from typing import Annotated, ClassVar, Dict, Literal, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TargetKind(str, Enum):
    LINK = "link"
    QR = "qr"

    @property
    def query_param(self) -> str:
        return "linkId" if self is TargetKind.LINK else "qrId"

    @property
    def api_prefix(self) -> str:
        return "payment" if self is TargetKind.LINK else "qr"

    @property
    def checkout_path(self) -> str:
        return "/pay" if self is TargetKind.LINK else "/qr"

    @property
    def not_found_message(self) -> str:
        return "Payment link not found" if self is TargetKind.LINK else "QR Code not found"

    @property
    def default_description(self) -> str:
        return "Payment" if self is TargetKind.LINK else "QR Payment"


class AmountMode(str, Enum):
    FIXED = "fixed"
    VARIABLE = "variable"


class TargetStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class GatewayMode(str, Enum):
    EMBEDDED = "embedded"
    REDIRECT = "redirect"


class VerificationResult(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"


class TargetRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: TargetKind
    id: str

    @property
    def query(self) -> Dict[str, str]:
        return {self.kind.query_param: self.id}

    @property
    def checkout_url(self) -> str:
        return f"{self.kind.checkout_path}/{self.id}"


# ---------- checkout targets ----------

class CheckoutTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: ClassVar[TargetKind]

    id: str
    amount_mode: AmountMode = Field(AmountMode.FIXED, alias="amountMode")
    amount: Optional[int] = None
    description: Optional[str] = None
    payee_name: Optional[str] = Field(None, alias="merchant")
    status: TargetStatus = TargetStatus.ACTIVE

    @property
    def ref(self) -> TargetRef:
        return TargetRef(kind=self.kind, id=self.id)

    @model_validator(mode="after")
    def _check_amount(self):
        if self.amount_mode is AmountMode.FIXED:
            if self.amount is None or self.amount <= 0:
                raise ValueError("fixed-amount target must carry a positive amount")
        else:
            self.amount = None
        return self


class PaymentLink(CheckoutTarget):
    kind: ClassVar[TargetKind] = TargetKind.LINK

    customer_name: Optional[str] = Field(None, alias="customerName")
    customer_email: Optional[str] = Field(None, alias="customerEmail")

    @property
    def is_static(self) -> bool:
        return False


class QRCode(CheckoutTarget):
    kind: ClassVar[TargetKind] = TargetKind.QR

    is_static: bool = Field(False, alias="isStatic")
    # None means the backend sent no countdown; no local clock runs
    remaining_seconds: Optional[int] = Field(None, alias="remainingSeconds")

    @model_validator(mode="before")
    @classmethod
    def _default_amount_mode(cls, data):
        # static QR codes are always pay-what-you-want
        if isinstance(data, dict):
            is_static = bool(data.get("isStatic", data.get("is_static", False)))
            if is_static:
                data = {**data, "amountMode": AmountMode.VARIABLE.value}
                data.pop("amount_mode", None)
            elif "amountMode" not in data and "amount_mode" not in data:
                data = {**data, "amountMode": AmountMode.FIXED.value}
        return data

    @field_validator("remaining_seconds", mode="before")
    @classmethod
    def _clamp_remaining(cls, value):
        if value is None:
            return None
        return max(0, int(value))


# ---------- payer / orders ----------

class PayerInfo(BaseModel):
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return (value or "").strip()


class EmbeddedOrder(BaseModel):
    gateway_mode: Literal[GatewayMode.EMBEDDED] = GatewayMode.EMBEDDED
    order_id: str
    amount: int
    currency: str
    key: str


class RedirectOrder(BaseModel):
    gateway_mode: Literal[GatewayMode.REDIRECT] = GatewayMode.REDIRECT
    order_id: Optional[str] = None
    amount: int
    currency: str
    url: str
    fields: Dict[str, str]


GatewayOrder = Annotated[Union[EmbeddedOrder, RedirectOrder], Field(discriminator="gateway_mode")]


class CompletionArtifacts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="razorpay_order_id", min_length=1)
    payment_id: str = Field(alias="razorpay_payment_id", min_length=1)
    signature: str = Field(alias="razorpay_signature", min_length=1)


# ---------- terminal views ----------

class TerminalView(BaseModel):
    outcome: Literal["success", "failed"]
    target: TargetRef
    already: bool = False
    message: Optional[str] = None

    @classmethod
    def success(cls, target: TargetRef, already: bool = False, message: str = None):
        return cls(outcome="success", target=target, already=already, message=message)

    @classmethod
    def failed(cls, target: TargetRef, message: str = None):
        return cls(outcome="failed", target=target, message=message)

    @property
    def url(self) -> str:
        params = dict(self.target.query)
        if self.outcome == "success" and self.already:
            params["already"] = "true"
        return f"/payment/{self.outcome}?{urlencode(params)}"

    @property
    def retry_url(self) -> Optional[str]:
        if self.outcome != "failed":
            return None
        return self.target.checkout_url

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "target_kind": self.target.kind.value,
            "target_id": self.target.id,
            "already": self.already,
            "message": self.message,
            "url": self.url,
            "retry_url": self.retry_url,
        }
