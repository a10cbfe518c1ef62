"""
Gateway sessions.

Two completion protocols that must never be merged:

- embedded: the gateway's modal runs in the page and reports back through
  callbacks (complete / failure / dismiss); completion is verified.
- redirect: a form is posted to the gateway and the browser leaves the
  page. Nothing comes back to this session.

``open_gateway_session`` picks the protocol from the order's
``gateway_mode``.
"""
import asyncio
from enum import Enum
from html import escape
from typing import Awaitable, Callable, Dict, Optional, Union

import httpx

from checkout.config import settings
from checkout.errors import GatewayLoadError, InvalidCallback
from checkout.logging_config import get_logger
from checkout.schemas import (
    CheckoutTarget,
    CompletionArtifacts,
    EmbeddedOrder,
    GatewayMode,
    GatewayOrder,
    PayerInfo,
    RedirectOrder,
    TargetKind,
    VerificationResult,
)
from checkout.verifier import OutcomeVerifier

logger = get_logger(__name__)


# ---------- gateway runtime (process-wide) ----------

class RuntimeState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


async def download_script(url: str) -> bytes:
    async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.content


class GatewayRuntime:
    """
    Lazily loads the embedded gateway's client runtime, once.

    Concurrent callers share a single in-flight load. A failed load is fatal
    for the attempts waiting on it; the next caller starts a fresh load.
    """

    def __init__(self, script_url: str = None, fetch: Callable[[str], Awaitable[bytes]] = None):
        self.script_url = script_url or settings.gateway_script_url
        self._fetch = fetch or download_script
        self.state = RuntimeState.NOT_LOADED
        self.script: Optional[bytes] = None
        self._load_task: Optional[asyncio.Task] = None

    async def ensure_loaded(self) -> None:
        if self.state is RuntimeState.LOADED:
            return
        if self._load_task is None:
            self.state = RuntimeState.LOADING
            self._load_task = asyncio.get_running_loop().create_task(self._load())
        await asyncio.shield(self._load_task)

    async def _load(self) -> None:
        try:
            script = await self._fetch(self.script_url)
        except Exception as exc:
            self.state = RuntimeState.FAILED
            self._load_task = None
            logger.error("gateway_runtime_load_failed", script_url=self.script_url, error=str(exc))
            raise GatewayLoadError() from exc

        self.script = script
        self.state = RuntimeState.LOADED
        self._load_task = None
        logger.info("gateway_runtime_loaded", script_url=self.script_url)


_runtime: Optional[GatewayRuntime] = None


def get_runtime() -> GatewayRuntime:
    global _runtime
    if _runtime is None:
        _runtime = GatewayRuntime()
    return _runtime


# ---------- launch instructions ----------

class EmbeddedLaunch:
    mode = GatewayMode.EMBEDDED

    def __init__(self, options: dict, script_url: str):
        self.options = options
        self.script_url = script_url

    def to_dict(self) -> dict:
        return {"mode": self.mode.value, "script_url": self.script_url, "options": self.options}


class RedirectForm:
    mode = GatewayMode.REDIRECT
    method = "POST"

    def __init__(self, action: str, fields: Dict[str, str]):
        self.action = action
        self.fields = fields

    def to_html(self) -> str:
        inputs = "".join(
            f'<input type="hidden" name="{escape(name)}" value="{escape(value)}">'
            for name, value in self.fields.items()
        )
        return (
            "<!DOCTYPE html><html><body onload=\"document.forms[0].submit()\">"
            f'<form method="{self.method}" action="{escape(self.action)}">{inputs}'
            "<noscript><button type=\"submit\">Continue to payment</button></noscript>"
            "</form></body></html>"
        )

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "method": self.method,
            "action": self.action,
            "fields": self.fields,
            "html": self.to_html(),
        }


GatewayLaunch = Union[EmbeddedLaunch, RedirectForm]


# ---------- sessions ----------

class EmbeddedGatewaySession:
    def __init__(
        self,
        order: EmbeddedOrder,
        target: CheckoutTarget,
        payer: Optional[PayerInfo],
        verifier: OutcomeVerifier,
        runtime: GatewayRuntime,
    ):
        self.order = order
        self.target = target
        self.payer = payer
        self.verifier = verifier
        self.runtime = runtime
        self.is_open = False
        self.completed = False

    async def start(self) -> EmbeddedLaunch:
        await self.runtime.ensure_loaded()
        self.is_open = True
        return EmbeddedLaunch(self.modal_options(), self.runtime.script_url)

    def modal_options(self) -> dict:
        return {
            "key": self.order.key,
            "amount": self.order.amount,
            "currency": self.order.currency,
            "name": settings.merchant_name,
            "description": self.target.description or self.target.kind.default_description,
            "order_id": self.order.order_id,
            "prefill": self._prefill(),
            "theme": {"color": settings.theme_color},
        }

    def _prefill(self) -> dict:
        payer = self.payer or PayerInfo()
        if self.target.kind is TargetKind.LINK:
            return {
                "name": payer.name or self.target.customer_name,
                "email": payer.email or self.target.customer_email,
                "contact": payer.phone,
            }
        return {"name": payer.name, "email": payer.email, "contact": payer.phone}

    def accepts(self, artifacts: CompletionArtifacts) -> bool:
        # a duplicate completion for the same order may arrive after the first
        if artifacts.order_id != self.order.order_id:
            return False
        return self.is_open or self.completed

    def _close(self) -> None:
        if not self.is_open:
            raise InvalidCallback()
        self.is_open = False

    async def complete(self, artifacts: CompletionArtifacts) -> VerificationResult:
        if not self.accepts(artifacts):
            raise InvalidCallback("Completion does not belong to the current order")
        self.is_open = False
        self.completed = True
        return await self.verifier.verify(
            artifacts.order_id,
            artifacts.payment_id,
            artifacts.signature,
            self.target.ref,
            payer=self.payer,
        )

    def fail(self) -> None:
        self._close()

    def dismiss(self) -> None:
        self._close()


class RedirectGatewaySession:
    def __init__(self, order: RedirectOrder):
        self.order = order

    async def start(self) -> RedirectForm:
        return RedirectForm(self.order.url, dict(self.order.fields))


GatewaySession = Union[EmbeddedGatewaySession, RedirectGatewaySession]


def open_gateway_session(
    order: GatewayOrder,
    target: CheckoutTarget,
    payer: Optional[PayerInfo],
    verifier: OutcomeVerifier,
    runtime: GatewayRuntime = None,
) -> GatewaySession:
    if isinstance(order, EmbeddedOrder):
        return EmbeddedGatewaySession(order, target, payer, verifier, runtime or get_runtime())
    return RedirectGatewaySession(order)
