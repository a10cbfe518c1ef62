"""
Countdown for dynamic QR codes.

The clock is advisory: it only blocks the pay action locally. The backend
re-checks expiry when an order is created and its answer wins.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from checkout.config import settings
from checkout.logging_config import get_logger
from checkout.schemas import CheckoutTarget

logger = get_logger(__name__)

TICK_SECONDS = 1.0


class ClockState(str, Enum):
    INACTIVE = "inactive"
    RUNNING = "running"
    EXPIRED = "expired"


class ExpiryClock:
    def __init__(
        self,
        remaining_seconds: Optional[int],
        on_expire: Optional[Callable[[], None]] = None,
        urgent_seconds: int = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.on_expire = on_expire
        self.urgent_seconds = settings.urgent_seconds if urgent_seconds is None else urgent_seconds
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

        if remaining_seconds is None:
            self.state = ClockState.INACTIVE
            self.remaining = 0
        else:
            self.remaining = max(0, int(remaining_seconds))
            self.state = ClockState.RUNNING if self.remaining > 0 else ClockState.EXPIRED

    @classmethod
    def for_target(cls, target: CheckoutTarget, **kwargs) -> "ExpiryClock":
        # payment links and static QR codes never expire
        remaining = getattr(target, "remaining_seconds", None)
        if target.is_static:
            remaining = None
        return cls(remaining, **kwargs)

    @property
    def expired(self) -> bool:
        return self.state is ClockState.EXPIRED

    @property
    def urgent(self) -> bool:
        return self.state is ClockState.RUNNING and self.remaining < self.urgent_seconds

    @property
    def display(self) -> str:
        mins, secs = divmod(self.remaining, 60)
        return f"{mins:02d}:{secs:02d}"

    def start(self) -> None:
        if self.state is not ClockState.RUNNING or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def force_expire(self) -> None:
        """The backend reported the code expired; its answer overrides ours."""
        if self.state is not ClockState.RUNNING:
            return
        self.stop()
        self.remaining = 0
        self._expire()

    async def join(self) -> None:
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while self.remaining > 0:
            await self._sleep(TICK_SECONDS)
            self.remaining -= 1
        self._expire()

    def _expire(self) -> None:
        self.state = ClockState.EXPIRED
        logger.info("qr_clock_expired")
        if self.on_expire is not None:
            self.on_expire()

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "remaining_seconds": self.remaining,
            "display": self.display if self.state is not ClockState.INACTIVE else None,
            "urgent": self.urgent,
        }
