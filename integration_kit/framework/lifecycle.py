from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import InitializationError


class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[ClientState, tuple[ClientState, ...]] = {
    ClientState.UNINITIALIZED: (ClientState.INITIALIZING,),
    ClientState.INITIALIZING: (ClientState.READY, ClientState.FAILED),
    ClientState.FAILED: (ClientState.INITIALIZING,),
    ClientState.READY: (),
}


@dataclass(frozen=True, slots=True)
class LifecycleSnapshot:
    state: ClientState
    transitioned_at: datetime
    last_error: Optional[str] = None


TransitionListener = Callable[[ClientState, ClientState, Optional[BaseException]], None]


class LifecycleController:
    """
    Owns the readiness state of one client.

    Initialization is single-flight: the first caller starts one probe task and
    every concurrent caller awaits that same task, so N simultaneous first
    calls trigger exactly one probe. A failed attempt is not retried on its
    own; the next call starts a fresh attempt.
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[Any]],
        vendor: str = "vendor",
        on_transition: Optional[TransitionListener] = None,
    ) -> None:
        self._probe = probe
        self._vendor = vendor
        self._on_transition = on_transition
        self._state = ClientState.UNINITIALIZED
        self._transitioned_at = datetime.now(timezone.utc)
        self._inflight: Optional[asyncio.Task[None]] = None
        self._last_error: Optional[BaseException] = None
        self.attempts = 0

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def transitioned_at(self) -> datetime:
        return self._transitioned_at

    @property
    def is_ready(self) -> bool:
        return self._state is ClientState.READY

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def snapshot(self) -> LifecycleSnapshot:
        return LifecycleSnapshot(
            state=self._state,
            transitioned_at=self._transitioned_at,
            last_error=str(self._last_error) if self._last_error is not None else None,
        )

    async def ensure_ready(self) -> None:
        """
        Return once the client is ready, initializing it if needed.

        Raises:
            InitializationError: If the probe of the current attempt fails
        """
        if self._state is ClientState.READY:
            return
        if self._inflight is None:
            task = asyncio.get_running_loop().create_task(self._initialize())
            task.add_done_callback(_consume_exception)
            self._inflight = task
        # Shielded so a caller that stops waiting does not cancel the shared attempt.
        await asyncio.shield(self._inflight)

    def _transition(self, target: ClientState, error: Optional[BaseException] = None) -> None:
        previous = self._state
        if target not in ALLOWED_TRANSITIONS[previous]:
            raise RuntimeError(f"lifecycle transition {previous.value} -> {target.value} not permitted")
        self._state = target
        self._transitioned_at = datetime.now(timezone.utc)
        if self._on_transition is not None:
            self._on_transition(previous, target, error)

    async def _initialize(self) -> None:
        self.attempts += 1
        self._transition(ClientState.INITIALIZING)
        try:
            await self._probe()
        except Exception as exc:
            self._last_error = exc
            self._transition(ClientState.FAILED, exc)
            if isinstance(exc, InitializationError):
                raise
            raise InitializationError(
                f"Failed to initialize {self._vendor}: {exc}",
                provider=self._vendor,
                cause=exc,
            ) from exc
        else:
            self._last_error = None
            self._transition(ClientState.READY)
        finally:
            self._inflight = None


def _consume_exception(task: asyncio.Task) -> None:
    # Mark the outcome as retrieved even when every waiter has gone away.
    if not task.cancelled():
        task.exception()
