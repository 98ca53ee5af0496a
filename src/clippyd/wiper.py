# region Docstring
"""
clippyd.wiper
Auto-wipe countdown state machine.
Overview:
- After a capture or a restore the daemon starts a countdown; when it reaches zero
    the clipboard is cleared. Clients can pause, resume or cancel it.
Contents:
- Models:
    - WiperState: countdown (remaining seconds or None when idle) and paused.
- Classes:
    - Wiper:
        - start_countdown(): (re)start at the configured delay
        - pause() / resume(): only while active
        - stop_countdown(): back to idle without wiping
        - update_delay(delay): used by future countdowns only
        - state: current WiperState
Design Notes:
- Idle is `countdown is None`; `paused` is only ever True while active.
- At most one tick task exists. start_countdown cancels the previous one first.
- Every observable transition calls the tick callback synchronously, before the
    method returns. The wipe callback is awaited exactly once per countdown that
    runs to zero.
"""
# endregion
# region Imports
import asyncio
from logging import Logger as T_Logger
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict

# endregion
# region WiperState


class WiperState(BaseModel):
    countdown: Optional[int] = None
    paused: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def active(self) -> bool:
        return self.countdown is not None


# endregion
# region Wiper


class Wiper:
    """
    Countdown to clearing the clipboard.

    Attributes:
        __delay (int): Seconds a new countdown starts at.
        __on_wipe (Callable): Awaited when a countdown reaches zero.
        __on_tick (Callable): Called with the new WiperState on every transition.
        __tick_seconds (float): Length of one countdown step.
        __countdown (Optional[int]): Remaining steps, None while idle.
        __paused (bool): Whether decrementing is suspended.
        __task (Optional[asyncio.Task]): The running tick task.
    """

    __delay: int
    __on_wipe: Callable[[], Awaitable[None]]
    __on_tick: Callable[[WiperState], None]
    __logger: T_Logger
    __tick_seconds: float
    __countdown: Optional[int]
    __paused: bool
    __task: Optional[asyncio.Task]

    def __init__(
        self,
        delay: int,
        on_wipe: Callable[[], Awaitable[None]],
        on_tick: Callable[[WiperState], None],
        logger: T_Logger,
        tick_seconds: float = 1.0,
    ) -> None:
        self.__delay = delay
        self.__on_wipe = on_wipe
        self.__on_tick = on_tick
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__tick_seconds = tick_seconds
        self.__countdown = None
        self.__paused = False
        self.__task = None

    @property
    def state(self) -> WiperState:
        return WiperState(countdown=self.__countdown, paused=self.__paused)

    @property
    def delay(self) -> int:
        return self.__delay

    def start_countdown(self) -> None:
        """Restart the countdown at the configured delay. Requires a running event loop."""
        self._cancel_task()
        self.__countdown = self.__delay
        self.__paused = False
        self.__task = asyncio.create_task(self._run(), name="wiper-countdown")
        self.__on_tick(self.state)

    def stop_countdown(self) -> None:
        """Return to idle without wiping."""
        was_active = self.__countdown is not None
        self._cancel_task()
        self.__countdown = None
        self.__paused = False
        if was_active:
            self.__on_tick(self.state)

    def pause(self) -> None:
        if self.__countdown is None:
            return
        self.__paused = True
        self.__on_tick(self.state)

    def resume(self) -> None:
        if self.__countdown is None:
            return
        self.__paused = False
        self.__on_tick(self.state)

    def update_delay(self, delay: int) -> None:
        """Applies to the next start_countdown(); a running countdown is unaffected."""
        self.__delay = delay

    def _cancel_task(self) -> None:
        if self.__task is not None:
            if self.__task is not asyncio.current_task():
                self.__task.cancel()
            self.__task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.__tick_seconds)
            if self.__paused or self.__countdown is None:
                continue

            self.__countdown -= 1
            self.__on_tick(self.state)

            if self.__countdown <= 0:
                self.__task = None
                self.__countdown = None
                self.__paused = False
                self.__logger.debug("Countdown finished, wiping clipboard.")
                try:
                    await self.__on_wipe()
                except Exception as e:
                    self.__logger.exception("Wipe callback failed. %s", e)
                return


# endregion

__all__ = ["Wiper", "WiperState"]
