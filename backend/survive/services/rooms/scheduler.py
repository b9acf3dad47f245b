import logging
import time
from typing import Any, Callable


class TimerHandle:
    """Returned by ``schedule``; ``cancel`` stops a timer that has not fired."""

    def __init__(self, label: str, delay: float, deadline: float):
        self.label = label
        self.delay = delay
        self.deadline = deadline
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


class BackgroundScheduler:
    """Run callbacks after a delay on Socket.IO background tasks.

    Uses ``socketio.sleep`` so the wait cooperates with whichever async mode
    the server runs under. Callers still re-check room state when the
    callback fires. The wait is sliced into ``step``-second sleeps so a
    cancelled timer ends its task within one step.
    """

    def __init__(self, socketio, logger=None, step: float = 1.0):
        self._socketio = socketio
        self._step = step
        self._logger = logger or logging.getLogger(__name__)

    def schedule(self, delay: float, callback: Callable[..., Any], *args, label: str = 'timer') -> TimerHandle:
        delay = max(0.0, float(delay))
        handle = TimerHandle(label, delay, time.time() + delay)
        self._logger.info(f"[timer-set] {label} duration={delay}s deadline={handle.deadline}")
        self._socketio.start_background_task(self._worker, handle, callback, args)
        return handle

    def _worker(self, handle: TimerHandle, callback, args) -> None:
        slept = 0.0
        while slept < handle.delay and not handle.cancelled:
            chunk = min(self._step, handle.delay - slept)
            self._socketio.sleep(chunk)
            slept += chunk
        if handle.cancelled:
            self._logger.info(f"[timer-skip] {handle.label} cancelled")
            return
        handle.fired = True
        self._logger.info(f"[timer-fire] {handle.label}")
        try:
            callback(*args)
        except Exception:
            self._logger.exception(f"[timer-error] {handle.label}")
