"""Deferred commit: an action that runs after a delay unless cancelled first.

Backs undoable deletes. The dashboard shows an "undo" control while the
action is pending; cancelling before the deadline means nothing happens.
"""

import threading
from typing import Any, Callable, Optional

from formcraft.logging import get_logger

logger = get_logger(__name__)


class DeferredAction:
    """Run ``action`` once after ``delay_seconds`` unless cancelled.

    Examples:
        >>> calls = []
        >>> pending = DeferredAction(lambda: calls.append("done"), delay_seconds=60)
        >>> pending.start()
        >>> pending.cancel()
        True
        >>> pending.run_now()
        False
        >>> calls
        []
    """

    def __init__(self, action: Callable[[], Any], delay_seconds: float):
        self._action = action
        self.delay_seconds = delay_seconds
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._settled = False
        self.cancelled = False
        self.completed = False

    def start(self) -> None:
        with self._lock:
            if self._timer is not None or self._settled:
                return
            self._timer = threading.Timer(self.delay_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> bool:
        """Cancel the action. Returns False if it already ran or was cancelled."""
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            self.cancelled = True
            if self._timer is not None:
                self._timer.cancel()
            return True

    def run_now(self) -> bool:
        """Run the action immediately instead of waiting. Returns False if already settled.

        Exceptions from the action propagate to the caller.
        """
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            if self._timer is not None:
                self._timer.cancel()
        self._action()
        self.completed = True
        return True

    @property
    def pending(self) -> bool:
        return not self._settled

    def _fire(self) -> None:
        with self._lock:
            if self._settled:
                return
            self._settled = True
        # timer thread: nobody to propagate to
        try:
            self._action()
            self.completed = True
        except Exception:
            logger.exception("deferred action failed")


__all__ = ["DeferredAction"]
