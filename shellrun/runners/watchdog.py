# shellrun/runners/watchdog.py
"""
Background enforcement of a command's deadline.

A Watchdog is armed for a single pid. It fires when the deadline elapses,
when the caller context it watches is no longer alive, or when `fire()` is
called. Firing sends TERM to the process group, then polls the liveness
probe for a grace period and sends KILL if the process is still running.

    ARMED -> TERM -> KILL -> STOPPED
    ARMED -> STOPPED                  (stop() before firing)
"""

from __future__ import annotations

import enum
import signal
import threading
import time
from typing import Any, Callable, List, Optional

from shellrun.runners import process
from shellrun.runners.process import Liveness
from shellrun.utils.logging import get_logger


class WatchdogState(str, enum.Enum):
    ARMED = "armed"
    TERM = "term"
    KILL = "kill"
    STOPPED = "stopped"


class Watchdog:
    """
    Watches one child process and escalates TERM then KILL when it overruns.

    Args:
        pid: The process to supervise. No other pid is ever signaled.
        timeout: Seconds after `start()` at which to fire, or None.
        context: Object with an `is_alive()` method (typically a thread);
            the watchdog fires once it reports False. Optional.
        grace_period: Seconds to wait after TERM before sending KILL.
        poll_interval: Tick used while armed and while polling liveness.
        probe: Liveness query, defaults to `process.probe`.
        send_signal: Signal primitive, defaults to `process.send_signal`.
    """

    def __init__(
        self,
        pid: int,
        timeout: Optional[float] = None,
        context: Any = None,
        grace_period: float = 2.0,
        poll_interval: float = 0.1,
        probe: Optional[Callable[[int], Liveness]] = None,
        send_signal: Optional[Callable[[int, int], bool]] = None,
    ) -> None:
        self.pid = pid
        self.timeout = timeout
        self.context = context
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self.state = WatchdogState.ARMED
        self.fired = False
        self.signals: List[str] = []
        self._probe = probe or process.probe
        self._send_signal = send_signal or process.send_signal
        self._wake = threading.Event()
        self._stop_requested = False
        self._fire_requested = False
        self._started: Optional[float] = None
        self._thread = threading.Thread(
            target=self._run, name=f"shellrun-watchdog-{pid}", daemon=True
        )

    def start(self) -> "Watchdog":
        self._started = time.monotonic()
        self._thread.start()
        return self

    def stop(self) -> None:
        """Disarms the watchdog; the supervised process has exited."""
        self._stop_requested = True
        self._wake.set()

    def fire(self) -> None:
        """Escalates immediately, regardless of deadline or context."""
        self._fire_requested = True
        self._wake.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        log = get_logger(__name__)
        try:
            if self._wait_armed():
                self._escalate()
        except OSError as e:
            log.exception("Watchdog for process '%s' failed: %s", self.pid, e)
        finally:
            self.state = WatchdogState.STOPPED

    def _wait_armed(self) -> bool:
        """Returns True when the process must be terminated."""
        deadline = None if self.timeout is None else self._started + self.timeout
        while True:
            if self._fire_requested:
                return True
            if self._stop_requested:
                return False
            if self.context is not None and not self.context.is_alive():
                return True
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return True
                if self.context is None:
                    wait = remaining
                else:
                    wait = min(wait, remaining)
            self._wake.wait(wait)

    def _escalate(self) -> None:
        log = get_logger(__name__)
        self.fired = True
        log.debug("Terminating process '%s' (timeout=%s)", self.pid, self.timeout)
        if not self._signal(signal.SIGTERM):
            return
        self.state = WatchdogState.TERM

        grace_end = time.monotonic() + self.grace_period
        while True:
            if self._stop_requested:
                return
            try:
                liveness = self._probe(self.pid)
            except ProcessLookupError:
                return
            if liveness is not Liveness.ALIVE:
                return
            remaining = grace_end - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(self.poll_interval, remaining))

        log.debug("Process '%s' survived TERM for %ss, sending KILL", self.pid, self.grace_period)
        if self._signal(signal.SIGKILL):
            self.state = WatchdogState.KILL

    def _signal(self, sig: signal.Signals) -> bool:
        try:
            delivered = self._send_signal(self.pid, sig)
        except ProcessLookupError:
            delivered = False
        if delivered:
            self.signals.append(sig.name)
        return delivered
