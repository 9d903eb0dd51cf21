# shellrun/runners/process.py
"""
Operating-system process primitives used by the command runner.

This module is the only place that touches pids directly: it launches the
shell child, streams its output into sinks, probes whether it is still
alive, delivers signals to its process group and reaps it.

Waiting is split in two steps. `ChildProcess.wait` blocks until the child
has exited but leaves it as a zombie (`WNOWAIT`), so its pid cannot be
recycled while a watchdog may still signal it. `ChildProcess.reap` then
collects the status and releases the pid.
"""

from __future__ import annotations

import codecs
import enum
import os
import select
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from shellrun.utils.logging import get_logger

CHUNK_SIZE = 4096
# How often blocked I/O threads check whether they have been abandoned.
IO_TICK = 0.05


class Liveness(str, enum.Enum):
    """Result of a liveness probe."""

    ALIVE = "alive"
    EXITED = "exited"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RunStatus:
    """
    Final status of a child process: an exit code, a terminating signal, or
    neither when the status could not be collected.
    """

    exit_code: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_wait_status(cls, status: int) -> "RunStatus":
        if os.WIFSIGNALED(status):
            return cls(signal=os.WTERMSIG(status))
        if os.WIFEXITED(status):
            return cls(exit_code=os.WEXITSTATUS(status))
        return cls()

    @classmethod
    def from_siginfo(cls, info: Any) -> "RunStatus":
        """Builds a status from an `os.waitid` result."""
        if info is None:
            return cls()
        if info.si_code == os.CLD_EXITED:
            return cls(exit_code=info.si_status)
        if info.si_code in (os.CLD_KILLED, os.CLD_DUMPED):
            return cls(signal=info.si_status)
        return cls()

    @classmethod
    def unknown(cls) -> "RunStatus":
        return cls()

    @property
    def exitstatus(self) -> Optional[int]:
        return self.exit_code

    @property
    def signaled(self) -> bool:
        return self.signal is not None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def known(self) -> bool:
        return self.exit_code is not None or self.signal is not None

    @property
    def returncode(self) -> Optional[int]:
        """Same convention as `subprocess.Popen.returncode`."""
        if self.signal is not None:
            return -self.signal
        return self.exit_code

    @property
    def signal_name(self) -> Optional[str]:
        if self.signal is None:
            return None
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return str(self.signal)

    def __str__(self) -> str:
        if self.signal is not None:
            return f"signal {self.signal_name}"
        if self.exit_code is not None:
            return f"exit code {self.exit_code}"
        return "unknown status"


def probe(pid: int) -> Liveness:
    """
    Reports whether `pid` still refers to a running process, without
    affecting it.

    For our own children `waitid(WNOHANG | WNOWAIT)` tells a running child
    from a zombie without reaping it. For anything else (already reaped, or
    never ours) fall back to signal 0: a missing pid has exited, a pid that
    exists cannot be confirmed as ours and is reported as unknown.
    """
    try:
        info = os.waitid(os.P_PID, pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
    except ChildProcessError:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return Liveness.EXITED
        except PermissionError:
            pass
        return Liveness.UNKNOWN
    return Liveness.ALIVE if info is None else Liveness.EXITED


def send_signal(pid: int, sig: int) -> bool:
    """
    Sends `sig` to the process group led by `pid`, falling back to the
    process itself if the group is gone.

    Returns:
        False if no such process exists, True otherwise.
    """
    try:
        os.killpg(pid, sig)
        return True
    except ProcessLookupError:
        pass
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    return True


def _pump(stream, sink: Any, abandon: threading.Event) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    fd = stream.fileno()
    try:
        while not abandon.is_set():
            ready, _, _ = select.select([fd], [], [], IO_TICK)
            if not ready:
                continue
            chunk = os.read(fd, CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                sink.append(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            sink.append(tail)
    finally:
        stream.close()


def _feed(stream, data: bytes, abandon: threading.Event) -> None:
    fd = stream.fileno()
    view = memoryview(data)
    try:
        while view and not abandon.is_set():
            _, ready, _ = select.select([], [fd], [], IO_TICK)
            if not ready:
                continue
            written = os.write(fd, view[:select.PIPE_BUF])
            view = view[written:]
    except BrokenPipeError:
        # child exited or closed its stdin before reading everything
        pass
    finally:
        try:
            stream.close()
        except BrokenPipeError:
            pass


class ChildProcess:
    """
    A launched shell command together with the threads moving its I/O.
    """

    def __init__(
        self,
        popen: subprocess.Popen,
        stdout: Any,
        stderr: Any,
        stdin_data: Optional[bytes] = None,
    ) -> None:
        self.pid = popen.pid
        self.observed = RunStatus.unknown()
        self._popen = popen
        self._abandon = threading.Event()
        self._threads: List[threading.Thread] = [
            threading.Thread(target=_pump, args=(popen.stdout, stdout, self._abandon),
                             name=f"shellrun-stdout-{self.pid}", daemon=True),
            threading.Thread(target=_pump, args=(popen.stderr, stderr, self._abandon),
                             name=f"shellrun-stderr-{self.pid}", daemon=True),
        ]
        if stdin_data is not None:
            self._threads.append(
                threading.Thread(target=_feed, args=(popen.stdin, stdin_data, self._abandon),
                                 name=f"shellrun-stdin-{self.pid}", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def wait(self) -> RunStatus:
        """
        Blocks until the child has exited, leaving it unreaped.

        Returns:
            The status observed at exit, or an unknown status if the child
            cannot be waited for.
        """
        try:
            info = os.waitid(os.P_PID, self.pid, os.WEXITED | os.WNOWAIT)
        except ChildProcessError:
            return self.observed
        self.observed = RunStatus.from_siginfo(info)
        return self.observed

    def reap(self) -> RunStatus:
        """
        Collects the final status of the child and releases its pid.

        A child that is already gone is not an error. A child that cannot be
        waited for is reported with a warning and the status observed by
        `wait` is returned instead.
        """
        log = get_logger(__name__)
        status = self.observed
        try:
            _, wait_status = os.waitpid(self.pid, 0)
            status = RunStatus.from_wait_status(wait_status)
        except ProcessLookupError:
            pass
        except ChildProcessError:
            log.warning("Could not reap process '%s'.", self.pid)

        # Popen must not try to wait for the pid again
        self._popen.returncode = status.returncode if status.known else -1
        return status

    def kill_group(self) -> bool:
        """
        Sends KILL to whatever is left of the child's process group.

        Used after a watchdog fired: the shell may be gone while commands it
        started in the background still hold its output pipes open. The
        unreaped leader keeps the group id from being reused.
        """
        return send_signal(self.pid, signal.SIGKILL)

    def join(self, timeout: Optional[float] = None) -> None:
        """
        Waits for the output pumps and the stdin feeder to finish.

        Args:
            timeout: Seconds to keep draining output once the child has
                exited. Processes it left behind can hold its pipes open
                indefinitely; after this long the threads stop reading and
                any later output is dropped. None waits for end of file.
        """
        if timeout is not None:
            deadline = time.monotonic() + timeout
            for thread in self._threads:
                thread.join(max(0.0, deadline - time.monotonic()))
            if any(thread.is_alive() for thread in self._threads):
                get_logger(__name__).debug(
                    "Output of process '%s' still open after %ss, abandoning it",
                    self.pid, timeout,
                )
            self._abandon.set()
        for thread in self._threads:
            thread.join()


def launch(
    command: str,
    env: Dict[str, str],
    cwd: str,
    stdout: Any,
    stderr: Any,
    stdin: Optional[str] = None,
) -> ChildProcess:
    """
    Starts `command` through `/bin/sh -c` as the leader of a new session.

    Args:
        command: The shell command, passed through verbatim.
        env: The complete environment of the child.
        cwd: Working directory of the child.
        stdout: Sink receiving decoded stdout chunks.
        stderr: Sink receiving decoded stderr chunks.
        stdin: Optional text written to the child's stdin, which is then
            closed. Without it the child reads from /dev/null.

    Returns:
        The running ChildProcess.

    Raises:
        OSError: If the process could not be created.
    """
    popen = subprocess.Popen(
        command,
        shell=True,
        cwd=cwd,
        env=env,
        stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        start_new_session=True,
    )
    stdin_data = stdin.encode("utf-8") if stdin is not None else None
    return ChildProcess(popen, stdout, stderr, stdin_data=stdin_data)
