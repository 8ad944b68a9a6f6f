"""Supervised execution of the program that runs under the lock.

Stream relays, the exit waiter and trapped signal handlers all report into
one event queue; the caller blocks on the first event and decides the exit
code from it.
"""

from __future__ import annotations

import contextlib
import logging
import queue
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import BinaryIO

from consul_lock.core.constants import (
    EXIT_CODE_ERROR,
    EXIT_CODE_NO_STATUS,
    EXIT_CODE_UNKNOWN_SIGNAL,
    RELAY_CHUNK_SIZE,
    RELAY_JOIN_TIMEOUT_SECONDS,
    TRAP_SIGNALS,
)
from consul_lock.core.exceptions import ProcessStartError


@dataclass(frozen=True)
class _SignalReceived:
    signum: int


@dataclass(frozen=True)
class _ChildExited:
    returncode: object


def signal_exit_code(signum: int) -> int:
    """Exit code reported when a trapped signal wins: its numeric value."""
    try:
        return int(signal.Signals(signum))
    except ValueError:
        return EXIT_CODE_UNKNOWN_SIGNAL


def translate_returncode(returncode: object, logger: logging.Logger | None = None) -> int:
    """Map a child's termination status to the wrapper's exit code.

    A normal exit keeps its status. A child killed by a signal has no exit
    status and reports -1. Anything undecodable is the reserved error code.
    """
    if isinstance(returncode, bool) or not isinstance(returncode, int):
        (logger or logging.getLogger(__name__)).error(
            "Unable to decode termination status %r on this platform", returncode
        )
        return EXIT_CODE_ERROR
    if returncode < 0:
        return EXIT_CODE_NO_STATUS
    return returncode


class ProcessSupervisor:
    """Runs one program with relayed I/O and forwarded termination signals."""

    def __init__(
        self,
        *,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
        trap_signals: tuple[signal.Signals, ...] = TRAP_SIGNALS,
        logger: logging.Logger | None = None,
    ):
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.trap_signals = trap_signals
        self.logger = logger or logging.getLogger(__name__)

    def run(self, program: str, args: list[str] | tuple[str, ...] = ()) -> int:
        """Run ``program`` to completion and return the exit code to report."""
        events: queue.SimpleQueue = queue.SimpleQueue()
        previous_handlers = self._trap(events)
        try:
            try:
                proc = subprocess.Popen(
                    [program, *args],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except (OSError, ValueError) as e:
                self.logger.error("%s", ProcessStartError(program, e))
                return EXIT_CODE_ERROR
            self.logger.debug("Started %s (pid %s)", program, proc.pid)

            # Helper threads inherit the mask, so trapped signals reach the main thread.
            with self._masked(list(previous_handlers)):
                output_relays = self._start_relays(proc)
                threading.Thread(
                    target=lambda: events.put(_ChildExited(proc.wait())),
                    name=f"wait-{proc.pid}",
                    daemon=True,
                ).start()

            code = self._await_termination(proc, events)
        finally:
            self._restore(previous_handlers)

        for relay in output_relays:
            relay.join(RELAY_JOIN_TIMEOUT_SECONDS)
            if relay.is_alive():
                self.logger.warning("%s still open after child exit; not waiting further", relay.name)
        return code

    def _await_termination(self, proc: subprocess.Popen, events: queue.SimpleQueue) -> int:
        event = events.get()
        if isinstance(event, _ChildExited):
            return translate_returncode(event.returncode, self.logger)

        code = self._forward(proc, event.signum)
        # The child decides when it is done; keep forwarding until it is.
        while True:
            event = events.get()
            if isinstance(event, _ChildExited):
                self.logger.debug("Child exited with %r after forwarded signal", event.returncode)
                return code
            self._forward(proc, event.signum)

    def _forward(self, proc: subprocess.Popen, signum: int) -> int:
        code = signal_exit_code(signum)
        if code == EXIT_CODE_UNKNOWN_SIGNAL:
            self.logger.warning("Got unclassified signal %s", signum)
        else:
            self.logger.warning("Got signal: %s(%d)", signal.Signals(signum).name, signum)
        try:
            proc.send_signal(signum)
        except OSError as e:
            self.logger.warning("Failed to forward signal %s to pid %s: %s", signum, proc.pid, e)
        return code

    def _trap(self, events: queue.SimpleQueue) -> dict[int, object]:
        if threading.current_thread() is not threading.main_thread():
            self.logger.warning("Not on the main thread; signals will not be forwarded")
            return {}

        def _handler(signum, frame):
            del frame
            events.put(_SignalReceived(signum))

        previous = {}
        for sig in self.trap_signals:
            previous[sig] = signal.signal(sig, _handler)
        return previous

    @staticmethod
    @contextlib.contextmanager
    def _masked(signals: list[int]):
        if not signals or not hasattr(signal, "pthread_sigmask"):
            yield
            return
        previous_mask = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
        try:
            yield
        finally:
            signal.pthread_sigmask(signal.SIG_SETMASK, previous_mask)

    @staticmethod
    def _restore(previous_handlers: dict[int, object]) -> None:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)

    def _start_relays(self, proc: subprocess.Popen) -> list[threading.Thread]:
        stdin = self.stdin if self.stdin is not None else getattr(sys.stdin, "buffer", None)
        stdout = self.stdout if self.stdout is not None else sys.stdout.buffer
        stderr = self.stderr if self.stderr is not None else sys.stderr.buffer

        if stdin is None:
            proc.stdin.close()
        else:
            threading.Thread(
                target=self._relay,
                args=("stdin", stdin, proc.stdin),
                kwargs={"close_dest": True},
                name="relay-stdin",
                daemon=True,
            ).start()

        output_relays = [
            threading.Thread(target=self._relay, args=("stdout", proc.stdout, stdout), name="relay-stdout", daemon=True),
            threading.Thread(target=self._relay, args=("stderr", proc.stderr, stderr), name="relay-stderr", daemon=True),
        ]
        for relay in output_relays:
            relay.start()
        return output_relays

    def _relay(self, name: str, source: BinaryIO, dest: BinaryIO, *, close_dest: bool = False) -> None:
        read = getattr(source, "read1", source.read)
        try:
            while True:
                chunk = read(RELAY_CHUNK_SIZE)
                if not chunk:
                    break
                dest.write(chunk)
                dest.flush()
        except (OSError, ValueError) as e:
            self.logger.warning("%s relay stopped: %s", name, e)
        finally:
            if close_dest:
                with contextlib.suppress(OSError, ValueError):
                    dest.close()
