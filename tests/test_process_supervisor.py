"""Tests for supervised child execution: I/O relay, signal forwarding, exit codes."""

from __future__ import annotations

import io
import logging
import os
import signal
import sys
import threading
import time

import pytest

from consul_lock.core.constants import EXIT_CODE_ERROR
from consul_lock.process.supervisor import ProcessSupervisor, signal_exit_code, translate_returncode

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process semantics")


def _supervisor(stdin: bytes = b"") -> tuple[ProcessSupervisor, io.BytesIO, io.BytesIO]:
    stdout, stderr = io.BytesIO(), io.BytesIO()
    return ProcessSupervisor(stdin=io.BytesIO(stdin), stdout=stdout, stderr=stderr), stdout, stderr


class TestExitCodes:
    def test_true_exits_zero(self):
        supervisor, _, _ = _supervisor()

        assert supervisor.run("true") == 0

    def test_exit_status_is_propagated(self):
        supervisor, _, _ = _supervisor()

        assert supervisor.run("sh", ["-c", "exit 3"]) == 3

    def test_child_killed_by_signal_has_no_exit_status(self):
        supervisor, _, _ = _supervisor()

        assert supervisor.run("sh", ["-c", "kill -KILL $$"]) == -1

    def test_missing_program_maps_to_error_code(self, caplog):
        supervisor, _, _ = _supervisor()

        assert supervisor.run("/nonexistent/definitely-not-a-program") == EXIT_CODE_ERROR
        assert "failed to start" in caplog.text


class TestRelay:
    def test_stdout_and_stderr_are_relayed(self):
        supervisor, stdout, stderr = _supervisor()

        code = supervisor.run("sh", ["-c", "echo out; echo err >&2"])

        assert code == 0
        assert stdout.getvalue() == b"out\n"
        assert stderr.getvalue() == b"err\n"

    def test_stdin_is_relayed_to_child(self):
        supervisor, stdout, _ = _supervisor(stdin=b"hello\nworld\n")

        assert supervisor.run("cat") == 0
        assert stdout.getvalue() == b"hello\nworld\n"

    def test_large_output_is_relayed_completely(self):
        supervisor, stdout, _ = _supervisor()

        code = supervisor.run(sys.executable, ["-c", "import sys; sys.stdout.write('x' * 300000)"])

        assert code == 0
        assert len(stdout.getvalue()) == 300000

    def test_broken_stdin_pipe_does_not_abort_supervision(self):
        supervisor, stdout, _ = _supervisor(stdin=b"y" * (4 * 1024 * 1024))

        code = supervisor.run("sh", ["-c", "echo done; exit 5"])

        assert code == 5
        assert stdout.getvalue() == b"done\n"


class TestSignalForwarding:
    def test_forwarded_signal_waits_for_real_exit(self, caplog):
        caplog.set_level(logging.WARNING)
        supervisor, stdout, _ = _supervisor()
        previous = signal.getsignal(signal.SIGTERM)
        timer = threading.Timer(0.5, os.kill, args=(os.getpid(), signal.SIGTERM))

        start = time.monotonic()
        timer.start()
        code = supervisor.run("sh", ["-c", "trap 'echo got-term' TERM; sleep 1.5; exit 7"])
        elapsed = time.monotonic() - start

        # The child ignored the request and exited on its own schedule.
        assert code == signal.SIGTERM.value
        assert elapsed >= 1.4
        assert b"got-term" in stdout.getvalue()
        assert "Got signal: SIGTERM(15)" in caplog.text
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_forwarded_signal_terminates_cooperative_child(self):
        supervisor, _, _ = _supervisor()
        timer = threading.Timer(0.5, os.kill, args=(os.getpid(), signal.SIGINT))

        start = time.monotonic()
        timer.start()
        code = supervisor.run(sys.executable, ["-c", "import time; time.sleep(30)"])

        assert code == signal.SIGINT.value
        assert time.monotonic() - start < 10

    def test_handlers_are_restored_after_normal_exit(self):
        supervisor, _, _ = _supervisor()
        before = {sig: signal.getsignal(sig) for sig in supervisor.trap_signals}

        supervisor.run("true")

        assert {sig: signal.getsignal(sig) for sig in supervisor.trap_signals} == before

    def test_off_main_thread_runs_without_trapping(self):
        supervisor, _, _ = _supervisor()
        result = {}

        thread = threading.Thread(target=lambda: result.setdefault("code", supervisor.run("sh", ["-c", "exit 4"])))
        thread.start()
        thread.join(timeout=10)

        assert result["code"] == 4


class TestTranslation:
    @pytest.mark.parametrize(
        ("returncode", "expected"),
        [(0, 0), (1, 1), (255, 255), (-9, -1), (-15, -1), (None, EXIT_CODE_ERROR), ("1", EXIT_CODE_ERROR)],
    )
    def test_translate_returncode(self, returncode, expected):
        assert translate_returncode(returncode) == expected

    def test_known_signal_maps_to_its_number(self):
        assert signal_exit_code(signal.SIGHUP) == 1
        assert signal_exit_code(signal.SIGQUIT) == 3

    def test_unknown_signal_maps_to_sentinel(self):
        assert signal_exit_code(9999) == -1
