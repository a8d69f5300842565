"""Tests for ProcessRunner, using real child processes of the current interpreter."""

from __future__ import annotations

import sys
import time

import pytest

from dep_analyzer.exceptions import ProcessError, ProcessErrorKind
from dep_analyzer.process import ProcessResult, ProcessRunner, remaining_time, run_deadline

PY = sys.executable


def _py(code: str) -> tuple[str, ...]:
    return ("-c", code)


class TestExecute:
    def test_captures_stdout_and_stderr_separately(self):
        result = ProcessRunner().execute(
            PY, _py("import sys; print('out'); print('err', file=sys.stderr)")
        )
        assert result.exit_code == 0
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert result.command[0] == PY

    def test_non_zero_exit_does_not_raise(self):
        result = ProcessRunner().execute(PY, _py("import sys; sys.exit(3)"))
        assert result.exit_code == 3
        assert not result.is_success

    def test_require_success_raises_non_zero_exit(self):
        result = ProcessRunner().execute(PY, _py("import sys; sys.stderr.write('boom'); sys.exit(2)"))
        with pytest.raises(ProcessError) as exc_info:
            result.require_success()
        assert exc_info.value.kind == ProcessErrorKind.NON_ZERO_EXIT
        assert exc_info.value.exit_code == 2
        assert "boom" in exc_info.value.stderr

    def test_require_success_returns_self(self):
        result = ProcessRunner().execute(PY, _py("pass"))
        assert result.require_success() is result

    def test_arguments_are_not_shell_interpreted(self):
        result = ProcessRunner().execute(PY, ("-c", "import sys; print(sys.argv[1])", "$HOME; echo hi"))
        assert result.stdout.strip() == "$HOME; echo hi"

    def test_working_dir(self, tmp_path):
        result = ProcessRunner().execute(PY, _py("import os; print(os.getcwd())"), working_dir=tmp_path)
        assert result.stdout.strip() == str(tmp_path.resolve())

    def test_missing_executable_is_launch_failure(self, tmp_path):
        with pytest.raises(ProcessError) as exc_info:
            ProcessRunner().execute(tmp_path / "does-not-exist")
        assert exc_info.value.kind == ProcessErrorKind.LAUNCH_FAILURE

    def test_bad_working_dir_is_launch_failure(self, tmp_path):
        with pytest.raises(ProcessError) as exc_info:
            ProcessRunner().execute(PY, _py("pass"), working_dir=tmp_path / "missing")
        assert exc_info.value.kind == ProcessErrorKind.LAUNCH_FAILURE


class TestEnvironment:
    def test_override_is_visible(self):
        result = ProcessRunner().execute(
            PY, _py("import os; print(os.environ['DEP_TEST_VALUE'])"), env={"DEP_TEST_VALUE": "bar"}
        )
        assert result.stdout.strip() == "bar"
        assert result.env == {"DEP_TEST_VALUE": "bar"}

    def test_none_removes_inherited_variable(self, monkeypatch):
        monkeypatch.setenv("DEP_TEST_REMOVE", "x")
        result = ProcessRunner().execute(
            PY,
            _py("import os; print(os.environ.get('DEP_TEST_REMOVE', 'missing'))"),
            env={"DEP_TEST_REMOVE": None},
        )
        assert result.stdout.strip() == "missing"

    def test_inherited_environment_kept(self, monkeypatch):
        monkeypatch.setenv("DEP_TEST_KEEP", "kept")
        result = ProcessRunner().execute(PY, _py("import os; print(os.environ['DEP_TEST_KEEP'])"))
        assert result.stdout.strip() == "kept"


class TestTimeouts:
    def test_timeout_kills_child(self):
        start = time.monotonic()
        with pytest.raises(ProcessError) as exc_info:
            ProcessRunner().execute(PY, _py("import time; time.sleep(30)"), timeout=0.5)
        assert exc_info.value.kind == ProcessErrorKind.TIMEOUT
        assert time.monotonic() - start < 10

    def test_timeout_does_not_wait_for_grandchildren(self):
        # The grandchild inherits the output pipes and outlives the child.
        code = (
            "import subprocess, sys, time; "
            "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)']); "
            "time.sleep(30)"
        )
        start = time.monotonic()
        with pytest.raises(ProcessError) as exc_info:
            ProcessRunner().execute(PY, _py(code), timeout=0.5)
        assert exc_info.value.kind == ProcessErrorKind.TIMEOUT
        assert time.monotonic() - start < 5

    def test_default_timeout_applies(self):
        with pytest.raises(ProcessError) as exc_info:
            ProcessRunner(default_timeout=0.5).execute(PY, _py("import time; time.sleep(30)"))
        assert exc_info.value.kind == ProcessErrorKind.TIMEOUT

    def test_run_deadline_limits_command(self):
        with run_deadline(time.monotonic() + 0.5):
            with pytest.raises(ProcessError) as exc_info:
                ProcessRunner().execute(PY, _py("import time; time.sleep(30)"), timeout=60)
        assert exc_info.value.kind == ProcessErrorKind.TIMEOUT

    def test_expired_deadline_does_not_launch(self, tmp_path):
        # A missing executable would be a launch failure if it were started.
        with run_deadline(time.monotonic() - 1):
            with pytest.raises(ProcessError) as exc_info:
                ProcessRunner().execute(tmp_path / "does-not-exist")
        assert exc_info.value.kind == ProcessErrorKind.TIMEOUT

    def test_remaining_time(self):
        assert remaining_time() is None
        with run_deadline(time.monotonic() + 100):
            left = remaining_time()
            assert left is not None and 90 < left <= 100
        assert remaining_time() is None


class TestProcessResult:
    def test_command_line(self):
        result = ProcessResult(
            command=("git", "rev-parse", "HEAD"), working_dir=None, env={}, exit_code=0, stdout="", stderr=""
        )
        assert result.command_line == "git rev-parse HEAD"
        assert result.is_success
