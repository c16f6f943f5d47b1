"""Tests for shell command execution."""

import pytest

from shellkit.core.context import Context
from shellkit.core.errors import CommandError
from shellkit.core.process import CmdResult, run_cmd, run_cmd_with_status, shell_exec


class TestRunCmdWithStatus:
    """Test capturing status and output."""

    def test_success(self):
        """Test a successful command."""
        result = run_cmd_with_status("echo hello", context=Context())
        assert result == CmdResult(status=0, output="hello\n", error="")
        assert result.ok

    def test_failure_status(self):
        """Test exit status and stderr are reported."""
        result = run_cmd_with_status("echo oops >&2; exit 4", context=Context())
        assert result.status == 4
        assert result.error == "oops\n"
        assert not result.ok

    def test_expansion_before_run(self):
        """Test variables are expanded before the shell sees the command."""
        context = Context({"GREETING": "hi there"})
        assert run_cmd_with_status("echo '${GREETING}'", context=context).output == "hi there\n"

    def test_stdin(self):
        """Test text is fed on standard input."""
        result = run_cmd_with_status("tr a-z A-Z", context=Context(), stdin="abc\n")
        assert result.output == "ABC\n"

    def test_spawn_failure(self):
        """Test a missing shell yields status 1 instead of raising."""
        result = run_cmd_with_status("true", context=Context(), shell="/nonexistent/shell")
        assert result.status == 1
        assert result.output == ""
        assert result.error

    def test_killed_by_signal(self):
        """Test a signal-terminated command reports status 1."""
        result = run_cmd_with_status("kill -9 $$", context=Context())
        assert result.status == 1


class TestRunCmd:
    """Test the raising wrappers."""

    def test_run_cmd_output(self):
        """Test run_cmd returns stdout."""
        assert run_cmd("printf abc", context=Context()) == "abc"

    def test_run_cmd_raises(self):
        """Test run_cmd raises on failure with the result attached."""
        with pytest.raises(CommandError) as exc_info:
            run_cmd("exit 2", context=Context())
        assert exc_info.value.result.status == 2

    def test_shell_exec_strips(self):
        """Test shell_exec strips surrounding whitespace."""
        assert shell_exec("echo '  value  '", context=Context()) == "value"

    def test_shell_exec_silent(self):
        """Test silent mode leaves stderr out of the message."""
        with pytest.raises(CommandError) as exc_info:
            shell_exec("echo secret >&2; false", silent=True, context=Context())
        assert "secret" not in str(exc_info.value)
