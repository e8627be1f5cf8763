import signal
import subprocess

import mock
import pytest

from jenkinsstack.errors import PrerequisiteError
from jenkinsstack.process import format_command, run_command, run_foreground


class TestProcess:
    @mock.patch("jenkinsstack.process.subprocess.run")
    def test_run_command_missing_executable(self, run):
        run.side_effect = FileNotFoundError(2, "No such file", "ansible-playbook")

        with pytest.raises(PrerequisiteError) as excinfo:
            run_command(["ansible-playbook", "--version"])
        assert "ansible-playbook" in str(excinfo.value)

    @mock.patch("jenkinsstack.process.subprocess.run")
    def test_run_command(self, run):
        run.return_value = subprocess.CompletedProcess(
            ["docker", "info"], 0, stdout="ok\n", stderr=""
        )

        completed_process = run_command(["docker", "info"], check=False)

        assert completed_process.stdout == "ok\n"
        assert run.call_args[1]["check"] is False
        assert run.call_args[1]["capture_output"] is True

    @mock.patch("jenkinsstack.process.subprocess.Popen")
    def test_run_foreground_failure(self, popen):
        popen.return_value.returncode = 4
        handler = signal.getsignal(signal.SIGINT)

        with pytest.raises(subprocess.CalledProcessError) as excinfo:
            run_foreground(["ansible-playbook", "site.yml"], cwd="ansible")
        assert excinfo.value.returncode == 4
        popen.return_value.wait.assert_called_once_with()
        # the previous SIGINT handler is back in place
        assert signal.getsignal(signal.SIGINT) is handler

    @mock.patch("jenkinsstack.process.subprocess.Popen")
    def test_run_foreground(self, popen):
        popen.return_value.returncode = 0

        run_foreground(["docker", "compose", "ps"])

        popen.assert_called_once_with(
            ["docker", "compose", "ps"], cwd=None, env=None
        )


def test_format_command():
    assert format_command(["ssh", "host", "cd /opt && ls"]) == (
        "ssh host 'cd /opt && ls'"
    )
