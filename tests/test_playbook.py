import subprocess

import mock
import pytest

from jenkinsstack.playbook import AnsibleRunner


class TestAnsibleRunner:
    def test_playbook_command(self, local_environment):
        runner = AnsibleRunner("ansible", local_environment)

        assert runner.playbook_command() == [
            "ansible-playbook",
            "site.yml",
            "-e",
            "deployment_mode=local",
        ]

    def test_playbook_command_with_options(self, remote_environment):
        runner = AnsibleRunner(
            "ansible",
            remote_environment,
            verbose=True,
            dry_run=True,
            tags="jenkins",
            force_rebuild=True,
        )

        cmd = runner.playbook_command(
            extra_vars={"jenkins_destroy": True, "jenkins_artifacts_dir": "/s"}
        )

        assert cmd == [
            "ansible-playbook",
            "site.yml",
            "-e",
            "deployment_mode=remote",
            "-e",
            "jenkins_destroy=true",
            "-e",
            "jenkins_artifacts_dir=/s",
            "-vvv",
            "--check",
            "--diff",
            "--tags",
            "jenkins",
            "-e",
            "jenkins_force_rebuild=true",
        ]

    @mock.patch("jenkinsstack.playbook.run_foreground")
    def test_run(self, run_foreground, remote_environment):
        runner = AnsibleRunner("/srv/ansible", remote_environment)

        runner.run()

        args, kwargs = run_foreground.call_args
        assert args[0][:2] == ["ansible-playbook", "site.yml"]
        assert kwargs["cwd"] == "/srv/ansible"
        assert kwargs["env"]["ANSIBLE_HOST_KEY_CHECKING"] == "False"
        assert kwargs["env"]["DOCKER_HOST_IP"] == "10.0.0.5"

    @mock.patch("jenkinsstack.playbook.run_foreground")
    def test_run_failure_propagates(self, run_foreground, local_environment):
        run_foreground.side_effect = subprocess.CalledProcessError(
            2, ["ansible-playbook"]
        )

        with pytest.raises(subprocess.CalledProcessError):
            AnsibleRunner("ansible", local_environment).run()

    @mock.patch("jenkinsstack.playbook.run_command")
    def test_syntax_check(self, run_command, local_environment):
        AnsibleRunner("ansible", local_environment).syntax_check()

        args, kwargs = run_command.call_args
        assert args[0] == ["ansible-playbook", "site.yml", "--syntax-check"]
        assert kwargs["cwd"] == "ansible"

    def test_playbook_exists(self, tmp_path, local_environment):
        runner = AnsibleRunner(str(tmp_path), local_environment)
        assert not runner.playbook_exists()
        (tmp_path / "site.yml").write_text("---\n")
        assert runner.playbook_exists()
