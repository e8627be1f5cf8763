import datetime
import subprocess

import mock
import pytest

from jenkinsstack import containers
from jenkinsstack.containers import ComposeProject
from jenkinsstack.environment import DeploymentEnvironment


def completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr="")


@pytest.fixture
def keyed_remote_environment():
    return DeploymentEnvironment.from_environ(
        environ={
            "DEPLOYMENT_MODE": "remote",
            "DOCKER_HOST_IP": "10.0.0.5",
            "SSH_KEY_PATH": "/keys/id_rsa",
        }
    )


class TestComposeProject:
    def test_local_command(self, local_environment):
        project = ComposeProject(local_environment, project_dir="/tmp/stack")

        assert project.command("ps") == [
            "docker",
            "compose",
            "-f",
            "docker-compose.jenkins.yml",
            "ps",
        ]

    def test_remote_command(self, keyed_remote_environment):
        project = ComposeProject(keyed_remote_environment)

        assert project.command("logs", "-f", "jenkins-master") == [
            "ssh",
            "-i",
            "/keys/id_rsa",
            "ubuntu@10.0.0.5",
            (
                "cd /opt/jenkins && docker compose -f "
                "docker-compose.jenkins.yml logs -f jenkins-master"
            ),
        ]

    def test_local_exists(self, tmp_path, local_environment):
        project = ComposeProject(local_environment, project_dir=str(tmp_path))
        assert not project.exists()
        (tmp_path / "docker-compose.jenkins.yml").write_text("services: {}\n")
        assert project.exists()

    @mock.patch("jenkinsstack.containers.run_command")
    def test_remote_exists(self, run_command, keyed_remote_environment):
        run_command.return_value = completed(1)

        assert not ComposeProject(keyed_remote_environment).exists()
        assert run_command.call_args[0][0] == [
            "ssh",
            "-i",
            "/keys/id_rsa",
            "ubuntu@10.0.0.5",
            "test -f /opt/jenkins/docker-compose.jenkins.yml",
        ]

    @mock.patch("jenkinsstack.containers.run_command")
    def test_has_service(self, run_command, local_environment):
        run_command.return_value = completed(
            stdout="jenkins-master\njenkins-agent-dind\n"
        )
        project = ComposeProject(local_environment, project_dir="/tmp/stack")

        assert project.has_service("jenkins-agent-dind")
        assert not project.has_service("haproxy")
        assert run_command.call_args[1]["cwd"] == "/tmp/stack"

    @mock.patch("jenkinsstack.containers.run_foreground")
    def test_logs(self, run_foreground, local_environment):
        project = ComposeProject(local_environment, project_dir="/tmp/stack")

        project.logs("haproxy", follow=False)

        assert run_foreground.call_args[0][0][-2:] == ["logs", "haproxy"]

    @mock.patch("jenkinsstack.containers.run_command")
    def test_down(self, run_command, remote_environment):
        ComposeProject(remote_environment).down()

        args, kwargs = run_command.call_args
        assert args[0][-1].endswith("down -v")
        assert kwargs["cwd"] is None


@mock.patch("jenkinsstack.containers.run_command")
def test_ssh_reachable(run_command):
    run_command.return_value = completed(255)

    assert not containers.ssh_reachable("ubuntu@10.0.0.5", "/keys/id_rsa")
    cmd = run_command.call_args[0][0]
    assert cmd[-2:] == ["ubuntu@10.0.0.5", "echo ok"]
    assert ["-i", "/keys/id_rsa"] == cmd[-4:-2]


@mock.patch("jenkinsstack.containers.run_command")
def test_backup(run_command, tmp_path):
    now = datetime.datetime(2023, 9, 1, 12, 30, 5)

    archive = containers.backup(tmp_path / "backups", now=now)

    assert archive == tmp_path / "backups" / "jenkins_backup_20230901_123005.tar.gz"
    commands = [call[0][0] for call in run_command.call_args_list]
    assert commands[0][:3] == ["docker", "exec", "jenkins-master"]
    assert commands[1] == [
        "docker",
        "cp",
        "jenkins-master:/tmp/jenkins_backup_20230901_123005.tar.gz",
        str(tmp_path / "backups"),
    ]
    assert commands[2][-1] == "/tmp/jenkins_backup_20230901_123005.tar.gz"


@mock.patch("jenkinsstack.containers.run_command")
def test_backup_cleans_up_on_failure(run_command, tmp_path):
    run_command.side_effect = [
        completed(),
        subprocess.CalledProcessError(1, ["docker", "cp"]),
        completed(),
    ]

    with pytest.raises(subprocess.CalledProcessError):
        containers.backup(tmp_path)
    assert run_command.call_args[0][0][:4] == [
        "docker",
        "exec",
        "jenkins-master",
        "rm",
    ]
