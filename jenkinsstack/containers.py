"""Docker and Docker Compose operations on a deployed stack."""
# Standard Library Imports
import datetime
import logging
import pathlib
import shlex

# Third Party Imports

# Local Application Imports
from jenkinsstack.compose import COMPOSE_FILENAME, MASTER_SERVICE
from jenkinsstack.process import run_command, run_foreground

logger = logging.getLogger(__name__)

JENKINS_HOME = "/var/jenkins_home"
BACKUP_FILENAME_FORMAT = "jenkins_backup_{timestamp}.tar.gz"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
SSH_CONNECT_TIMEOUT = 5


def docker_available():
    """Check if the docker daemon answers."""
    completed_process = run_command(["docker", "info"], check=False)
    return completed_process.returncode == 0


def ssh_command(ssh_target, ssh_key_path=None, options=None):
    """The ssh command line up to and including ssh_target."""
    cmd = ["ssh"]
    for option in options or list():
        cmd += ["-o", option]
    if ssh_key_path:
        cmd += ["-i", str(pathlib.Path(ssh_key_path).expanduser())]
    cmd.append(ssh_target)
    return cmd


def ssh_reachable(ssh_target, ssh_key_path=None):
    """Check if an ssh session to ssh_target can be opened."""
    cmd = ssh_command(
        ssh_target,
        ssh_key_path,
        options=[
            f"ConnectTimeout={SSH_CONNECT_TIMEOUT}",
            "StrictHostKeyChecking=no",
            "BatchMode=yes",
        ],
    )
    cmd.append("echo ok")
    completed_process = run_command(cmd, check=False)
    return completed_process.returncode == 0


def remove_network(name):
    """Remove a docker network, a missing network is not an error."""
    completed_process = run_command(
        ["docker", "network", "rm", name], check=False
    )
    if completed_process.returncode != 0:
        logger.debug(f"network {name} was not removed")


def prune_volumes():
    run_command(["docker", "volume", "prune", "-f"], check=False)


def backup(dest_dir, container=MASTER_SERVICE, now=None):
    """Archive the Jenkins home of a running master into dest_dir.

    Returns
    -------
    pathlib.Path
        Path of the archive.

    Raises
    ------
    subprocess.CalledProcessError
        If the archive could not be created or copied out.

    """
    now = now or datetime.datetime.now()
    filename = BACKUP_FILENAME_FORMAT.format(
        timestamp=now.strftime(BACKUP_TIMESTAMP_FORMAT)
    )
    container_path = f"/tmp/{filename}"
    dest_dir = pathlib.Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    logger.info(f"backing up {container}:{JENKINS_HOME}")
    run_command(
        [
            "docker",
            "exec",
            container,
            "tar",
            "czf",
            container_path,
            "-C",
            JENKINS_HOME,
            ".",
        ]
    )
    try:
        run_command(
            ["docker", "cp", f"{container}:{container_path}", str(dest_dir)]
        )
    finally:
        run_command(
            ["docker", "exec", container, "rm", "-f", container_path],
            check=False,
        )
    return dest_dir / filename


class ComposeProject:
    """The compose project of a deployment, local or behind ssh.

    Parameters
    ----------
    environment : DeploymentEnvironment
        Decides where the project lives and whether ssh is needed.
    project_dir : str, optional
        Directory holding the compose file (default is the home dir of
        the deployment environment).

    """

    def __init__(self, environment, project_dir=None):
        self.environment = environment
        self.project_dir = project_dir or environment.home_dir

    @property
    def compose_file(self):
        return pathlib.PurePosixPath(self.project_dir, COMPOSE_FILENAME)

    def _compose_args(self, *args):
        return ["docker", "compose", "-f", COMPOSE_FILENAME] + list(args)

    def _ssh_command(self):
        return ssh_command(
            self.environment.ssh_target, self.environment.ssh_key_path
        )

    def command(self, *args):
        """The full command line of a compose subcommand."""
        compose_args = self._compose_args(*args)
        if self.environment.is_local:
            return compose_args
        remote_cmd = (
            f"cd {shlex.quote(str(self.project_dir))} && "
            f"{' '.join(shlex.quote(arg) for arg in compose_args)}"
        )
        return self._ssh_command() + [remote_cmd]

    def _cwd(self):
        return self.project_dir if self.environment.is_local else None

    def exists(self):
        """Check if the compose file of the project is in place."""
        if self.environment.is_local:
            return pathlib.Path(self.compose_file).is_file()
        completed_process = run_command(
            self._ssh_command()
            + [f"test -f {shlex.quote(str(self.compose_file))}"],
            check=False,
        )
        return completed_process.returncode == 0

    def services(self):
        """Names of the services that have containers."""
        completed_process = run_command(
            self.command("ps", "--services", "--all"), cwd=self._cwd()
        )
        return completed_process.stdout.split()

    def has_service(self, name):
        return name in self.services()

    def ps(self):
        run_foreground(self.command("ps"), cwd=self._cwd())

    def logs(self, service, follow=True):
        args = ["logs"]
        if follow:
            args.append("-f")
        args.append(service)
        run_foreground(self.command(*args), cwd=self._cwd())

    def restart(self):
        run_foreground(self.command("restart"), cwd=self._cwd())

    def down(self, volumes=True):
        args = ["down"]
        if volumes:
            args.append("-v")
        run_command(self.command(*args), cwd=self._cwd())
