"""How external commands (ansible, docker, ssh, openssl) are run."""
# Standard Library Imports
import logging
import shlex
import shutil
import signal
import subprocess

# Third Party Imports

# Local Application Imports
from jenkinsstack.errors import PrerequisiteError

logger = logging.getLogger(__name__)


def format_command(cmd):
    return " ".join(shlex.quote(str(part)) for part in cmd)


def which(executable):
    """Check if executable can be found in the PATH."""
    return shutil.which(executable) is not None


def run_command(cmd, check=True, cwd=None, env=None):
    """Run a command to completion, capturing its output.

    Parameters
    ----------
    cmd : list of str
        The command and its arguments.
    check : bool, optional
        Raise on a non-zero exit status (default is True).
    cwd : str, optional
    env : dict, optional

    Returns
    -------
    subprocess.CompletedProcess

    Raises
    ------
    PrerequisiteError
        If the executable does not exist in the PATH.
    subprocess.CalledProcessError
        If check is True and the command exits non-zero.

    """
    logger.debug(f"executing: {format_command(cmd)}")
    try:
        completed_process = subprocess.run(
            cmd,
            capture_output=True,
            encoding="utf-8",
            check=check,
            cwd=cwd,
            env=env,
        )
    except FileNotFoundError as e:
        raise PrerequisiteError(f"{e.filename} cannot be found in the PATH!")
    if completed_process.stdout:
        logger.debug(completed_process.stdout.strip())
    return completed_process


def run_foreground(cmd, cwd=None, env=None):
    """Run a command with its output going straight to the terminal.

    Should note only SIGINT is passed to the child process. This is
    enough for ansible-playbook and 'docker compose logs -f' to shut down
    cleanly, other signals keep their default behavior.

    Raises
    ------
    PrerequisiteError
        If the executable does not exist in the PATH.
    subprocess.CalledProcessError
        If the command exits non-zero.

    """

    def sigint_handler(sigint, frame):

        child_process.send_signal(sigint)

    logger.debug(f"executing: {format_command(cmd)}")
    try:
        child_process = subprocess.Popen(cmd, cwd=cwd, env=env)
    except FileNotFoundError as e:
        raise PrerequisiteError(f"{e.filename} cannot be found in the PATH!")

    previous_handler = signal.signal(signal.SIGINT, sigint_handler)
    try:
        child_process.wait()
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    if child_process.returncode != 0:
        raise subprocess.CalledProcessError(child_process.returncode, cmd)
