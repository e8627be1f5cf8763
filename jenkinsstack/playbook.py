"""Invocation of the Ansible playbook that deploys the stack."""
# Standard Library Imports
import logging
import os

# Third Party Imports

# Local Application Imports
from jenkinsstack.process import format_command, run_command, run_foreground

logger = logging.getLogger(__name__)

DEFAULT_PLAYBOOK = "site.yml"
ANSIBLE_PLAYBOOK_EXECUTABLE = "ansible-playbook"
ANSIBLE_INVENTORY_EXECUTABLE = "ansible-inventory"


class AnsibleRunner:
    """Builds and runs ansible-playbook command lines.

    Attributes
    ----------
    ansible_dir : str
        Directory holding the playbook, its inventory and ansible.cfg.
        Every command is run from there so ansible.cfg is picked up.

    """

    def __init__(
        self,
        ansible_dir,
        environment,
        verbose=False,
        dry_run=False,
        tags=None,
        force_rebuild=False,
    ):
        self.ansible_dir = ansible_dir
        self.environment = environment
        self.verbose = verbose
        self.dry_run = dry_run
        self.tags = tags
        self.force_rebuild = force_rebuild

    def playbook_command(self, playbook=DEFAULT_PLAYBOOK, extra_vars=None):
        """Return the ansible-playbook command line.

        Parameters
        ----------
        playbook : str, optional
        extra_vars : dict, optional
            Passed as '-e key=value' each.

        """
        cmd = [
            ANSIBLE_PLAYBOOK_EXECUTABLE,
            playbook,
            "-e",
            f"deployment_mode={self.environment.mode}",
        ]
        for key, value in (extra_vars or dict()).items():
            if isinstance(value, bool):
                value = str(value).lower()
            cmd += ["-e", f"{key}={value}"]
        if self.verbose:
            cmd.append("-vvv")
        if self.dry_run:
            cmd += ["--check", "--diff"]
        if self.tags:
            cmd += ["--tags", self.tags]
        if self.force_rebuild:
            cmd += ["-e", "jenkins_force_rebuild=true"]
        return cmd

    def run(self, playbook=DEFAULT_PLAYBOOK, extra_vars=None):
        """Run the playbook in the foreground.

        Raises
        ------
        subprocess.CalledProcessError
            If the playbook fails.

        """
        cmd = self.playbook_command(playbook, extra_vars)
        logger.info(f"running: {format_command(cmd)}")
        if self.dry_run:
            logger.warning("DRY RUN MODE - no changes will be made")
        run_foreground(
            cmd,
            cwd=self.ansible_dir,
            env=self.environment.ansible_env(),
        )

    def syntax_check(self, playbook=DEFAULT_PLAYBOOK):
        """Check the playbook syntax.

        Raises
        ------
        subprocess.CalledProcessError
            If the syntax is not valid.

        """
        run_command(
            [ANSIBLE_PLAYBOOK_EXECUTABLE, playbook, "--syntax-check"],
            cwd=self.ansible_dir,
            env=self.environment.ansible_env(),
        )

    def check_inventory(self):
        """Make sure the inventory parses.

        Raises
        ------
        subprocess.CalledProcessError
            If the inventory is not valid.

        """
        run_command(
            [ANSIBLE_INVENTORY_EXECUTABLE, "--list"],
            cwd=self.ansible_dir,
            env=self.environment.ansible_env(),
        )

    def playbook_exists(self, playbook=DEFAULT_PLAYBOOK):
        return os.path.isfile(os.path.join(self.ansible_dir, playbook))
