#!/usr/bin/env python3
"""A tool that deploys a Jenkins CI/CD stack with Ansible and Docker."""
# Standard Library Imports
import argparse
import logging
import os
import pathlib
import subprocess
import sys
import tempfile
import traceback

# Third Party Imports

# Local Application Imports
from jenkinsstack import certificates, containers
from jenkinsstack.artifacts import ArtifactWriter
from jenkinsstack.compose import MASTER_SERVICE
from jenkinsstack.config import StackConfig
from jenkinsstack.environment import DeploymentEnvironment
from jenkinsstack.errors import (
    ConfigurationError,
    JenkinsStackError,
    PrerequisiteError,
)
from jenkinsstack.helpformatter import CustomRawDescriptionHelpFormatter
from jenkinsstack.playbook import ANSIBLE_PLAYBOOK_EXECUTABLE, AnsibleRunner
from jenkinsstack.process import which
from jenkinsstack.readiness import jenkins_url, wait_for_jenkins

# general program configurations

PROGRAM_NAME = "jenkinsstack"
PROGRAM_ROOT = os.getcwd()

logger = logging.getLogger(__name__)


class JenkinsStack:
    """Deploys, inspects and tears down the Jenkins stack.

    From a high level, each subcommand loads the deployment environment
    (env vars, optionally a dotenv file) and the program configuration
    (a TOML file over built-in defaults), renders the stack's artifacts
    (compose file, JCasC, Dockerfiles, haproxy.cfg) into a staging
    directory, then hands over to ansible-playbook and docker. The
    dynamic agents themselves are provisioned by the Jenkins Docker Cloud
    plugin, this program only describes them.

    Attributes
    ----------
    STAGING_DIR_NAME : str
        Directory under PROGRAM_ROOT the artifacts are rendered to before
        the playbook ships them to the docker host.
    DEFAULT_ANSIBLE_DIR_PATH : str
        Where site.yml, its inventory and ansible.cfg are looked up, they
        are installed along with the package.

    """

    STAGING_DIR_NAME = ".jenkinsstack"
    DEFAULT_ANSIBLE_DIR_PATH = os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "ansible"
    )
    DEFAULT_BACKUP_DIR_PATH = os.path.join(PROGRAM_ROOT, "backups")
    ARTIFACTS_DIR_EXTRA_VAR = "jenkins_artifacts_dir"
    DESTROY_EXTRA_VAR = "jenkins_destroy"

    # subcommands labels

    SUBCOMMAND = "subcommand"
    DEPLOY_SUBCOMMAND = "deploy"
    DESTROY_SUBCOMMAND = "destroy"
    STATUS_SUBCOMMAND = "status"
    LOGS_SUBCOMMAND = "logs"
    VALIDATE_SUBCOMMAND = "validate"
    REBUILD_SUBCOMMAND = "rebuild"
    RENDER_SUBCOMMAND = "render"
    RESTART_SUBCOMMAND = "restart"
    BACKUP_SUBCOMMAND = "backup"

    # positional/optional argument labels
    # used at the command line and to reference values of arguments

    MODE_SHORT_OPTION = "m"
    MODE_LONG_OPTION = "mode"
    VERBOSE_SHORT_OPTION = "v"
    VERBOSE_LONG_OPTION = "verbose"
    DRY_RUN_SHORT_OPTION = "n"
    DRY_RUN_LONG_OPTION = "dry_run"
    DRY_RUN_LONG_OPTION_CLI_NAME = DRY_RUN_LONG_OPTION.replace("_", "-")
    TAGS_SHORT_OPTION = "t"
    TAGS_LONG_OPTION = "tags"
    FORCE_SHORT_OPTION = "f"
    FORCE_LONG_OPTION = "force"
    CONFIG_SHORT_OPTION = "c"
    CONFIG_LONG_OPTION = "config"
    ENV_FILE_LONG_OPTION = "env_file"
    ENV_FILE_LONG_OPTION_CLI_NAME = ENV_FILE_LONG_OPTION.replace("_", "-")
    ENV_VAR_SHORT_OPTION = "e"
    ENV_VAR_LONG_OPTION = "env"
    MERGE_CASC_LONG_OPTION = "merge_casc"
    MERGE_CASC_CLI_NAME = MERGE_CASC_LONG_OPTION.replace("_", "-")
    ANSIBLE_DIR_LONG_OPTION = "ansible_dir"
    ANSIBLE_DIR_LONG_OPTION_CLI_NAME = ANSIBLE_DIR_LONG_OPTION.replace("_", "-")
    OUTPUT_SHORT_OPTION = "o"
    OUTPUT_LONG_OPTION = "output"
    YES_SHORT_OPTION = "y"
    YES_LONG_OPTION = "yes"
    NO_FOLLOW_LONG_OPTION = "no_follow"
    NO_FOLLOW_LONG_OPTION_CLI_NAME = NO_FOLLOW_LONG_OPTION.replace("_", "-")
    SERVICE_POSITIONAL_ARG = "service"

    _DESC = """Description: Deploy a Jenkins CI/CD stack (master, static DIND agent,
dynamic Docker agents and HAProxy) locally or to a remote Docker host."""
    _EPILOG = """environment variables:
  DEPLOYMENT_MODE         deployment mode, local or remote (default: local)
  DOCKER_HOST_IP          IP address of the remote docker host
  ANSIBLE_USER            SSH user for remote connections (default: ubuntu)
  SSH_KEY_PATH            SSH private key (default: ~/.ssh/id_rsa)
  JENKINS_ADMIN_USER      Jenkins admin username (default: admin)
  JENKINS_ADMIN_PASSWORD  Jenkins admin password (default: admin123)
  JENKINS_DOMAIN          domain served by HAProxy
  JENKINS_SSL_ENABLED     serve Jenkins over TLS (always on when remote)
  HAPROXY_STATS_PASSWORD  password of the HAProxy stats page"""

    def __init__(self, cmd_args):
        self.cmd_args = cmd_args
        self.environment = None
        self.stack_config = None

    @classmethod
    def _build_arg_parser(cls):
        def subparser_kwargs(help_msg, parents=None):
            # max_help_position is increased (default is 24) to allow
            # arguments/options help messages be more indented, reference:
            # https://stackoverflow.com/questions/46554084/how-to-reduce-indentation-level-of-argument-help-in-argparse
            return dict(
                help=help_msg,
                formatter_class=lambda prog: CustomRawDescriptionHelpFormatter(
                    prog, max_help_position=35
                ),
                allow_abbrev=False,
                parents=parents or list(),
            )

        arg_parser = argparse.ArgumentParser(
            prog=PROGRAM_NAME,
            description=cls._DESC,
            epilog=cls._EPILOG,
            formatter_class=lambda prog: CustomRawDescriptionHelpFormatter(
                prog, max_help_position=35
            ),
            allow_abbrev=False,
        )
        arg_subparsers = arg_parser.add_subparsers(
            title=f"{cls.SUBCOMMAND}s",
            dest=cls.SUBCOMMAND,
            metavar=f"{cls.SUBCOMMAND} [options ...]",
        )
        arg_subparsers.required = True

        # following along to:
        # https://stackoverflow.com/questions/33645859/how-to-add-common-arguments-to-argparse-subcommands
        # this parser is not meant to be invoked with parse_args()!
        common_parser = argparse.ArgumentParser(add_help=False)
        common_parser.add_argument(
            f"-{cls.MODE_SHORT_OPTION}",
            f"--{cls.MODE_LONG_OPTION}",
            choices=("local", "remote"),
            help="deployment mode (default: $DEPLOYMENT_MODE or local)",
        )
        common_parser.add_argument(
            f"-{cls.VERBOSE_SHORT_OPTION}",
            f"--{cls.VERBOSE_LONG_OPTION}",
            action="store_true",
            help="enable debug output and verbose ansible output",
        )
        common_parser.add_argument(
            f"-{cls.CONFIG_SHORT_OPTION}",
            f"--{cls.CONFIG_LONG_OPTION}",
            help="load the program configuration from another TOML file",
            metavar="CONFIG_PATH",
        )
        common_parser.add_argument(
            f"--{cls.ENV_FILE_LONG_OPTION_CLI_NAME}",
            help="read deployment env vars from a dotenv file",
            metavar="ENV_FILE",
        )

        ansible_parser = argparse.ArgumentParser(add_help=False)
        ansible_parser.add_argument(
            f"-{cls.DRY_RUN_SHORT_OPTION}",
            f"--{cls.DRY_RUN_LONG_OPTION_CLI_NAME}",
            action="store_true",
            help="show what would be done without executing",
        )
        ansible_parser.add_argument(
            f"-{cls.TAGS_SHORT_OPTION}",
            f"--{cls.TAGS_LONG_OPTION}",
            help="run only the playbook tasks with these tags",
            metavar="TAGS",
        )
        ansible_parser.add_argument(
            f"--{cls.ANSIBLE_DIR_LONG_OPTION_CLI_NAME}",
            default=cls.DEFAULT_ANSIBLE_DIR_PATH,
            help="directory holding site.yml (default: the bundled playbook)",
            metavar="ANSIBLE_DIR",
        )

        casc_parser = argparse.ArgumentParser(add_help=False)
        casc_parser.add_argument(
            f"-{cls.ENV_VAR_SHORT_OPTION}",
            f"--{cls.ENV_VAR_LONG_OPTION}",
            nargs="*",
            help="expand env vars in the casc, format: '<key>=<value>'",
        )
        casc_parser.add_argument(
            f"--{cls.MERGE_CASC_CLI_NAME}",
            help="merge another casc file into the generated casc",
            metavar="CASC_PATH",
        )

        deploy_parents = [common_parser, ansible_parser, casc_parser]

        deploy = arg_subparsers.add_parser(
            cls.DEPLOY_SUBCOMMAND,
            **subparser_kwargs(
                "deploy the Jenkins infrastructure", deploy_parents
            ),
        )
        deploy.add_argument(
            f"-{cls.FORCE_SHORT_OPTION}",
            f"--{cls.FORCE_LONG_OPTION}",
            action="store_true",
            help="force a rebuild of the docker images",
        )

        arg_subparsers.add_parser(
            cls.REBUILD_SUBCOMMAND,
            **subparser_kwargs(
                "force rebuild the docker images and redeploy",
                deploy_parents,
            ),
        )

        destroy = arg_subparsers.add_parser(
            cls.DESTROY_SUBCOMMAND,
            **subparser_kwargs(
                "remove all deployed services",
                [common_parser, ansible_parser],
            ),
        )
        destroy.add_argument(
            f"-{cls.YES_SHORT_OPTION}",
            f"--{cls.YES_LONG_OPTION}",
            action="store_true",
            help="do not ask for confirmation",
        )

        arg_subparsers.add_parser(
            cls.STATUS_SUBCOMMAND,
            **subparser_kwargs(
                "show the status of the deployed services", [common_parser]
            ),
        )

        logs = arg_subparsers.add_parser(
            cls.LOGS_SUBCOMMAND,
            **subparser_kwargs("show the logs of a service", [common_parser]),
        )
        logs.add_argument(
            cls.SERVICE_POSITIONAL_ARG,
            nargs="?",
            default=MASTER_SERVICE,
            metavar="SERVICE",
            help=f"compose service (default: {MASTER_SERVICE})",
        )
        logs.add_argument(
            f"--{cls.NO_FOLLOW_LONG_OPTION_CLI_NAME}",
            action="store_true",
            help="print the logs and exit instead of following them",
        )

        arg_subparsers.add_parser(
            cls.VALIDATE_SUBCOMMAND,
            **subparser_kwargs(
                "validate the configuration without deploying",
                [common_parser, ansible_parser, casc_parser],
            ),
        )

        render = arg_subparsers.add_parser(
            cls.RENDER_SUBCOMMAND,
            **subparser_kwargs(
                "only write the generated artifacts",
                [common_parser, casc_parser],
            ),
        )
        render.add_argument(
            f"-{cls.OUTPUT_SHORT_OPTION}",
            f"--{cls.OUTPUT_LONG_OPTION}",
            help="directory to write to (default: the staging directory)",
            metavar="OUTPUT_DIR",
        )

        arg_subparsers.add_parser(
            cls.RESTART_SUBCOMMAND,
            **subparser_kwargs(
                "restart the deployed services", [common_parser]
            ),
        )

        backup = arg_subparsers.add_parser(
            cls.BACKUP_SUBCOMMAND,
            **subparser_kwargs(
                "archive the Jenkins home of a local deployment",
                [common_parser],
            ),
        )
        backup.add_argument(
            f"-{cls.OUTPUT_SHORT_OPTION}",
            f"--{cls.OUTPUT_LONG_OPTION}",
            default=cls.DEFAULT_BACKUP_DIR_PATH,
            help="directory to put the archive in (default: ./backups)",
            metavar="BACKUP_DIR",
        )
        return arg_parser

    @classmethod
    def retrieve_cmd_args(cls, argv=None):
        """How arguments are retrieved from the command line.

        Returns
        -------
        dict
            Values pulled from the command line, keyed by their labels.

        Raises
        ------
        SystemExit
            If user input is not considered valid when parsing arguments.

        """
        try:
            args = vars(cls._build_arg_parser().parse_args(argv))
            return args
        except SystemExit as e:
            # --help exits 0, keep that
            if e.code == 0:
                raise
            sys.exit(1)

    def _arg(self, name, default=None):
        return self.cmd_args.get(name, default)

    @property
    def staging_dir(self):
        return os.path.join(
            PROGRAM_ROOT, self.STAGING_DIR_NAME, self.environment.mode
        )

    def _load(self):
        """Load the deployment environment and the program configuration."""
        self.environment = DeploymentEnvironment.from_environ(
            env_file=self._arg(self.ENV_FILE_LONG_OPTION),
            mode=self._arg(self.MODE_LONG_OPTION),
        )
        self.stack_config = StackConfig.load(self._arg(self.CONFIG_LONG_OPTION))

    def _ansible_runner(self, dry_run=None, force_rebuild=False):
        """Return the runner of the playbook.

        Raises
        ------
        ConfigurationError
            If the ansible directory holds no playbook.

        """
        if dry_run is None:
            dry_run = self._arg(self.DRY_RUN_LONG_OPTION, False)
        runner = AnsibleRunner(
            self._arg(self.ANSIBLE_DIR_LONG_OPTION, self.DEFAULT_ANSIBLE_DIR_PATH),
            self.environment,
            verbose=self._arg(self.VERBOSE_LONG_OPTION, False),
            dry_run=dry_run,
            tags=self._arg(self.TAGS_LONG_OPTION),
            force_rebuild=force_rebuild,
        )
        if not runner.playbook_exists():
            raise ConfigurationError(
                f"no playbook found in {runner.ansible_dir}"
            )
        return runner

    def _compose_project(self):
        return containers.ComposeProject(self.environment)

    def _write_artifacts(self, dest):
        writer = ArtifactWriter(
            self.stack_config,
            self.environment,
            merge_casc=self._arg(self.MERGE_CASC_LONG_OPTION),
            env_vars=self._arg(self.ENV_VAR_LONG_OPTION),
        )
        return writer.write(dest)

    def _validate_prerequisites(self):
        """Make sure the tools the deployment drives are available.

        Raises
        ------
        PrerequisiteError
            If ansible is not installed or the local docker daemon does
            not answer.

        """
        logger.info(
            f"validating prerequisites for {self.environment.mode} deployment..."
        )
        if not which(ANSIBLE_PLAYBOOK_EXECUTABLE):
            raise PrerequisiteError(
                "Ansible is not installed, install it or run in the dev "
                "container"
            )
        if self.environment.is_remote:
            logger.info(
                f"testing SSH connectivity to {self.environment.docker_host_ip}..."
            )
            if not containers.ssh_reachable(
                self.environment.ssh_target, self.environment.ssh_key_path
            ):
                logger.warning(
                    f"SSH connection to {self.environment.docker_host_ip} "
                    "failed, check connectivity and SSH keys"
                )
        elif not containers.docker_available():
            raise PrerequisiteError(
                "Docker is not running or accessible, start Docker or check "
                "the dev container setup"
            )
        logger.info("prerequisites validated")

    def _show_access_information(self):
        environment = self.environment
        jenkins = self.stack_config.jenkins
        haproxy = self.stack_config.haproxy
        url = jenkins_url(environment.jenkins_host, jenkins["master_port"])
        scheme = "https" if environment.ssl_enabled else "http"

        lines = [
            "",
            f"Jenkins UI:       {url}",
            f"Health Check:     curl {url}/login",
        ]
        if environment.is_remote:
            lines.append(f"SSH Access:       ssh {environment.ssh_target}")
        if haproxy["enabled"]:
            # the stats and health listeners are plain http
            lines += [
                f"HAProxy:          {scheme}://{environment.public_host}",
                (
                    f"HAProxy Stats:    http://{environment.jenkins_host}:"
                    f"{haproxy['stats_port']}{haproxy['stats_uri']}"
                ),
                (
                    f"HAProxy Health:   http://{environment.jenkins_host}:"
                    f"{haproxy['health_port']}/health"
                ),
            ]
        lines += [
            "",
            "Default Credentials:",
            f"Username: {environment.admin_user}",
            f"Password: {environment.admin_password}",
            "",
            "Available Agent Labels:",
            f"  {self.stack_config.dind_agent.labels:<40} - Static DIND agent",
        ]
        for agent in self.stack_config.dynamic_agents:
            lines.append(
                f"  {agent.labels:<40} - Dynamic {agent.name} agents "
                f"(max {agent.instance_cap})"
            )
        lines += [
            "",
            "Useful Commands:",
            f"  View logs:     {PROGRAM_NAME} logs --mode {environment.mode}",
            f"  Check status:  {PROGRAM_NAME} status --mode {environment.mode}",
            f"  Rebuild:       {PROGRAM_NAME} rebuild --mode {environment.mode}",
            f"  Destroy:       {PROGRAM_NAME} destroy --mode {environment.mode}",
        ]
        print("\n".join(lines))

    def _deploy(self, force_rebuild=False):
        logger.info(
            f"deploying Jenkins infrastructure in {self.environment.mode} mode..."
        )
        self._validate_prerequisites()
        runner = self._ansible_runner(force_rebuild=force_rebuild)
        self._write_artifacts(self.staging_dir)
        certificates.prepare(self.environment, self.staging_dir)
        runner.run(
            extra_vars={self.ARTIFACTS_DIR_EXTRA_VAR: self.staging_dir}
        )
        if runner.dry_run:
            logger.info("dry run complete, Jenkins was not started")
            return
        wait_for_jenkins(
            jenkins_url(
                self.environment.jenkins_host,
                self.stack_config.jenkins["master_port"],
            )
        )
        logger.info("Jenkins deployment completed successfully!")
        self._show_access_information()

    def _confirm(self, question):
        if self._arg(self.YES_LONG_OPTION, False):
            return True
        answer = input(f"{question} [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    def _destroy(self):
        if not self._confirm(
            "This will destroy the deployed Jenkins infrastructure, are you sure?"
        ):
            logger.info("operation cancelled")
            return
        logger.warning(
            f"destroying Jenkins infrastructure in {self.environment.mode} mode..."
        )
        if self.environment.is_local:
            project = self._compose_project()
            if not project.exists():
                logger.warning("local deployment directory not found")
                return
            logger.info("stopping and removing local containers...")
            project.down(volumes=True)
            logger.info("cleaning up docker resources...")
            containers.remove_network(
                self.stack_config.jenkins["network_name"]
            )
            containers.prune_volumes()
        else:
            self._ansible_runner().run(
                extra_vars={self.DESTROY_EXTRA_VAR: True}
            )
        logger.info("infrastructure destroyed")

    def _status(self):
        logger.info("checking status of Jenkins infrastructure...")
        project = self._compose_project()
        if not project.exists():
            logger.warning(f"no {self.environment.mode} deployment found")
            return
        project.ps()
        print(
            "Jenkins URL: "
            + jenkins_url(
                self.environment.jenkins_host,
                self.stack_config.jenkins["master_port"],
            )
        )

    def _logs(self):
        service = self._arg(self.SERVICE_POSITIONAL_ARG, MASTER_SERVICE)
        logger.info(f"showing logs for {service}...")
        project = self._compose_project()
        if not project.exists():
            raise JenkinsStackError(
                f"{self.environment.mode} deployment not found"
            )
        if not project.has_service(service):
            raise JenkinsStackError(f"service {service} not found")
        project.logs(
            service, follow=not self._arg(self.NO_FOLLOW_LONG_OPTION, False)
        )

    def _validate(self):
        logger.info("validating configuration...")
        # loading the configuration already checked the agent templates
        logger.info(
            f"{len(self.stack_config.dynamic_agents)} dynamic agent "
            "template(s) are valid"
        )
        runner = self._ansible_runner(dry_run=True)
        with tempfile.TemporaryDirectory(prefix=f"{PROGRAM_NAME}-") as tmp_dir:
            self._write_artifacts(tmp_dir)
            logger.info("artifacts render cleanly")
            runner.syntax_check()
            logger.info("playbook syntax is valid")
            runner.check_inventory()
            logger.info("inventory configuration is valid")
            logger.info("running deployment dry-run...")
            runner.run(extra_vars={self.ARTIFACTS_DIR_EXTRA_VAR: tmp_dir})
        logger.info("configuration is valid")

    def _render(self):
        dest = self._arg(self.OUTPUT_LONG_OPTION) or self.staging_dir
        for path in self._write_artifacts(dest):
            print(path)

    def _restart(self):
        project = self._compose_project()
        if not project.exists():
            raise JenkinsStackError(
                f"{self.environment.mode} deployment not found"
            )
        logger.info("restarting Jenkins services...")
        project.restart()

    def _backup(self):
        if self.environment.is_remote:
            raise ConfigurationError(
                "backups are only supported for local deployments"
            )
        project = self._compose_project()
        if not project.exists() or not project.has_service(MASTER_SERVICE):
            raise JenkinsStackError("no local Jenkins deployment found")
        archive = containers.backup(
            pathlib.Path(self._arg(self.OUTPUT_LONG_OPTION))
        )
        logger.info(f"backup saved to {archive}")

    def main(self):
        """Start the main program execution."""
        subcommands = {
            self.DEPLOY_SUBCOMMAND: lambda: self._deploy(
                force_rebuild=self._arg(self.FORCE_LONG_OPTION, False)
            ),
            self.REBUILD_SUBCOMMAND: lambda: self._deploy(force_rebuild=True),
            self.DESTROY_SUBCOMMAND: self._destroy,
            self.STATUS_SUBCOMMAND: self._status,
            self.LOGS_SUBCOMMAND: self._logs,
            self.VALIDATE_SUBCOMMAND: self._validate,
            self.RENDER_SUBCOMMAND: self._render,
            self.RESTART_SUBCOMMAND: self._restart,
            self.BACKUP_SUBCOMMAND: self._backup,
        }
        try:
            self._load()
            logger.debug(
                f"executing command: {self.cmd_args[self.SUBCOMMAND]} "
                f"(mode: {self.environment.mode})"
            )
            subcommands[self.cmd_args[self.SUBCOMMAND]]()
            return 0
        except subprocess.CalledProcessError as e:
            # why yes, this is like the traceback.print_exception message!
            logger.error(
                f"cmd {e.cmd} returned non-zero exit status {e.returncode}"
            )
            if e.stderr:
                logger.error(f"cmd stderr: {e.stderr.strip()}")
            return 1
        except JenkinsStackError as e:
            logger.error(e)
            return 1
        except FileNotFoundError as e:
            logger.error(f"could not find file: {e.filename}")
            return 1
        except PermissionError as e:
            logger.error(
                "a particular file/path was unaccessible, "
                f"{os.path.realpath(e.filename or '.')}"
            )
            return 1
        except KeyboardInterrupt:
            logger.warning("interrupted by user")
            return 130
        except Exception as e:
            traceback.print_exception(
                type(e), e, e.__traceback__, file=sys.stderr
            )
            logger.error("an unknown error occurred, see the above!")
            return 1


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=f"{PROGRAM_NAME}: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv=None):
    args = JenkinsStack.retrieve_cmd_args(argv)
    configure_logging(args.get(JenkinsStack.VERBOSE_LONG_OPTION, False))
    sys.exit(JenkinsStack(args).main())


if __name__ == "__main__":
    main()
