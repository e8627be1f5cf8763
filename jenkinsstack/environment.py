"""The deployment environment, read from env vars (and a dotenv file)."""
# Standard Library Imports
import logging
import os

# Third Party Imports
from dotenv import dotenv_values

# Local Application Imports
from jenkinsstack.errors import ConfigurationError

logger = logging.getLogger(__name__)

LOCAL_MODE = "local"
REMOTE_MODE = "remote"
DEPLOYMENT_MODES = (LOCAL_MODE, REMOTE_MODE)

TRUE_STRINGS = ("1", "true", "yes", "on")
FALSE_STRINGS = ("0", "false", "no", "off", "")


def parse_bool(name, value):
    """Interpret an env var value the way ansible's 'bool' filter does."""
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in TRUE_STRINGS:
        return True
    if normalized in FALSE_STRINGS:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got '{value}'")


class DeploymentEnvironment:
    """Key-value settings of a single deployment invocation.

    Attributes
    ----------
    ENV_VAR_DEFAULTS : dict
        The env vars that are read and their defaults. A default of None
        means the variable is optional.

    """

    DEPLOYMENT_MODE_ENV_VAR_NAME = "DEPLOYMENT_MODE"
    DOCKER_HOST_IP_ENV_VAR_NAME = "DOCKER_HOST_IP"
    ANSIBLE_USER_ENV_VAR_NAME = "ANSIBLE_USER"
    SSH_KEY_PATH_ENV_VAR_NAME = "SSH_KEY_PATH"
    ADMIN_USER_ENV_VAR_NAME = "JENKINS_ADMIN_USER"
    ADMIN_PASSWORD_ENV_VAR_NAME = "JENKINS_ADMIN_PASSWORD"
    DOMAIN_ENV_VAR_NAME = "JENKINS_DOMAIN"
    BASE_DOMAIN_ENV_VAR_NAME = "BASE_DOMAIN"
    SSL_ENABLED_ENV_VAR_NAME = "JENKINS_SSL_ENABLED"
    GENERATE_SELF_SIGNED_ENV_VAR_NAME = "JENKINS_GENERATE_SELF_SIGNED"
    SSL_CERT_PATH_ENV_VAR_NAME = "JENKINS_SSL_CERT_PATH"
    HAPROXY_STATS_PASSWORD_ENV_VAR_NAME = "HAPROXY_STATS_PASSWORD"
    TZ_ENV_VAR_NAME = "TZ"

    ENV_VAR_DEFAULTS = {
        DEPLOYMENT_MODE_ENV_VAR_NAME: LOCAL_MODE,
        DOCKER_HOST_IP_ENV_VAR_NAME: None,
        ANSIBLE_USER_ENV_VAR_NAME: "ubuntu",
        SSH_KEY_PATH_ENV_VAR_NAME: "~/.ssh/id_rsa",
        ADMIN_USER_ENV_VAR_NAME: "admin",
        ADMIN_PASSWORD_ENV_VAR_NAME: "admin123",
        DOMAIN_ENV_VAR_NAME: "jenkins.company.local",
        BASE_DOMAIN_ENV_VAR_NAME: "company.local",
        SSL_ENABLED_ENV_VAR_NAME: "false",
        GENERATE_SELF_SIGNED_ENV_VAR_NAME: "true",
        SSL_CERT_PATH_ENV_VAR_NAME: "/opt/corporate-certs",
        HAPROXY_STATS_PASSWORD_ENV_VAR_NAME: "admin123",
        TZ_ENV_VAR_NAME: "UTC",
    }

    LOCAL_HOME_DIR = "/workspace/jenkins-deploy"
    REMOTE_HOME_DIR = "/opt/jenkins"

    def __init__(self, values):
        settings = dict(self.ENV_VAR_DEFAULTS)
        settings.update(
            {key: value for key, value in values.items() if value is not None}
        )

        self.mode = settings[self.DEPLOYMENT_MODE_ENV_VAR_NAME].strip().lower()
        if self.mode not in DEPLOYMENT_MODES:
            raise ConfigurationError(
                f"invalid deployment mode: '{self.mode}', must be "
                f"'{LOCAL_MODE}' or '{REMOTE_MODE}'"
            )
        self.docker_host_ip = settings[self.DOCKER_HOST_IP_ENV_VAR_NAME]
        if self.is_remote and not self.docker_host_ip:
            raise ConfigurationError(
                f"{self.DOCKER_HOST_IP_ENV_VAR_NAME} environment variable is "
                "required for remote deployment"
            )
        self.ansible_user = settings[self.ANSIBLE_USER_ENV_VAR_NAME]
        self.ssh_key_path = settings[self.SSH_KEY_PATH_ENV_VAR_NAME]
        self.admin_user = settings[self.ADMIN_USER_ENV_VAR_NAME]
        self.admin_password = settings[self.ADMIN_PASSWORD_ENV_VAR_NAME]
        self.domain = settings[self.DOMAIN_ENV_VAR_NAME]
        self.base_domain = settings[self.BASE_DOMAIN_ENV_VAR_NAME]
        self.ssl_cert_source_path = settings[self.SSL_CERT_PATH_ENV_VAR_NAME]
        self.haproxy_stats_password = settings[
            self.HAPROXY_STATS_PASSWORD_ENV_VAR_NAME
        ]
        self.timezone = settings[self.TZ_ENV_VAR_NAME]

        # remote hosts are always served over TLS, local ones always
        # self-sign when TLS is switched on
        self.ssl_enabled = self.is_remote or parse_bool(
            self.SSL_ENABLED_ENV_VAR_NAME,
            settings[self.SSL_ENABLED_ENV_VAR_NAME],
        )
        self.generate_self_signed = self.is_local or parse_bool(
            self.GENERATE_SELF_SIGNED_ENV_VAR_NAME,
            settings[self.GENERATE_SELF_SIGNED_ENV_VAR_NAME],
        )

    @classmethod
    def from_environ(cls, environ=None, env_file=None, mode=None):
        """Read the deployment environment.

        Parameters
        ----------
        environ : dict, optional
            Defaults to os.environ.
        env_file : str, optional
            A dotenv file, its values only fill in variables that are not
            already set in environ.
        mode : str, optional
            Overrides DEPLOYMENT_MODE, e.g. from the command line.

        Raises
        ------
        ConfigurationError
            If the settings are not valid.
        FileNotFoundError
            If env_file does not exist.

        """
        if environ is None:
            environ = os.environ
        values = dict()
        if env_file is not None:
            if not os.path.isfile(env_file):
                raise FileNotFoundError(2, "No such file", env_file)
            logger.debug(f"loading env file {env_file}")
            values.update(dotenv_values(env_file))
        for name in cls.ENV_VAR_DEFAULTS:
            if environ.get(name) is not None:
                values[name] = environ[name]
        if mode is not None:
            values[cls.DEPLOYMENT_MODE_ENV_VAR_NAME] = mode
        return cls(values)

    @property
    def is_local(self):
        return self.mode == LOCAL_MODE

    @property
    def is_remote(self):
        return self.mode == REMOTE_MODE

    @property
    def home_dir(self):
        """Where the stack lives on the docker host."""
        return self.LOCAL_HOME_DIR if self.is_local else self.REMOTE_HOME_DIR

    @property
    def jenkins_host(self):
        return "localhost" if self.is_local else self.docker_host_ip

    @property
    def master_memory(self):
        return "2g" if self.is_local else "4g"

    @property
    def master_memory_min(self):
        return "1g" if self.is_local else "2g"

    @property
    def ssh_target(self):
        return f"{self.ansible_user}@{self.docker_host_ip}"

    @property
    def public_host(self):
        """Host name users reach the stack with through HAProxy."""
        return "jenkins.dev.local" if self.is_local else self.domain

    def ansible_env(self, base=None):
        """Environment handed to the ansible-playbook process.

        Parameters
        ----------
        base : dict, optional
            Environment to extend, defaults to a copy of os.environ.

        """
        env = dict(os.environ if base is None else base)
        env.update(
            {
                self.DEPLOYMENT_MODE_ENV_VAR_NAME: self.mode,
                self.ANSIBLE_USER_ENV_VAR_NAME: self.ansible_user,
                self.SSH_KEY_PATH_ENV_VAR_NAME: self.ssh_key_path,
                self.ADMIN_USER_ENV_VAR_NAME: self.admin_user,
                self.ADMIN_PASSWORD_ENV_VAR_NAME: self.admin_password,
                self.DOMAIN_ENV_VAR_NAME: self.domain,
                self.BASE_DOMAIN_ENV_VAR_NAME: self.base_domain,
                self.HAPROXY_STATS_PASSWORD_ENV_VAR_NAME: (
                    self.haproxy_stats_password
                ),
                "ANSIBLE_HOST_KEY_CHECKING": "False",
                "ANSIBLE_STDOUT_CALLBACK": "yaml",
            }
        )
        if self.docker_host_ip:
            env[self.DOCKER_HOST_IP_ENV_VAR_NAME] = self.docker_host_ip
        return env
