"""The program configuration file (TOML) and its built-in defaults."""
# Standard Library Imports
import copy
import logging
import pathlib

# Third Party Imports
import toml

# Local Application Imports
from jenkinsstack.agents import AgentTemplate, StaticAgent
from jenkinsstack.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE_PATH = "./jenkinsstack.toml"

DEFAULT_PLUGINS = [
    "ant:latest",
    "build-timeout:latest",
    "credentials-binding:latest",
    "timestamper:latest",
    "ws-cleanup:latest",
    "workflow-aggregator:latest",
    "pipeline-stage-view:latest",
    "git:latest",
    "github:latest",
    "github-branch-source:latest",
    "docker-plugin:latest",
    "docker-workflow:latest",
    "docker-commons:latest",
    "pipeline-maven:latest",
    "pipeline-utility-steps:latest",
    "maven-plugin:latest",
    "python:latest",
    "junit:latest",
    "htmlpublisher:latest",
    "matrix-auth:latest",
    "role-strategy:latest",
    "email-ext:latest",
    "configuration-as-code:latest",
    "envinject:latest",
    "copyartifact:latest",
]

DOCKER_SOCKET_MOUNT = (
    "type=bind,source=/var/run/docker.sock,destination=/var/run/docker.sock"
)
WORKSPACE_MOUNT = (
    "type=volume,source=jenkins-workspace,destination=/home/jenkins/agent"
)

DEFAULTS = {
    "jenkins": {
        "version": "2.401.3-lts",
        "master_port": 8080,
        "agent_port": 50000,
        "network_name": "jenkins-network",
        "network_subnet": "172.20.0.0/24",
        "docker_host": "unix:///var/run/docker.sock",
        "system_message": (
            "Jenkins Master - Docker-based CI/CD Environment\n"
            "Configured via Configuration as Code"
        ),
        "mail_suffix": "@company.com",
        "git_user_name": "Jenkins",
        "git_user_email": "jenkins@company.com",
        "plugins": DEFAULT_PLUGINS,
    },
    "haproxy": {
        "enabled": True,
        "version": "2.8",
        "http_port": 80,
        "https_port": 443,
        "stats_port": 8404,
        "stats_uri": "/stats",
        "stats_user": "admin",
        "stats_auth_enabled": True,
        "health_port": 8405,
        "backend_servers": [
            {
                "name": "jenkins-master-01",
                "address": "jenkins-master",
                "port": 8080,
                "weight": 100,
                "backup": False,
            }
        ],
    },
    "dind_agent": {
        "name": "dind-agent",
        "labels": "dind docker-manager static privileged",
        "executors": 2,
        "workspace": "/home/jenkins/agent",
    },
    "dynamic_agents": {
        "maven": {
            "image": "jenkins/inbound-agent:latest-maven",
            "labels": "maven java dynamic",
            "instance_cap": 5,
            "idle_minutes": 10,
            "environment": {
                "JAVA_HOME": "/opt/java/openjdk-11",
                "MAVEN_OPTS": "-Xmx2g -Xms512m",
                "DOCKER_HOST": "unix:///var/run/docker.sock",
            },
            "mounts": [
                DOCKER_SOCKET_MOUNT,
                "type=volume,source=maven-cache,destination=/home/jenkins/.m2",
                WORKSPACE_MOUNT,
            ],
        },
        "python": {
            "image": "jenkins/inbound-agent:latest-python",
            "labels": "python py dynamic",
            "instance_cap": 5,
            "idle_minutes": 10,
            "environment": {
                "PYTHONPATH": "/usr/local/lib/python3.9/site-packages",
                "PIP_CACHE_DIR": "/home/jenkins/.cache/pip",
                "DOCKER_HOST": "unix:///var/run/docker.sock",
            },
            "mounts": [
                DOCKER_SOCKET_MOUNT,
                (
                    "type=volume,source=pip-cache,"
                    "destination=/home/jenkins/.cache/pip"
                ),
                WORKSPACE_MOUNT,
            ],
        },
    },
}


def merge_tables(base, override):
    """Merge the override table into the base table, in place.

    Nested tables are merged key by key, anything else (scalars, arrays)
    in override replaces what is in base.

    Returns
    -------
    dict
        The base table.

    """
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            # If the child node is also a parent node, we will want to
            # iterate until we get to the bottom.
            merge_tables(base[key], value)
        else:
            base[key] = value
    return base


class StackConfig:
    """What the stack is made of, beyond the deployment environment.

    Attributes
    ----------
    jenkins : dict
        Master settings (version, ports, plugins, network...).
    haproxy : dict
        Load balancer settings.
    dind_agent : StaticAgent
    dynamic_agents : list of AgentTemplate

    """

    SECTIONS = ("jenkins", "haproxy", "dind_agent", "dynamic_agents")

    def __init__(self, tables=None):
        settings = merge_tables(copy.deepcopy(DEFAULTS), tables or dict())
        unknown = sorted(set(settings) - set(self.SECTIONS))
        if unknown:
            raise ConfigurationError(
                f"unknown configuration section(s): {', '.join(unknown)}"
            )
        self.jenkins = settings["jenkins"]
        self.haproxy = settings["haproxy"]
        self.dind_agent = StaticAgent.from_mapping(settings["dind_agent"])
        self.dynamic_agents = [
            AgentTemplate.from_mapping(name, mapping)
            for name, mapping in settings["dynamic_agents"].items()
        ]
        self._validate()

    def _validate(self):
        labels_seen = dict()
        for agent in self.dynamic_agents:
            # the docker cloud picks the first template whose labels
            # match, two templates with the same labels hide each other
            if agent.labels in labels_seen:
                raise ConfigurationError(
                    f"agents '{labels_seen[agent.labels]}' and "
                    f"'{agent.name}' share the labels '{agent.labels}'"
                )
            labels_seen[agent.labels] = agent.name
        for server in self.haproxy["backend_servers"]:
            for key in ("name", "address", "port"):
                if key not in server:
                    raise ConfigurationError(
                        f"haproxy backend server is missing its '{key}'"
                    )
        if not self.jenkins["plugins"]:
            raise ConfigurationError("at least one plugin must be listed")

    @classmethod
    def load(cls, config_path=None):
        """Load the program configuration file.

        Parameters
        ----------
        config_path : str, optional
            Path of the TOML file. When not given, DEFAULT_CONFIG_FILE_PATH
            is used if it exists, otherwise only the defaults apply.

        Raises
        ------
        ConfigurationError
            If the configuration file contains syntax error(s) or invalid
            values.
        FileNotFoundError
            If an explicitly given config_path does not exist.

        """
        if config_path is None:
            if not pathlib.Path(DEFAULT_CONFIG_FILE_PATH).exists():
                logger.debug("no configuration file, using the defaults")
                return cls()
            config_path = DEFAULT_CONFIG_FILE_PATH
        try:
            tables = toml.load(config_path)
        except toml.decoder.TomlDecodeError as e:
            raise ConfigurationError(
                f"the configuration file contains syntax error(s): {e}"
            )
        logger.debug(f"loaded configuration file {config_path}")
        return cls(tables)

    @property
    def all_labels(self):
        """Every label string, the static agent's first."""
        return [self.dind_agent.labels] + [
            agent.labels for agent in self.dynamic_agents
        ]

    def agent_volumes(self):
        """Named volumes the dynamic agents mount, without duplicates."""
        volumes = list()
        for agent in self.dynamic_agents:
            for volume in agent.named_volumes():
                if volume not in volumes:
                    volumes.append(volume)
        return volumes
