"""Declarative descriptions of the Jenkins build agents.

Two kinds of agents make up the stack. The static agent is a privileged
Docker-in-Docker container that is always connected to the master. Dynamic
agents are described by templates that the Jenkins Docker Cloud plugin turns
into containers on demand, up to an instance cap, and removes again after
they have been idle for a number of minutes. Only the descriptions live here,
provisioning itself is the plugin's business.
"""
# Standard Library Imports
import posixpath
import re

# Third Party Imports
from ruamel.yaml import scalarstring

# Local Application Imports
from jenkinsstack.errors import ConfigurationError

MOUNT_TYPES = ("bind", "volume")
# docker accepts several spellings for the same mount field
MOUNT_KEY_ALIASES = {
    "src": "source",
    "dst": "destination",
    "target": "destination",
}
ENV_VAR_NAME_REGEX = r"^[a-zA-Z_]\w*$"


def parse_mount(mount):
    """Parse a docker '--mount' style string.

    Parameters
    ----------
    mount : str
        E.g. 'type=volume,source=maven-cache,destination=/home/jenkins/.m2'.

    Returns
    -------
    dict
        The mount fields, with 'type', 'source' and 'destination' keys
        always present.

    Raises
    ------
    ConfigurationError
        If the string is not a valid bind or volume mount.

    """
    fields = dict()
    for field in mount.split(","):
        key, sep, value = field.partition("=")
        key = key.strip()
        if not sep or not key or not value:
            raise ConfigurationError(
                f"mount '{mount}' has a malformed field '{field}'"
            )
        fields[MOUNT_KEY_ALIASES.get(key, key)] = value.strip()

    for required in ("type", "source", "destination"):
        if required not in fields:
            raise ConfigurationError(
                f"mount '{mount}' is missing its '{required}'"
            )
    if fields["type"] not in MOUNT_TYPES:
        raise ConfigurationError(
            f"mount '{mount}' has an unsupported type '{fields['type']}'"
        )
    if not posixpath.isabs(fields["destination"]):
        raise ConfigurationError(
            f"mount '{mount}' needs an absolute destination"
        )
    return fields


def _positive_int(agent_name, key, value):
    # bool is an int subclass, 'true' is never a valid cap
    if isinstance(value, bool):
        raise ConfigurationError(
            f"agent '{agent_name}': {key} must be a positive integer"
        )
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"agent '{agent_name}': {key} must be a positive integer"
        )
    if not value > 0:
        raise ConfigurationError(
            f"agent '{agent_name}': {key} must be a positive integer"
        )
    return value


class AgentTemplate:
    """A dynamic agent, instantiated by the Docker Cloud plugin on demand.

    Attributes
    ----------
    name : str
        Key of the template in the program configuration.
    image : str
        Image reference the agent containers are created from.
    labels : str
        Space separated Jenkins labels that select this template.
    instance_cap : int
        Maximum number of concurrently running containers.
    idle_minutes : int
        Minutes an idle container is kept before it is removed.
    environment : dict of str
        Environment variables set inside the containers.
    mounts : list of str
        Docker '--mount' strings.

    """

    # jenkins configurations as code (CasC) docker template keys

    LABEL_STRING_KEY_YAML = "labelString"
    DOCKER_TEMPLATE_BASE_KEY_YAML = "dockerTemplateBase"
    IMAGE_KEY_YAML = "image"
    MOUNTS_KEY_YAML = "mounts"
    ENVIRONMENTS_STRING_KEY_YAML = "environmentsString"
    REMOTEFS_KEY_YAML = "remoteFs"
    CONNECTOR_KEY_YAML = "connector"
    ATTACH_KEY_YAML = "attach"
    USER_KEY_YAML = "user"
    INSTANCE_CAP_STR_KEY_YAML = "instanceCapStr"
    RETENTION_STRATEGY_KEY_YAML = "retentionStrategy"
    IDLE_MINUTES_KEY_YAML = "idleMinutes"
    REMOVE_VOLUMES_KEY_YAML = "removeVolumes"
    PULL_STRATEGY_KEY_YAML = "pullStrategy"

    AGENT_WORKDIR_ENV_VAR_NAME = "JENKINS_AGENT_WORKDIR"
    DEFAULT_REMOTE_FS = "/home/jenkins/agent"
    DEFAULT_USER = "jenkins"
    PULL_STRATEGIES = (
        "PULL_ALWAYS",
        "PULL_LATEST",
        "PULL_NEVER",
    )
    CONFIG_KEYS = (
        "image",
        "labels",
        "instance_cap",
        "idle_minutes",
        "environment",
        "mounts",
        "remote_fs",
        "user",
        "pull_strategy",
        "remove_volumes",
    )
    REQUIRED_CONFIG_KEYS = ("image", "labels")

    def __init__(
        self,
        name,
        image,
        labels,
        instance_cap=1,
        idle_minutes=10,
        environment=None,
        mounts=None,
        remote_fs=DEFAULT_REMOTE_FS,
        user=DEFAULT_USER,
        pull_strategy="PULL_LATEST",
        remove_volumes=True,
    ):
        if not image:
            raise ConfigurationError(f"agent '{name}' needs an image")
        if not labels or not str(labels).split():
            raise ConfigurationError(f"agent '{name}' needs labels")
        if pull_strategy not in self.PULL_STRATEGIES:
            raise ConfigurationError(
                f"agent '{name}': unknown pull strategy '{pull_strategy}'"
            )

        self.name = name
        self.image = image
        self.labels = " ".join(str(labels).split())
        self.instance_cap = _positive_int(name, "instance_cap", instance_cap)
        self.idle_minutes = _positive_int(name, "idle_minutes", idle_minutes)
        self.environment = dict()
        for key, value in (environment or dict()).items():
            if not re.search(ENV_VAR_NAME_REGEX, key):
                raise ConfigurationError(
                    f"agent '{name}': '{key}' is not a valid env var name"
                )
            self.environment[key] = str(value)
        self.mounts = list(mounts or list())
        # fail early on a bad mount rather than in the docker plugin
        self._parsed_mounts = [parse_mount(mount) for mount in self.mounts]
        self.remote_fs = remote_fs
        self.user = user
        self.pull_strategy = pull_strategy
        self.remove_volumes = bool(remove_volumes)

    def __repr__(self):
        return (
            f"{type(self).__name__}({self.name!r}, {self.image!r}, "
            f"labels={self.labels!r})"
        )

    @classmethod
    def from_mapping(cls, name, mapping):
        """Build a template from a table of the program configuration.

        Raises
        ------
        ConfigurationError
            If the table holds unknown keys, lacks an image or labels, or
            holds invalid values.

        """
        unknown = sorted(set(mapping) - set(cls.CONFIG_KEYS))
        if unknown:
            raise ConfigurationError(
                f"agent '{name}' has unknown setting(s): {', '.join(unknown)}"
            )
        missing = [key for key in cls.REQUIRED_CONFIG_KEYS if key not in mapping]
        if missing:
            raise ConfigurationError(
                f"agent '{name}' is missing setting(s): {', '.join(missing)}"
            )
        return cls(name, **mapping)

    @property
    def label_list(self):
        return self.labels.split()

    def environments_string(self):
        """Environment of the agent, one 'KEY=VALUE' pair per line."""
        environment = dict(self.environment)
        environment.setdefault(self.AGENT_WORKDIR_ENV_VAR_NAME, self.remote_fs)
        return "".join(
            f"{key}={value}\n" for key, value in environment.items()
        )

    def named_volumes(self):
        """Names of the docker volumes the agent mounts."""
        return [
            mount["source"]
            for mount in self._parsed_mounts
            if mount["type"] == "volume"
        ]

    def to_casc(self):
        """Return the docker cloud template used by JCasC.

        Below is an example of what is constructed:

        - labelString: "maven java dynamic"
          dockerTemplateBase:
            image: "jenkins/inbound-agent:latest-maven"
            mounts:
              - "type=volume,source=maven-cache,destination=/home/jenkins/.m2"
            environmentsString: |
              MAVEN_OPTS=-Xmx2g -Xms512m
              JENKINS_AGENT_WORKDIR=/home/jenkins/agent
          remoteFs: "/home/jenkins/agent"
          connector:
            attach:
              user: "jenkins"
          instanceCapStr: "5"
          retentionStrategy:
            idleMinutes: 10
          removeVolumes: true
          pullStrategy: PULL_LATEST

        """
        return {
            self.LABEL_STRING_KEY_YAML: self.labels,
            self.DOCKER_TEMPLATE_BASE_KEY_YAML: {
                self.IMAGE_KEY_YAML: self.image,
                self.MOUNTS_KEY_YAML: list(self.mounts),
                self.ENVIRONMENTS_STRING_KEY_YAML: (
                    scalarstring.LiteralScalarString(
                        self.environments_string()
                    )
                ),
            },
            self.REMOTEFS_KEY_YAML: self.remote_fs,
            self.CONNECTOR_KEY_YAML: {
                self.ATTACH_KEY_YAML: {self.USER_KEY_YAML: self.user}
            },
            # the plugin only takes the cap as a string
            self.INSTANCE_CAP_STR_KEY_YAML: str(self.instance_cap),
            self.RETENTION_STRATEGY_KEY_YAML: {
                self.IDLE_MINUTES_KEY_YAML: self.idle_minutes
            },
            self.REMOVE_VOLUMES_KEY_YAML: self.remove_volumes,
            self.PULL_STRATEGY_KEY_YAML: self.pull_strategy,
        }


class StaticAgent:
    """The permanent Docker-in-Docker agent that connects to the master."""

    PERMANENT_KEY_YAML = "permanent"
    NAME_KEY_YAML = "name"
    DESCRIPTION_KEY_YAML = "description"
    NUM_EXECUTORS_KEY_YAML = "numExecutors"
    MODE_KEY_YAML = "mode"
    LABEL_STRING_KEY_YAML = "labelString"
    REMOTEFS_KEY_YAML = "remoteFS"
    LAUNCHER_KEY_YAML = "launcher"
    INBOUND_KEY_YAML = "inbound"
    WORKDIRSETTINGS_KEY_YAML = "workDirSettings"
    DISABLED_KEY_YAML = "disabled"
    FAIL_IF_WORKING_DIR_IS_MISSING_KEY_YAML = "failIfWorkDirIsMissing"
    INTERNALDIR_KEY_YAML = "internalDir"
    RETENTION_STRATEGY_KEY_YAML = "retentionStrategy"
    NODE_PROPERTIES_KEY_YAML = "nodeProperties"

    CONFIG_KEYS = ("name", "labels", "executors", "workspace", "description")

    def __init__(
        self,
        name="dind-agent",
        labels="dind docker-manager static privileged",
        executors=2,
        workspace="/home/jenkins/agent",
        description=(
            "Static Docker-in-Docker agent for managing dynamic nodes"
        ),
    ):
        if not name:
            raise ConfigurationError("the static agent needs a name")
        self.name = name
        self.labels = " ".join(str(labels).split())
        self.executors = _positive_int(name, "executors", executors)
        self.workspace = workspace
        self.description = description

    @classmethod
    def from_mapping(cls, mapping):
        unknown = sorted(set(mapping) - set(cls.CONFIG_KEYS))
        if unknown:
            raise ConfigurationError(
                f"static agent has unknown setting(s): {', '.join(unknown)}"
            )
        return cls(**mapping)

    def to_casc(self):
        """Return the JCasC 'permanent' node of the agent."""
        return {
            self.PERMANENT_KEY_YAML: {
                self.NAME_KEY_YAML: self.name,
                self.DESCRIPTION_KEY_YAML: self.description,
                self.NUM_EXECUTORS_KEY_YAML: self.executors,
                self.MODE_KEY_YAML: "NORMAL",
                self.LABEL_STRING_KEY_YAML: self.labels,
                self.REMOTEFS_KEY_YAML: self.workspace,
                self.LAUNCHER_KEY_YAML: {
                    self.INBOUND_KEY_YAML: {
                        self.WORKDIRSETTINGS_KEY_YAML: {
                            self.DISABLED_KEY_YAML: False,
                            self.FAIL_IF_WORKING_DIR_IS_MISSING_KEY_YAML: False,
                            self.INTERNALDIR_KEY_YAML: "remoting",
                        }
                    }
                },
                self.RETENTION_STRATEGY_KEY_YAML: "always",
                self.NODE_PROPERTIES_KEY_YAML: [
                    {
                        "envVars": {
                            "env": [
                                {
                                    "key": "DOCKER_HOST",
                                    "value": "unix:///var/run/docker.sock",
                                },
                                {"key": "DOCKER_BUILDKIT", "value": "1"},
                            ]
                        }
                    }
                ],
            }
        }
