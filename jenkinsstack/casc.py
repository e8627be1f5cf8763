"""Generation of the Jenkins configuration as code (CasC) file."""
# Standard Library Imports
import logging
import re

# Third Party Imports
import ruamel.yaml

# Local Application Imports
from jenkinsstack.errors import ConfigurationError

logger = logging.getLogger(__name__)


class JenkinsConfigurationAsCode:
    """Builds the YAML consumed by the JCasC plugin on the master.

    The generated document is a ruamel.yaml CommentedMap, so another casc
    file can be merged into it and the result dumped with comments of the
    merged file intact.

    Attributes
    ----------
    YAML_PARSER_WIDTH : int
        Used by the yaml parser on when to start wrapping text.
    ADMIN_ID_PLACEHOLDER : str
        Left for JCasC to resolve from the container environment, this
        keeps the admin credentials out of the generated file.

    See Also
    --------
    JCasC plugin ==> https://www.jenkins.io/projects/jcasc/
    docker plugin ==> https://plugins.jenkins.io/docker-plugin/

    """

    YAML_PARSER_WIDTH = 1000

    # jenkins key values related ({jenkins: {...}})

    JENKINS_ROOT_KEY_YAML = "jenkins"
    JENKINS_NODES_KEY_YAML = "nodes"
    CLOUDS_KEY_YAML = "clouds"
    DOCKER_KEY_YAML = "docker"
    TEMPLATES_KEY_YAML = "templates"
    TOOL_ROOT_KEY_YAML = "tool"
    UNCLASSIFIED_ROOT_KEY_YAML = "unclassified"

    DOCKER_CLOUD_NAME = "docker-cloud"
    ADMIN_ID_PLACEHOLDER = "${JENKINS_ADMIN_ID:-admin}"
    ADMIN_PASSWORD_PLACEHOLDER = "${JENKINS_ADMIN_PASSWORD:-admin123}"

    # ${FOO}, ${FOO:-bar} or $FOO
    SHELL_VARIABLE_REGEX = r"\$\{(\w+)(?::-[^}]*)?\}|\$([a-zA-Z_]\w*)"
    ENV_VAR_REGEX = r"^[a-zA-Z_]\w*=.*"

    DEVELOPER_PERMISSIONS = [
        "Overall/Read",
        "Job/Build",
        "Job/Cancel",
        "Job/Read",
        "Job/Workspace",
        "View/Read",
    ]

    def __init__(self, stack_config):
        self.stack_config = stack_config
        self.casc = ruamel.yaml.comments.CommentedMap()
        self._yaml_parser = ruamel.yaml.YAML()
        self._yaml_parser.width = self.YAML_PARSER_WIDTH

    @classmethod
    def parse_env_vars(cls, env_vars):
        """Turn '<key>=<value>' pairs into a dict.

        Raises
        ------
        ConfigurationError
            If any of the env variable pairs passed in are invalid.

        """
        env_var_names_to_values = dict()
        for env_var in env_vars:
            if not re.search(cls.ENV_VAR_REGEX, env_var):
                raise ConfigurationError(
                    f"'{env_var}' env var is not formatted correctly!"
                )
            name, _, value = env_var.partition("=")
            env_var_names_to_values[name] = value
        return env_var_names_to_values

    @classmethod
    def expand_env_vars(cls, file, env_vars):
        """Evaluate env variables in the file.

        Only variables given in env_vars are replaced, anything else is
        left for JCasC to resolve when it reads the file.

        Parameters
        ----------
        file : str
            Represents the contents of a file.
        env_vars : list of str
            Env variable pairs, in the format of '<key>=<value>'.

        Returns
        -------
        str
            Same file but with env variables evaluated.

        """
        env_var_names_to_values = cls.parse_env_vars(env_vars)

        def _expand(match):
            name = match.group(1) or match.group(2)
            return env_var_names_to_values.get(name, match.group(0))

        return re.sub(cls.SHELL_VARIABLE_REGEX, _expand, file)

    def _security(self):
        admin_id = self.ADMIN_ID_PLACEHOLDER
        return {
            "securityRealm": {
                "local": {
                    "allowsSignup": False,
                    "users": [
                        {
                            "id": admin_id,
                            "password": self.ADMIN_PASSWORD_PLACEHOLDER,
                        }
                    ],
                }
            },
            "authorizationStrategy": {
                "roleBased": {
                    "roles": {
                        "global": [
                            {
                                "name": "admin",
                                "description": "Jenkins administrators",
                                "permissions": ["Overall/Administer"],
                                "assignments": [admin_id],
                            },
                            {
                                "name": "developer",
                                "description": (
                                    "Developers with build permissions"
                                ),
                                "permissions": list(
                                    self.DEVELOPER_PERMISSIONS
                                ),
                                "assignments": ["authenticated"],
                            },
                        ]
                    }
                }
            },
        }

    def _docker_cloud(self):
        docker_host = self.stack_config.jenkins["docker_host"]
        return {
            self.DOCKER_KEY_YAML: {
                "name": self.DOCKER_CLOUD_NAME,
                "dockerApi": {"dockerHost": {"uri": docker_host}},
                self.TEMPLATES_KEY_YAML: [
                    agent.to_casc()
                    for agent in self.stack_config.dynamic_agents
                ],
            }
        }

    @staticmethod
    def _tools():
        return {
            "maven": {
                "installations": [
                    {
                        "name": "Maven-3.9",
                        "home": "/opt/maven",
                        "properties": [
                            {
                                "installSource": {
                                    "installers": [
                                        {"maven": {"id": "3.9.4"}}
                                    ]
                                }
                            }
                        ],
                    }
                ]
            },
            "git": {"installations": [{"name": "Default Git", "home": "git"}]},
            "jdk": {
                "installations": [
                    {
                        "name": "OpenJDK-11",
                        "home": "/opt/java/openjdk",
                        "properties": [
                            {
                                "installSource": {
                                    "installers": [
                                        {
                                            "adoptOpenJdkInstaller": {
                                                "id": "jdk-11.0.16+8"
                                            }
                                        }
                                    ]
                                }
                            }
                        ],
                    }
                ]
            },
        }

    def _unclassified(self):
        jenkins = self.stack_config.jenkins
        return {
            "mailer": {
                "defaultSuffix": jenkins["mail_suffix"],
                "smtpHost": "localhost",
                "smtpPort": "25",
            },
            "globalDefaultFlowDurabilityLevel": {
                "durabilityHint": "PERFORMANCE_OPTIMIZED"
            },
            "gitSCM": {
                "globalConfigName": jenkins["git_user_name"],
                "globalConfigEmail": jenkins["git_user_email"],
            },
        }

    def build(self):
        """Generate the casc from the stack configuration.

        Returns
        -------
        CommentedMap
            The loaded casc, also kept as the casc attribute.

        """
        jenkins = ruamel.yaml.comments.CommentedMap()
        jenkins["systemMessage"] = self.stack_config.jenkins["system_message"]
        # no builds on the master, agents only
        jenkins["numExecutors"] = 0
        jenkins.update(self._security())
        jenkins[self.JENKINS_NODES_KEY_YAML] = [
            self.stack_config.dind_agent.to_casc()
        ]
        jenkins["globalNodeProperties"] = [
            {
                "envVars": {
                    "env": [
                        {
                            "key": "DOCKER_HOST",
                            "value": self.stack_config.jenkins["docker_host"],
                        }
                    ]
                }
            }
        ]
        jenkins[self.CLOUDS_KEY_YAML] = [self._docker_cloud()]

        self.casc = ruamel.yaml.comments.CommentedMap()
        self.casc[self.JENKINS_ROOT_KEY_YAML] = jenkins
        self.casc[self.TOOL_ROOT_KEY_YAML] = self._tools()
        self.casc[self.UNCLASSIFIED_ROOT_KEY_YAML] = self._unclassified()
        logger.debug(
            f"built casc with {len(self.stack_config.dynamic_agents)} "
            "docker template(s)"
        )
        return self.casc

    def merge(self, casc_path):
        """Merge another casc file yaml into the loaded casc.

        Mappings are merged key by key, any other value in the merged file
        replaces the one in the loaded casc.

        Parameters
        ----------
        casc_path : str
            Name of the casc file to merge with loaded casc.

        Raises
        ------
        FileNotFoundError
            If the casc path does not exist on the filesystem.

        """

        def _merge_into_loaded_casc(casc_ptr, loaded_casc_ptr):
            """Traverse the casc, merging it with the loaded casc."""
            for key in casc_ptr.keys():
                if isinstance(loaded_casc_ptr.get(key), dict) and isinstance(
                    casc_ptr[key], dict
                ):
                    # If the child node is also a parent node, we will want
                    # to iterate until we get to the bottom.
                    _merge_into_loaded_casc(casc_ptr[key], loaded_casc_ptr[key])
                else:
                    loaded_casc_ptr[key] = casc_ptr[key]

        with open(casc_path, "r") as casc_target:
            casc = self._yaml_parser.load(casc_target)
        if casc is None:
            logger.warning(f"{casc_path} is empty, nothing to merge")
            return
        if not isinstance(casc, dict):
            raise ConfigurationError(f"{casc_path} is not a yaml mapping")
        _merge_into_loaded_casc(casc, self.casc)
        logger.debug(f"merged {casc_path} into the casc")

    def dump(self, stream, env_vars=None):
        """Write the loaded casc to stream, expanding env_vars if given."""
        if env_vars:
            # validate before anything is written out
            self.parse_env_vars(env_vars)
            self._yaml_parser.dump(
                self.casc,
                stream,
                transform=(
                    lambda string: self.expand_env_vars(string, env_vars)
                ),
            )
        else:
            self._yaml_parser.dump(self.casc, stream)
