"""Generation of the Docker Compose file that runs the stack."""
# Standard Library Imports
import logging

# Third Party Imports
import ruamel.yaml

# Local Application Imports

logger = logging.getLogger(__name__)

COMPOSE_FILENAME = "docker-compose.jenkins.yml"

MASTER_SERVICE = "jenkins-master"
DIND_AGENT_SERVICE = "jenkins-agent-dind"
HAPROXY_SERVICE = "haproxy"

DOCKER_SOCKET_VOLUME = "/var/run/docker.sock:/var/run/docker.sock"
CERTIFICATES_VOLUME = (
    "${CERTIFICATES_PATH:-./certificates}:/usr/local/share/ca-certificates:ro"
)

# volumes the stack itself needs, the agents add their own caches
STACK_VOLUMES = [
    "jenkins_home",
    "jenkins_agent_dind_workspace",
    "jenkins_docker_data",
    "jenkins_shared_workspace",
]


def _json_file_logging(max_size, max_file):
    return {
        "driver": "json-file",
        "options": {"max-size": max_size, "max-file": str(max_file)},
    }


class ComposeFile:
    """Builds docker-compose.jenkins.yml from the stack configuration."""

    YAML_PARSER_WIDTH = 1000

    def __init__(self, stack_config, environment):
        self.stack_config = stack_config
        self.environment = environment
        self.compose = ruamel.yaml.comments.CommentedMap()
        self._yaml_parser = ruamel.yaml.YAML()
        self._yaml_parser.width = self.YAML_PARSER_WIDTH

    def _master(self):
        jenkins = self.stack_config.jenkins
        return {
            "build": {"context": "./jenkins/master", "dockerfile": "Dockerfile"},
            "container_name": MASTER_SERVICE,
            "hostname": MASTER_SERVICE,
            "restart": "unless-stopped",
            "ports": [
                f"${{JENKINS_MASTER_PORT:-{jenkins['master_port']}}}:8080",
                f"${{JENKINS_AGENT_PORT:-{jenkins['agent_port']}}}:50000",
            ],
            "environment": [
                "JENKINS_ADMIN_ID=${JENKINS_ADMIN_USER:-admin}",
                "JENKINS_ADMIN_PASSWORD=${JENKINS_ADMIN_PASSWORD:-admin123}",
                (
                    "JAVA_OPTS=-Djenkins.install.runSetupWizard=false "
                    f"-Xmx${{JENKINS_MASTER_MEMORY:-{self.environment.master_memory}}} "
                    f"-Xms${{JENKINS_MASTER_MEMORY_MIN:-{self.environment.master_memory_min}}}"
                ),
                "JENKINS_OPTS=--httpPort=8080",
                "JENKINS_SLAVE_AGENT_PORT=50000",
                "CASC_JENKINS_CONFIG=/var/jenkins_home/casc_configs",
                f"DOCKER_HOST={jenkins['docker_host']}",
                "TZ=${TZ:-UTC}",
            ],
            "volumes": [
                "jenkins_home:/var/jenkins_home",
                DOCKER_SOCKET_VOLUME,
                "./jenkins/master/jcasc:/var/jenkins_home/casc_configs:ro",
                CERTIFICATES_VOLUME,
                "./backups:/backups",
            ],
            "networks": [jenkins["network_name"]],
            "labels": ["jenkins.component=master", "jenkins.role=controller"],
            "healthcheck": {
                "test": [
                    "CMD-SHELL",
                    "curl -f http://localhost:8080/login || exit 1",
                ],
                "interval": "60s",
                "timeout": "10s",
                "retries": 5,
                "start_period": "120s",
            },
            "logging": _json_file_logging("10m", 3),
        }

    def _dind_agent(self):
        agent = self.stack_config.dind_agent
        return {
            "build": {
                "context": "./jenkins/agents",
                "dockerfile": "Dockerfile.dind",
            },
            "container_name": DIND_AGENT_SERVICE,
            "hostname": DIND_AGENT_SERVICE,
            "restart": "unless-stopped",
            "privileged": True,
            "environment": [
                f"JENKINS_URL=http://{MASTER_SERVICE}:8080",
                f"JENKINS_AGENT_NAME={agent.name}",
                f"JENKINS_AGENT_WORKDIR={agent.workspace}",
                "JENKINS_WEB_SOCKET=true",
                "DOCKER_HOST=unix:///var/run/docker.sock",
                "DOCKER_BUILDKIT=1",
                "COMPOSE_DOCKER_CLI_BUILD=1",
                f"JENKINS_TUNNEL={MASTER_SERVICE}:50000",
                "JENKINS_PROTOCOLS=JNLP4-connect",
                "JAVA_OPTS=-Xmx1g -Xms512m",
                "TZ=${TZ:-UTC}",
            ],
            "volumes": [
                DOCKER_SOCKET_VOLUME,
                f"jenkins_agent_dind_workspace:{agent.workspace}",
                "jenkins_docker_data:/var/lib/docker",
                "jenkins_shared_workspace:/shared/workspace",
                CERTIFICATES_VOLUME,
            ],
            "networks": [self.stack_config.jenkins["network_name"]],
            "depends_on": {MASTER_SERVICE: {"condition": "service_healthy"}},
            "labels": [
                "jenkins.component=agent",
                "jenkins.agent.type=static",
                "jenkins.agent.role=dind",
                f"jenkins.agent.labels={','.join(agent.labels.split())}",
            ],
            "user": "1000:1000",
            "logging": _json_file_logging("5m", 2),
        }

    def _haproxy(self):
        haproxy = self.stack_config.haproxy
        return {
            "build": {"context": "./jenkins", "dockerfile": "Dockerfile.haproxy"},
            "container_name": HAPROXY_SERVICE,
            "hostname": HAPROXY_SERVICE,
            "restart": "unless-stopped",
            "ports": [
                f"{haproxy['http_port']}:{haproxy['http_port']}",
                f"{haproxy['https_port']}:{haproxy['https_port']}",
                f"{haproxy['stats_port']}:{haproxy['stats_port']}",
                f"{haproxy['health_port']}:{haproxy['health_port']}",
            ],
            "volumes": ["./certificates:/usr/local/etc/haproxy/certs:ro"],
            "networks": [self.stack_config.jenkins["network_name"]],
            "depends_on": {MASTER_SERVICE: {"condition": "service_healthy"}},
            "labels": ["jenkins.component=loadbalancer"],
            "logging": _json_file_logging("5m", 2),
        }

    def volume_names(self):
        """Every named volume of the stack, agent volumes last."""
        names = list(STACK_VOLUMES)
        for volume in self.stack_config.agent_volumes():
            if volume not in names:
                names.append(volume)
        return names

    def services(self):
        names = [MASTER_SERVICE, DIND_AGENT_SERVICE]
        if self.stack_config.haproxy["enabled"]:
            names.append(HAPROXY_SERVICE)
        return names

    def build(self):
        """Generate the compose file contents.

        Returns
        -------
        CommentedMap
            The compose file, also kept as the compose attribute.

        """
        jenkins = self.stack_config.jenkins
        services = ruamel.yaml.comments.CommentedMap()
        services[MASTER_SERVICE] = self._master()
        services[DIND_AGENT_SERVICE] = self._dind_agent()
        if self.stack_config.haproxy["enabled"]:
            services[HAPROXY_SERVICE] = self._haproxy()

        self.compose = ruamel.yaml.comments.CommentedMap()
        self.compose["services"] = services
        self.compose["networks"] = {
            jenkins["network_name"]: {
                "name": jenkins["network_name"],
                "driver": "bridge",
                "ipam": {
                    "config": [
                        {
                            "subnet": (
                                "${JENKINS_NETWORK_SUBNET:-"
                                f"{jenkins['network_subnet']}}}"
                            )
                        }
                    ]
                },
            }
        }
        volumes = ruamel.yaml.comments.CommentedMap()
        for name in self.volume_names():
            volumes[name] = {"name": name, "driver": "local"}
        self.compose["volumes"] = volumes
        logger.debug(f"built compose file with services {self.services()}")
        return self.compose

    def dump(self, stream):
        self._yaml_parser.dump(self.compose, stream)
