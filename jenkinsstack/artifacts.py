"""Writes every generated artifact into a deployment directory."""
# Standard Library Imports
import logging
import os
import pathlib

# Third Party Imports

# Local Application Imports
from jenkinsstack.casc import JenkinsConfigurationAsCode
from jenkinsstack.compose import COMPOSE_FILENAME, ComposeFile
from jenkinsstack.render import TemplateRenderer

logger = logging.getLogger(__name__)

MASTER_DIR = pathlib.Path("jenkins", "master")
AGENTS_DIR = pathlib.Path("jenkins", "agents")
JCASC_PATH = MASTER_DIR / "jcasc" / "jenkins.yml"
MASTER_DOCKERFILE_PATH = MASTER_DIR / "Dockerfile"
PLUGINS_PATH = MASTER_DIR / "plugins.txt"
DIND_DOCKERFILE_PATH = AGENTS_DIR / "Dockerfile.dind"
HAPROXY_CONFIG_PATH = pathlib.Path("jenkins", "haproxy.cfg")
HAPROXY_DOCKERFILE_PATH = pathlib.Path("jenkins", "Dockerfile.haproxy")
COMPOSE_PATH = pathlib.Path(COMPOSE_FILENAME)
ENV_FILE_PATH = pathlib.Path(".env")
EMPTY_DIRS = ("certificates", "backups", "logs")

# the env file holds the admin password
ENV_FILE_MODE = 0o600


class ArtifactWriter:
    """Renders the stack into the directory layout docker compose expects.

    Below is the layout written (relative to the destination):

    docker-compose.jenkins.yml
    .env
    jenkins/haproxy.cfg
    jenkins/Dockerfile.haproxy
    jenkins/master/Dockerfile
    jenkins/master/plugins.txt
    jenkins/master/jcasc/jenkins.yml
    jenkins/agents/Dockerfile.dind
    certificates/
    backups/
    logs/

    """

    def __init__(self, stack_config, environment, merge_casc=None, env_vars=None):
        self.stack_config = stack_config
        self.environment = environment
        self.merge_casc = merge_casc
        self.env_vars = env_vars
        self.renderer = TemplateRenderer(stack_config, environment)

    @staticmethod
    def _write_text(path, text, mode=None):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as target:
            target.write(text)
        if mode is not None:
            os.chmod(path, mode)

    def _write_casc(self, path):
        casc = JenkinsConfigurationAsCode(self.stack_config)
        casc.build()
        if self.merge_casc:
            casc.merge(self.merge_casc)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as casc_target:
            casc.dump(casc_target, self.env_vars)

    def _write_compose(self, path):
        compose = ComposeFile(self.stack_config, self.environment)
        compose.build()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as compose_target:
            compose.dump(compose_target)

    def write(self, dest):
        """Write the artifacts.

        Parameters
        ----------
        dest : str or pathlib.Path
            Destination directory, created if it does not exist.

        Returns
        -------
        list of pathlib.Path
            The files written.

        """
        dest = pathlib.Path(dest)
        dest.mkdir(parents=True, exist_ok=True)
        written = list()

        self._write_casc(dest / JCASC_PATH)
        written.append(dest / JCASC_PATH)
        self._write_compose(dest / COMPOSE_PATH)
        written.append(dest / COMPOSE_PATH)

        text_artifacts = [
            (MASTER_DOCKERFILE_PATH, self.renderer.master_dockerfile(), None),
            (PLUGINS_PATH, self.renderer.plugins(), None),
            (DIND_DOCKERFILE_PATH, self.renderer.dind_dockerfile(), None),
            (ENV_FILE_PATH, self.renderer.env_file(), ENV_FILE_MODE),
        ]
        if self.stack_config.haproxy["enabled"]:
            text_artifacts += [
                (HAPROXY_CONFIG_PATH, self.renderer.haproxy_config(), None),
                (
                    HAPROXY_DOCKERFILE_PATH,
                    self.renderer.haproxy_dockerfile(),
                    None,
                ),
            ]
        for relative_path, text, mode in text_artifacts:
            self._write_text(dest / relative_path, text, mode)
            written.append(dest / relative_path)

        for dirname in EMPTY_DIRS:
            (dest / dirname).mkdir(exist_ok=True)

        logger.info(f"wrote {len(written)} artifact(s) to {dest}")
        return written
