"""Rendering of the text artifacts (Dockerfiles, haproxy.cfg, ...)."""
# Standard Library Imports
import logging

# Third Party Imports
from jinja2 import Environment, PackageLoader, StrictUndefined

# Local Application Imports

logger = logging.getLogger(__name__)

MASTER_DOCKERFILE_TEMPLATE = "Dockerfile.master.j2"
DIND_DOCKERFILE_TEMPLATE = "Dockerfile.dind.j2"
HAPROXY_DOCKERFILE_TEMPLATE = "Dockerfile.haproxy.j2"
HAPROXY_CONFIG_TEMPLATE = "haproxy.cfg.j2"
PLUGINS_TEMPLATE = "plugins.txt.j2"
ENV_FILE_TEMPLATE = "jenkins.env.j2"


class TemplateRenderer:
    """Renders the templates shipped with the package.

    Undefined template variables are errors, a half rendered Dockerfile
    would only fail later inside docker build.

    """

    def __init__(self, stack_config, environment):
        self.stack_config = stack_config
        self.environment = environment
        self._jinja = Environment(
            loader=PackageLoader("jenkinsstack", "templates"),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def context(self):
        return {
            "environment": self.environment,
            "jenkins": self.stack_config.jenkins,
            "haproxy": self.stack_config.haproxy,
            "dind_agent": self.stack_config.dind_agent,
            "dynamic_agents": self.stack_config.dynamic_agents,
        }

    def render(self, template_name):
        """Render one template with the stack context.

        Raises
        ------
        jinja2.exceptions.TemplateNotFound
            If template_name is not shipped with the package.
        jinja2.exceptions.UndefinedError
            If the template uses a variable the context lacks.

        """
        logger.debug(f"rendering {template_name}")
        template = self._jinja.get_template(template_name)
        return template.render(**self.context())

    def master_dockerfile(self):
        return self.render(MASTER_DOCKERFILE_TEMPLATE)

    def dind_dockerfile(self):
        return self.render(DIND_DOCKERFILE_TEMPLATE)

    def haproxy_dockerfile(self):
        return self.render(HAPROXY_DOCKERFILE_TEMPLATE)

    def haproxy_config(self):
        return self.render(HAPROXY_CONFIG_TEMPLATE)

    def plugins(self):
        return self.render(PLUGINS_TEMPLATE)

    def env_file(self):
        return self.render(ENV_FILE_TEMPLATE)
