import io

import pytest
import ruamel.yaml

from jenkinsstack.casc import JenkinsConfigurationAsCode
from jenkinsstack.config import StackConfig
from jenkinsstack.errors import ConfigurationError


def safe_load(text):
    return ruamel.yaml.YAML(typ="safe").load(text)


class TestJenkinsConfigurationAsCode:
    def setup_method(self, test_method):
        self.casc = JenkinsConfigurationAsCode(StackConfig())
        self.casc.build()

    def dumped(self, env_vars=None):
        stream = io.StringIO()
        self.casc.dump(stream, env_vars)
        return stream.getvalue()

    def test_docker_cloud_templates(self):
        document = safe_load(self.dumped())

        cloud = document["jenkins"]["clouds"][0]["docker"]
        assert cloud["name"] == "docker-cloud"
        assert cloud["dockerApi"]["dockerHost"]["uri"] == (
            "unix:///var/run/docker.sock"
        )
        templates = cloud["templates"]
        assert [template["labelString"] for template in templates] == [
            "maven java dynamic",
            "python py dynamic",
        ]
        assert all(template["instanceCapStr"] == "5" for template in templates)
        assert templates[1]["dockerTemplateBase"]["environmentsString"].endswith(
            "JENKINS_AGENT_WORKDIR=/home/jenkins/agent\n"
        )

    def test_master_and_static_agent(self):
        jenkins = safe_load(self.dumped())["jenkins"]

        assert jenkins["numExecutors"] == 0
        assert jenkins["nodes"][0]["permanent"]["name"] == "dind-agent"
        roles = jenkins["authorizationStrategy"]["roleBased"]["roles"]["global"]
        assert [role["name"] for role in roles] == ["admin", "developer"]

    def test_admin_credentials_left_to_jcasc(self):
        text = self.dumped()
        assert "${JENKINS_ADMIN_ID:-admin}" in text
        assert "${JENKINS_ADMIN_PASSWORD:-admin123}" in text

    def test_dump_expands_given_env_vars(self):
        text = self.dumped(["JENKINS_ADMIN_ID=root"])

        assert "${JENKINS_ADMIN_ID:-admin}" not in text
        assert "root" in text
        # variables that were not given stay for JCasC
        assert "${JENKINS_ADMIN_PASSWORD:-admin123}" in text

    def test_dump_rejects_malformed_env_vars(self):
        with pytest.raises(ConfigurationError):
            self.dumped(["JENKINS_ADMIN_ID"])

    def test_merge(self, tmp_path):
        casc_path = tmp_path / "extra-casc.yaml"
        casc_path.write_text(
            "jenkins:\n"
            "  systemMessage: 'Team Jenkins'\n"
            "unclassified:\n"
            "  location:\n"
            "    url: 'https://jenkins.example.com/'\n"
        )

        self.casc.merge(str(casc_path))
        document = safe_load(self.dumped())

        assert document["jenkins"]["systemMessage"] == "Team Jenkins"
        # siblings of merged keys are kept
        assert document["jenkins"]["numExecutors"] == 0
        assert document["unclassified"]["location"]["url"] == (
            "https://jenkins.example.com/"
        )
        assert "mailer" in document["unclassified"]

    def test_merge_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            self.casc.merge(str(tmp_path / "missing.yaml"))


@pytest.mark.parametrize(
    "text, expected",
    [
        ("url: ${URL}", "url: http://x"),
        ("url: $URL/login", "url: http://x/login"),
        ("url: ${URL:-http://default}", "url: http://x"),
        ("other: ${OTHER}", "other: ${OTHER}"),
    ],
)
def test_expand_env_vars(text, expected):
    assert (
        JenkinsConfigurationAsCode.expand_env_vars(text, ["URL=http://x"])
        == expected
    )
