import stat

import ruamel.yaml

from jenkinsstack.artifacts import (
    COMPOSE_PATH,
    ENV_FILE_PATH,
    HAPROXY_CONFIG_PATH,
    JCASC_PATH,
    ArtifactWriter,
)
from jenkinsstack.config import StackConfig


class TestArtifactWriter:
    def test_write(self, tmp_path, local_environment):
        writer = ArtifactWriter(StackConfig(), local_environment)

        written = writer.write(tmp_path / "deploy")

        relative = sorted(
            str(path.relative_to(tmp_path / "deploy")) for path in written
        )
        assert relative == [
            ".env",
            "docker-compose.jenkins.yml",
            "jenkins/Dockerfile.haproxy",
            "jenkins/agents/Dockerfile.dind",
            "jenkins/haproxy.cfg",
            "jenkins/master/Dockerfile",
            "jenkins/master/jcasc/jenkins.yml",
            "jenkins/master/plugins.txt",
        ]
        for dirname in ("certificates", "backups", "logs"):
            assert (tmp_path / "deploy" / dirname).is_dir()

    def test_env_file_is_private(self, tmp_path, local_environment):
        ArtifactWriter(StackConfig(), local_environment).write(tmp_path)

        mode = stat.S_IMODE((tmp_path / ENV_FILE_PATH).stat().st_mode)
        assert mode == 0o600

    def test_haproxy_disabled(self, tmp_path, local_environment):
        stack_config = StackConfig({"haproxy": {"enabled": False}})

        ArtifactWriter(stack_config, local_environment).write(tmp_path)

        assert not (tmp_path / HAPROXY_CONFIG_PATH).exists()
        assert (tmp_path / COMPOSE_PATH).exists()

    def test_merge_casc_and_env_vars(self, tmp_path, local_environment):
        extra_casc = tmp_path / "extra.yaml"
        extra_casc.write_text("jenkins:\n  systemMessage: 'Hello ${TEAM}'\n")
        writer = ArtifactWriter(
            StackConfig(),
            local_environment,
            merge_casc=str(extra_casc),
            env_vars=["TEAM=builders"],
        )

        writer.write(tmp_path / "deploy")

        with open(tmp_path / "deploy" / JCASC_PATH) as casc_source:
            casc = ruamel.yaml.YAML(typ="safe").load(casc_source)
        assert casc["jenkins"]["systemMessage"] == "Hello builders"
