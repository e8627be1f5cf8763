import pytest

from jenkinsstack.agents import AgentTemplate, StaticAgent, parse_mount
from jenkinsstack.errors import ConfigurationError


def maven_agent(**overrides):
    settings = dict(
        image="jenkins/inbound-agent:latest-maven",
        labels="maven java dynamic",
        instance_cap=5,
        idle_minutes=10,
        environment={"MAVEN_OPTS": "-Xmx2g -Xms512m"},
        mounts=[
            "type=bind,source=/var/run/docker.sock,destination=/var/run/docker.sock",
            "type=volume,source=maven-cache,destination=/home/jenkins/.m2",
        ],
    )
    settings.update(overrides)
    return AgentTemplate.from_mapping("maven", settings)


class TestParseMount:
    def test_volume_mount(self):
        mount = parse_mount(
            "type=volume,source=pip-cache,destination=/home/jenkins/.cache/pip"
        )
        assert mount == {
            "type": "volume",
            "source": "pip-cache",
            "destination": "/home/jenkins/.cache/pip",
        }

    def test_short_field_names(self):
        mount = parse_mount("type=bind,src=/data,dst=/data,readonly=true")
        assert mount["source"] == "/data"
        assert mount["destination"] == "/data"
        assert mount["readonly"] == "true"

    @pytest.mark.parametrize(
        "mount",
        [
            "type=volume,source=cache",
            "type=tmpfs,source=x,destination=/x",
            "type=volume,source=cache,destination=relative/path",
            "type=volume,source,destination=/x",
        ],
    )
    def test_invalid_mounts(self, mount):
        with pytest.raises(ConfigurationError):
            parse_mount(mount)


class TestAgentTemplate:
    def test_to_casc(self):
        template = maven_agent().to_casc()

        assert template["labelString"] == "maven java dynamic"
        assert template["instanceCapStr"] == "5"
        assert template["retentionStrategy"] == {"idleMinutes": 10}
        assert template["connector"] == {"attach": {"user": "jenkins"}}
        assert template["remoteFs"] == "/home/jenkins/agent"
        assert template["pullStrategy"] == "PULL_LATEST"
        assert template["removeVolumes"] is True
        base = template["dockerTemplateBase"]
        assert base["image"] == "jenkins/inbound-agent:latest-maven"
        assert len(base["mounts"]) == 2
        assert base["environmentsString"] == (
            "MAVEN_OPTS=-Xmx2g -Xms512m\n"
            "JENKINS_AGENT_WORKDIR=/home/jenkins/agent\n"
        )

    def test_agent_workdir_is_not_overridden(self):
        agent = maven_agent(environment={"JENKINS_AGENT_WORKDIR": "/work"})
        assert agent.environments_string() == "JENKINS_AGENT_WORKDIR=/work\n"

    def test_named_volumes_skip_bind_mounts(self):
        assert maven_agent().named_volumes() == ["maven-cache"]

    def test_labels_are_normalized(self):
        agent = maven_agent(labels="  maven   java ")
        assert agent.labels == "maven java"
        assert agent.label_list == ["maven", "java"]

    @pytest.mark.parametrize("cap", [0, -1, "many", True, None])
    def test_invalid_instance_cap(self, cap):
        with pytest.raises(ConfigurationError):
            maven_agent(instance_cap=cap)

    def test_invalid_idle_minutes(self):
        with pytest.raises(ConfigurationError):
            maven_agent(idle_minutes=0)

    def test_unknown_setting(self):
        with pytest.raises(ConfigurationError) as excinfo:
            maven_agent(memory="2g")
        assert "memory" in str(excinfo.value)

    def test_missing_image(self):
        with pytest.raises(ConfigurationError):
            maven_agent(image="")

    @pytest.mark.parametrize("key", ["image", "labels"])
    def test_missing_required_setting(self, key):
        settings = {"image": "node:20", "labels": "node dynamic"}
        del settings[key]

        with pytest.raises(ConfigurationError) as excinfo:
            AgentTemplate.from_mapping("node", settings)
        assert key in str(excinfo.value)

    def test_invalid_env_var_name(self):
        with pytest.raises(ConfigurationError):
            maven_agent(environment={"NOT-VALID": "x"})

    def test_invalid_pull_strategy(self):
        with pytest.raises(ConfigurationError):
            maven_agent(pull_strategy="SOMETIMES")

    def test_invalid_mount_fails_early(self):
        with pytest.raises(ConfigurationError):
            maven_agent(mounts=["type=volume,source=cache"])


class TestStaticAgent:
    def test_to_casc(self):
        node = StaticAgent().to_casc()["permanent"]

        assert node["name"] == "dind-agent"
        assert node["labelString"] == "dind docker-manager static privileged"
        assert node["numExecutors"] == 2
        assert node["retentionStrategy"] == "always"
        assert node["launcher"]["inbound"]["workDirSettings"]["internalDir"] == (
            "remoting"
        )

    def test_unknown_setting(self):
        with pytest.raises(ConfigurationError):
            StaticAgent.from_mapping({"privileged": True})

    def test_invalid_executors(self):
        with pytest.raises(ConfigurationError):
            StaticAgent(executors=0)
