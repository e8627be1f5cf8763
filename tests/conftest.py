import pytest

from jenkinsstack.environment import DeploymentEnvironment


@pytest.fixture(autouse=True)
def clean_environ(monkeypatch):
    """Keep the developer's own deployment env vars out of the tests."""
    for name in DeploymentEnvironment.ENV_VAR_DEFAULTS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def local_environment():
    return DeploymentEnvironment.from_environ(environ={})


@pytest.fixture
def remote_environment():
    return DeploymentEnvironment.from_environ(
        environ={"DEPLOYMENT_MODE": "remote", "DOCKER_HOST_IP": "10.0.0.5"}
    )
