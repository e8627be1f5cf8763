import mock
import pytest
import requests

from jenkinsstack.errors import JenkinsNotReadyError
from jenkinsstack.readiness import is_ready, jenkins_url, wait_for_jenkins


def response(status_code):
    return mock.Mock(status_code=status_code)


class TestReadiness:
    def setup_method(self, test_method):
        self.session = mock.Mock()
        self.sleep = mock.Mock()

    @pytest.mark.parametrize("status_code", [200, 403])
    def test_is_ready(self, status_code):
        self.session.get.return_value = response(status_code)

        assert is_ready("http://localhost:8080/", self.session)
        self.session.get.assert_called_once_with(
            "http://localhost:8080/login",
            timeout=5,
            allow_redirects=False,
        )

    def test_is_not_ready(self):
        self.session.get.return_value = response(503)
        assert not is_ready("http://localhost:8080", self.session)

    def test_connection_refused(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError()
        assert not is_ready("http://localhost:8080", self.session)

    def test_wait_for_jenkins(self):
        self.session.get.side_effect = [
            requests.exceptions.ConnectionError(),
            response(503),
            response(403),
        ]

        attempt = wait_for_jenkins(
            "http://localhost:8080",
            retries=5,
            delay=10,
            session=self.session,
            sleep=self.sleep,
        )

        assert attempt == 3
        assert self.sleep.call_args_list == [mock.call(10), mock.call(10)]

    def test_wait_for_jenkins_gives_up(self):
        self.session.get.return_value = response(502)

        with pytest.raises(JenkinsNotReadyError):
            wait_for_jenkins(
                "http://localhost:8080",
                retries=3,
                delay=1,
                session=self.session,
                sleep=self.sleep,
            )
        assert self.session.get.call_count == 3
        # no sleep after the last attempt
        assert self.sleep.call_count == 2


def test_jenkins_url():
    assert jenkins_url("10.0.0.5", 8080) == "http://10.0.0.5:8080"
