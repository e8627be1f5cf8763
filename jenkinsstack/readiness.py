"""Waiting for the Jenkins master to come up."""
# Standard Library Imports
import logging
import time

# Third Party Imports
import requests

# Local Application Imports
from jenkinsstack.errors import JenkinsNotReadyError

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
# 403 means jenkins is up but the login page wants authentication
READY_STATUS_CODES = (200, 403)
DEFAULT_RETRIES = 30
DEFAULT_DELAY = 10
REQUEST_TIMEOUT = 5


def jenkins_url(host, port):
    return f"http://{host}:{port}"


def is_ready(url, session=None):
    """Check once whether Jenkins answers on its login page."""
    session = session or requests
    try:
        response = session.get(
            f"{url.rstrip('/')}{LOGIN_PATH}",
            timeout=REQUEST_TIMEOUT,
            allow_redirects=False,
        )
    except requests.exceptions.RequestException as e:
        logger.debug(f"{url} not reachable yet: {e}")
        return False
    logger.debug(f"{url}{LOGIN_PATH} answered {response.status_code}")
    return response.status_code in READY_STATUS_CODES


def wait_for_jenkins(
    url, retries=DEFAULT_RETRIES, delay=DEFAULT_DELAY, session=None, sleep=time.sleep
):
    """Poll Jenkins until it is ready.

    Parameters
    ----------
    url : str
        Base url of Jenkins, e.g. 'http://localhost:8080'.
    retries : int, optional
        Number of attempts (default is DEFAULT_RETRIES).
    delay : int, optional
        Seconds between attempts (default is DEFAULT_DELAY).

    Returns
    -------
    int
        The attempt Jenkins became ready on.

    Raises
    ------
    JenkinsNotReadyError
        If Jenkins is still not ready after the last attempt.

    """
    logger.info(f"waiting for Jenkins at {url} to be ready...")
    for attempt in range(1, retries + 1):
        if is_ready(url, session):
            logger.info(f"Jenkins is ready (attempt {attempt}/{retries})")
            return attempt
        if attempt < retries:
            sleep(delay)
    raise JenkinsNotReadyError(
        f"Jenkins at {url} was not ready after {retries * delay} seconds"
    )
