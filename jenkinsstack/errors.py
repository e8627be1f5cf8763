"""Exceptions raised by the jenkinsstack modules."""


class JenkinsStackError(Exception):
    """Base class of every error the program reports by itself."""


class ConfigurationError(JenkinsStackError):
    """A configuration file, agent template or env var is not valid."""


class PrerequisiteError(JenkinsStackError):
    """A tool or service the deployment relies on is unavailable."""


class JenkinsNotReadyError(JenkinsStackError):
    """Jenkins did not answer on its login page within the poll budget."""
