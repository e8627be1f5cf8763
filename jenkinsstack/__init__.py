"""Tooling that stands up a Jenkins CI/CD stack with Ansible and Docker."""

__version__ = "0.1.0"
