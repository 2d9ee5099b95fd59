"""Redmine implementation of the remote tracker client."""

from redtimer.redmine.client import RedmineClient

__all__ = ["RedmineClient"]
