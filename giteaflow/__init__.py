"""giteaflow - Gitea CI client for commit ranges, merge bases, conflict checks and batch commits."""

__version__ = "0.1.0"
