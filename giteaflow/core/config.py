"""Configuration management with environment overrides."""

import os
import yaml
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/giteaflow.yaml"


class GiteaConfig(BaseModel):
    """Gitea connection configuration."""
    url: str = Field(default="http://localhost:3000", description="Server base URL")
    api_version: str = Field(default="v1")
    owner: str = Field(default="", description="Repository owner or organization")
    repo: str = Field(default="", description="Repository name")
    token: Optional[str] = None
    base_branch: str = Field(default="main", description="Base for feature branch ranges")
    timeout_seconds: float = Field(default=30.0)


class ResolverSettings(BaseModel):
    """Retry, paging and naming policy shared by the resolvers."""
    poll_interval_seconds: float = Field(default=5.0, ge=0)
    poll_max_attempts: int = Field(default=60, ge=1)
    page_size: int = Field(default=0, ge=0, description="0 fetches history in one request")
    max_pages: int = Field(default=100, ge=1)
    trunk_branches: List[str] = Field(default_factory=lambda: ["main", "master"])
    start_tag: str = Field(default="sq-start")


class CommitIdentityConfig(BaseModel):
    """Author and committer used for batch commits."""
    name: str = Field(default="GitOps Bot")
    email: str = Field(default="gitops@apkholding.ru")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    structured: bool = Field(default=True)


class AppConfig(BaseModel):
    """Application configuration."""
    gitea: GiteaConfig = Field(default_factory=GiteaConfig)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    identity: CommitIdentityConfig = Field(default_factory=CommitIdentityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load configuration from file with environment overrides.

    Args:
        config_path: Path to config file (default: configs/giteaflow.yaml)

    Returns:
        Loaded configuration
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_dict = {}

    # Load from file if exists
    if Path(config_path).exists():
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f) or {}
    else:
        logger.debug(f"Config file {config_path} not found, using defaults")

    # Apply environment overrides
    if url := os.getenv("GITEA_URL"):
        config_dict.setdefault("gitea", {})["url"] = url
    if token := os.getenv("GITEA_TOKEN"):
        config_dict.setdefault("gitea", {})["token"] = token
    if owner := os.getenv("GITEA_OWNER"):
        config_dict.setdefault("gitea", {})["owner"] = owner
    if repo := os.getenv("GITEA_REPO"):
        config_dict.setdefault("gitea", {})["repo"] = repo
    if base_branch := os.getenv("GITEA_BASE_BRANCH"):
        config_dict.setdefault("gitea", {})["base_branch"] = base_branch
    if level := os.getenv("GITEAFLOW_LOG_LEVEL"):
        config_dict.setdefault("logging", {})["level"] = level

    return AppConfig(**config_dict)
