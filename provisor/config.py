from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BUILD_CONCURRENCY,
    DEFAULT_CONFIG_FILE,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NETWORK_CONCURRENCY,
    DEFAULT_RETRY_DELAY,
    DEFAULT_WORK_DIR,
    NETWORK_RETRY_ATTEMPTS,
)


class ConcurrencyConfig(BaseModel):
    """Bounds on parallel step execution."""

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    network: int = Field(default=DEFAULT_NETWORK_CONCURRENCY, ge=1)
    build: int = Field(default=DEFAULT_BUILD_CONCURRENCY, ge=1)


class RetryConfig(BaseModel):
    """Retry defaults applied to network-bound steps."""

    network_attempts: int = Field(default=NETWORK_RETRY_ATTEMPTS, ge=1)
    delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)


class AptConfig(BaseModel):
    """Settings for the apt package manager adapter."""

    update: bool = True
    sudo: bool = False


class ProvisorConfig(BaseModel):
    """Top-level configuration model."""

    install_root: Optional[str] = None
    user: Optional[str] = None
    work_dir: str = DEFAULT_WORK_DIR
    log_level: str = "INFO"
    database_url: Optional[str] = None
    concurrency: ConcurrencyConfig = ConcurrencyConfig()
    retry: RetryConfig = RetryConfig()
    apt: AptConfig = AptConfig()


def load_config(path: Optional[str] = None) -> ProvisorConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROVISOR_CONFIG env
            variable or 'provisor.yaml' in the current directory.
    """

    config_path = path or os.getenv("PROVISOR_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ProvisorConfig(**data)
    else:
        config = ProvisorConfig()

    env_install_root = os.getenv("PROVISOR_INSTALL_ROOT")
    if env_install_root:
        config.install_root = env_install_root
    env_user = os.getenv("PROVISOR_USER")
    if env_user:
        config.user = env_user
    env_work_dir = os.getenv("PROVISOR_WORK_DIR")
    if env_work_dir:
        config.work_dir = env_work_dir
    env_db_url = os.getenv("PROVISOR_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
