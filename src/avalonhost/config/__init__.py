"""Runtime configuration."""

from .settings import DEFAULT_CONFIG_PATH, HostConfig, load_host_config

__all__ = ["DEFAULT_CONFIG_PATH", "HostConfig", "load_host_config"]
