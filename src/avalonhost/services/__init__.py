"""Service modules for rooms, the web API and the CLI."""

from . import autoplay, cli, rooms, web_api

__all__ = ["autoplay", "cli", "rooms", "web_api"]
