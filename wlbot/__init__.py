"""wlbot package: wallet allow-list registry, Discord commands and HTTP API."""

from . import api, commands, config, errors, export, models, registry, store, utils  # noqa: F401

__all__ = ["api", "commands", "config", "errors", "export", "models", "registry", "store", "utils"]
