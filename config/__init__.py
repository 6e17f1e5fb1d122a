"""Configuration management for patchwarden."""

from .loader import ConfigLoader, load_config
from .schema import ToolCommands, VerifySettings

__all__ = ["ConfigLoader", "ToolCommands", "VerifySettings", "load_config"]
