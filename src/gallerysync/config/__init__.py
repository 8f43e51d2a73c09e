"""Configuration utilities for Gallerysync."""

from .loader import Config, ConfigModel, load_config, parse_bool

__all__ = ["Config", "ConfigModel", "load_config", "parse_bool"]
