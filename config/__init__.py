"""Configuration management for multi-platform deployments."""

from .platform import AppConfig, Config, SUPPORTED_FORMATS, detect_platform

__all__ = ["AppConfig", "Config", "SUPPORTED_FORMATS", "detect_platform"]
