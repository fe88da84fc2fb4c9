"""Configuration module for the SERP competitor intelligence pipeline."""

from serp_intel.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
