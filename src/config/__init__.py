"""Configuration module for the eligibility engine."""

from .settings import EngineSettings, get_settings

__all__ = [
    "EngineSettings",
    "get_settings",
]
