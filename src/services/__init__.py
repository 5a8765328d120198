"""
Services Module - Application services for the eligibility engine.

- EligibilityService: gating, classification and credit calculation facade
- Logging configuration shared by the CLI and services
"""

from .eligibility_service import EligibilityService, get_eligibility_service
from .logging_config import configure_logging, get_logger

__all__ = [
    "EligibilityService",
    "get_eligibility_service",
    "configure_logging",
    "get_logger",
]
