"""
Common utilities shared across fulfillment modules.
"""

from .http import build_session, is_absolute_url
from .settings import Settings, load_settings

__all__ = ["Settings", "build_session", "is_absolute_url", "load_settings"]
