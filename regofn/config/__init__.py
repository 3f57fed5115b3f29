"""
regofn Configuration

Environment-driven application settings.
"""

from .schemas import AppSettings

__all__ = [
    "AppSettings",
]
