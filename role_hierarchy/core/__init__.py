"""
Core infrastructure for the role hierarchy engine.

Shared components used across all modules:
- Configuration management
- Logging
- Database engine and sessions
"""

from role_hierarchy.core.config import Settings, get_settings, clear_settings_cache
from role_hierarchy.core.logging import configure_logging, get_logger, LogContext

__all__ = [
    'Settings',
    'get_settings',
    'clear_settings_cache',
    'configure_logging',
    'get_logger',
    'LogContext',
]
