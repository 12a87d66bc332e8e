"""
Core module initialization.
Exports configuration, logging and error types.
"""

from food_ordering.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from food_ordering.core.exceptions import OrderingError

__all__ = ["get_settings", "setup_logging", "Settings", "EnvironmentMode", "OrderingError"]
