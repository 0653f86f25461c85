# Area: Shared
"""
Shared utilities used by the room and round layers.

This package contains:
- Event models and the event bus
- Client command validation
- Logging configuration
"""

from .commands import parse_command
from .events import EventBus
from .logging_config import setup_logging, log_engine_error

__all__ = [
    "parse_command",
    "EventBus",
    "setup_logging",
    "log_engine_error",
]
