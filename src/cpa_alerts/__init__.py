"""CPA Alerts - AR and expense alerting with reminder automation for CPA firms."""

__version__ = "0.1.0"

from cpa_alerts.clients import ClaudeClient
from cpa_alerts.config import configure_logging, get_settings, load_reference_data
from cpa_alerts.drafting import ClaudeDrafter, ReminderDrafter, TemplateDrafter
from cpa_alerts.errors import (
    AlertsError,
    ConfigurationError,
    InvariantViolation,
    NotFoundError,
    TransientIOError,
)
from cpa_alerts.service import AlertsService
from cpa_alerts.store import BaseStore, JsonFileStore, MemoryStore, create_store

__all__ = [
    # Version
    "__version__",
    # Service
    "AlertsService",
    # Stores
    "BaseStore",
    "MemoryStore",
    "JsonFileStore",
    "create_store",
    # Drafting
    "ReminderDrafter",
    "TemplateDrafter",
    "ClaudeDrafter",
    "ClaudeClient",
    # Errors
    "AlertsError",
    "ConfigurationError",
    "NotFoundError",
    "InvariantViolation",
    "TransientIOError",
    # Config
    "get_settings",
    "configure_logging",
    "load_reference_data",
]
