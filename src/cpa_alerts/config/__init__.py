"""Configuration module for CPA Alerts."""

from cpa_alerts.config.logging import configure_logging
from cpa_alerts.config.reference_loader import ReferenceData, load_reference_data
from cpa_alerts.config.settings import Settings, get_settings

__all__ = [
    "ReferenceData",
    "Settings",
    "configure_logging",
    "get_settings",
    "load_reference_data",
]
