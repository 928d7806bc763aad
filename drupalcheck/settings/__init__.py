from .loader import CheckSettings, HttpSettings, Settings, load_settings
from .logging import configure_logging

__all__ = ["CheckSettings", "HttpSettings", "Settings", "load_settings", "configure_logging"]
