"""Client-side session and commerce-state core for the storefront"""

from .core.session_context import StorefrontSession
from .utils.config import Settings, load_settings

__version__ = "1.0.0"

__all__ = ["StorefrontSession", "Settings", "load_settings"]
