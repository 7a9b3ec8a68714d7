"""Configuration for the orchestration core.

Usage:
    from authorforge.config import load_settings

    settings = load_settings()            # environment only
    settings = load_settings(env_file=True, temperature=0.2)
    config = settings.to_provider_config()
"""

from .loader import load_settings
from .schema import StudioSettings

__all__ = ["StudioSettings", "load_settings"]
