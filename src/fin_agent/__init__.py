"""Financial chat assistant package."""

from .config import DataConfig, RoutingConfig, Settings

__all__ = ["DataConfig", "RoutingConfig", "Settings"]
