from .settings import (
    SpinDownSettings,
    StartupStrategy,
    get_settings,
    reset_settings,
    update_settings,
)

__all__ = [
    "SpinDownSettings",
    "StartupStrategy",
    "get_settings",
    "reset_settings",
    "update_settings",
]
