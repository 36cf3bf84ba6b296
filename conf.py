"""Settings lookup for the agent commissions module."""

from typing import Any

from django.conf import settings

from .module import SETTINGS


def get_setting(name: str) -> Any:
    """Return a module setting, preferring the project's AGENT_COMMISSIONS dict."""
    overrides = getattr(settings, 'AGENT_COMMISSIONS', None) or {}
    if name in overrides:
        return overrides[name]
    try:
        return SETTINGS[name]
    except KeyError:
        raise KeyError(f"Unknown agent commissions setting: {name}") from None
