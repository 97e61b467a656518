"""Lifecycle hooks.

Public API::

    from hostplane.hooks import Hook, HookRegistry, KNOWN_EVENTS
"""

from hostplane.hooks.base import Hook
from hostplane.hooks.events import KNOWN_EVENTS
from hostplane.hooks.registry import HookRegistry

__all__ = ["KNOWN_EVENTS", "Hook", "HookRegistry"]
