"""Automation layer for password rotation via the web.

This package provides the engine abstraction (Playwright/Selenium), the
declarative step executor, the rotation runner and the login flow.
"""

from .types import RotationReason, RotationResult, RotationState, RotationStatus, RotationSummary
from .engine import AutomationEngine
from .runner import RotationRunner, RotationSelector

__all__ = [
    'AutomationEngine',
    'RotationReason',
    'RotationResult',
    'RotationRunner',
    'RotationSelector',
    'RotationState',
    'RotationStatus',
    'RotationSummary',
]
