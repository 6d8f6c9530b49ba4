"""
Error types for the Health ERP chatbot.

Each error maps to a canned chat reply in ``healthbot.menus``; none of them is
meant to reach the HTTP layer.
"""

from typing import Optional


class HealthBotError(Exception):
    """Base class for recoverable chatbot errors."""


class AuthenticationRequired(HealthBotError):
    """No patient identity is bound for a privileged operation."""


class SessionExpired(HealthBotError):
    """The bound identity is too old or the healthcare API answered 401."""


class UpstreamUnavailable(HealthBotError):
    """The healthcare API failed, timed out or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidSelection(HealthBotError):
    """The selected option does not match anything the bot can act on."""
