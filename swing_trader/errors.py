"""Exceptions raised by the engine."""

from __future__ import annotations


class SwingTraderError(Exception):
    """Base class for engine errors."""


class ConfigError(SwingTraderError, ValueError):
    """Raised when a configuration object holds inconsistent values."""


class InsufficientDataError(SwingTraderError):
    """Raised when a run cannot produce a meaningful result from the loaded data."""
