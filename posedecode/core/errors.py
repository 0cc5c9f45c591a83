"""Exceptions raised by the decoder.

All of them subclass `ValueError` so callers that already guard settings
validation with `except ValueError` keep working.
"""

from __future__ import annotations


class DecodeError(ValueError):
    """Base class for decoder failures. A frame that raises is skipped whole."""


class ConfigurationError(DecodeError):
    """Invalid decoder parameters (threshold, radius, stride, ...)."""


class TensorShapeError(DecodeError):
    """Input tensors do not match the expected layout or value range."""
