"""Operator registration for the layer AVS stake registry."""
from __future__ import annotations

from .config import OperatorSettings, RegistrationPolicy
from .errors import RegistrationError
from .workflow import RegistrationOutcome, register_operator

__version__ = "0.1.0"

__all__ = [
    "OperatorSettings",
    "RegistrationError",
    "RegistrationOutcome",
    "RegistrationPolicy",
    "__version__",
    "register_operator",
]
