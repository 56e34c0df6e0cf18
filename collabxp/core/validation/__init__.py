"""
collabxp validation package.

Exposes `InputValidator`, the canonical validation surface for values
entering the progression engine.
"""

from collabxp.core.validation.input_validator import InputValidator

__all__ = [
    "InputValidator",
]
