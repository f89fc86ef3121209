"""
Exception hierarchy for noteguard.

All noteguard exceptions inherit from NoteGuardError, allowing callers to catch
all noteguard-specific exceptions with a single except clause.

Exception Categories:
    - ConfigLoadError: A meta/formula document could not be read
    - FormulaValidationError: A formula document doesn't match the schema
    - UserNotFoundError: The author of a subject is unknown
    - BlurhashDecodeError: A perceptual hash string is malformed
    - MalformedFormulaError: A formula node doesn't fit its kind

Only lookup and configuration errors ever reach callers of the gate.
Anything raised while a formula is being evaluated is absorbed by the
evaluator and turned into a "not prohibited" verdict.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_CONFIG_LOAD = 1001
ERROR_CONFIG_INVALID_FORMULA = 1002

# Lookup errors: 2xxx
ERROR_LOOKUP_USER_NOT_FOUND = 2001

# Evaluation errors: 3xxx
ERROR_EVAL_BLURHASH_DECODE = 3001
ERROR_EVAL_MALFORMED_FORMULA = 3002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class NoteGuardError(Exception):
    """
    Base exception for all noteguard errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigLoadError(NoteGuardError):
    """Raised when a configuration document can't be read or parsed."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to load {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_LOAD
        if not self.suggestion:
            self.suggestion = "Check that the file exists and is valid YAML"
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })


@dataclass
class FormulaValidationError(NoteGuardError):
    """
    Raised when a configuration document doesn't match the schema.

    Individual formula nodes never cause this error: unknown kinds load as
    UnknownFormula and nodes with bad parameters as MalformedFormula.
    """

    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid formula: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID_FORMULA
        self.context["validation_error"] = self.validation_error


# =============================================================================
# Lookup Errors
# =============================================================================


@dataclass
class UserNotFoundError(NoteGuardError):
    """Raised when a user lookup is made for an unknown id."""

    user_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"User not found: {self.user_id}"
        if self.code == 0:
            self.code = ERROR_LOOKUP_USER_NOT_FOUND
        self.context["user_id"] = self.user_id


# =============================================================================
# Evaluation Errors
# =============================================================================


@dataclass
class BlurhashDecodeError(NoteGuardError):
    """Raised when a blurhash string can't be decoded."""

    blurhash: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot decode blurhash {self.blurhash!r}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_EVAL_BLURHASH_DECODE
        self.context.update({
            "blurhash": self.blurhash,
            "underlying_error": self.underlying_error,
        })


@dataclass
class MalformedFormulaError(NoteGuardError):
    """
    Raised when the evaluator reaches a formula node that failed to load.

    Never seen by callers of the gate; the evaluator turns it into a
    "not prohibited" verdict.
    """

    formula_type: str | None = None
    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Malformed formula node: {self.formula_type}"
        if self.code == 0:
            self.code = ERROR_EVAL_MALFORMED_FORMULA
        self.context.update({
            "formula_type": self.formula_type,
            "validation_error": self.validation_error,
        })
