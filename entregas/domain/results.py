# SPDX-License-Identifier: Apache-2.0

"""
Result containers shared by the domain modules.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class ValidationResult:
    """Result of a validation pass."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str], warnings: Optional[List[str]] = None) -> "ValidationResult":
        return cls(is_valid=len(errors) == 0, errors=errors, warnings=warnings or [])


@dataclass
class WorkflowResult:
    """Result of a domain workflow operation."""
    success: bool
    entity: Optional[Any] = None
    error_message: Optional[str] = None
    validation_errors: List[str] = field(default_factory=list)
    # Secondary records produced by the operation (logs, transactions)
    side_effects: List[Any] = field(default_factory=list)

    @classmethod
    def ok(cls, entity: Any, side_effects: Optional[List[Any]] = None) -> "WorkflowResult":
        return cls(success=True, entity=entity, side_effects=side_effects or [])

    @classmethod
    def fail(cls, message: str, validation_errors: Optional[List[str]] = None) -> "WorkflowResult":
        return cls(success=False, error_message=message, validation_errors=validation_errors or [])
