# Copyright (c) Syntropy Systems
"""Structural validation of generated test inputs."""
from __future__ import annotations

from typing import TYPE_CHECKING

from schemasmith.models import VARIANT_NAMES, InputValidationResult, VariantCheck

if TYPE_CHECKING:
    from schemasmith.models import JSONValue, TestInputSet

# Variants that must pass before an input set is accepted
MIN_VALID_INPUTS = 2


def check_variant(variant: str, value: JSONValue) -> VariantCheck:
    """Check one variant; only non-null objects pass."""
    if not isinstance(value, dict):
        kind = "null" if value is None else type(value).__name__
        return VariantCheck(variant=variant, ok=False, error=f"Input must be an object, got {kind}")
    return VariantCheck(variant=variant, ok=True)


class InputValidator:
    """Checks that generated inputs are usable as workload inputs.

    Only structure is checked. Whether the workload accepts an input is
    decided when it runs.
    """

    def __init__(self, min_valid: int = MIN_VALID_INPUTS) -> None:
        self.min_valid = min_valid

    def validate(self, inputs: TestInputSet) -> InputValidationResult:
        """Check every variant of ``inputs``.

        Args:
            inputs: Candidate input set

        Returns:
            Per-variant results; ``overall_ok`` is set when at least
            ``min_valid`` variants passed.

        """
        variants = inputs.variants()
        checks = [check_variant(name, variants[name]) for name in VARIANT_NAMES]
        passed = sum(1 for check in checks if check.ok)
        return InputValidationResult(checks=checks, overall_ok=passed >= self.min_valid)

    def generate_feedback(self, result: InputValidationResult) -> str:
        """Describe what was wrong with an input set, for the next generation attempt."""
        if result.overall_ok:
            return "All inputs validated successfully"

        lines = [
            f"Validation failed: Only {result.success_count}/{result.total} inputs were valid.",
            "Please fix the following issues:",
        ]
        lines.extend(f"- {check.variant}: {check.error or 'Unknown error'}" for check in result.failed)
        lines.append("")
        lines.append("Every variant must be a JSON object using the workload's exact input field names.")
        return "\n".join(lines)
