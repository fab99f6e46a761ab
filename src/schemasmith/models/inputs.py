# Copyright (c) Syntropy Systems
"""Pydantic models for generated test inputs and their validation."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from .base import JSONValue, SchemaSmithModel

VARIANT_NAMES: tuple[str, ...] = ("minimal", "normal", "maximal", "edge")


class TestInputSet(SchemaSmithModel):
    """Four named input variants for one target workload.

    Variant values are schema-less; a variant that is not an object is still
    carried so the input validator can report it.
    """

    __test__: ClassVar[bool] = False

    target: str = Field(alias="targetActorId")
    minimal: JSONValue = Field(alias="minimalInput")
    normal: JSONValue = Field(alias="normalInput")
    maximal: JSONValue = Field(alias="maximalInput")
    edge: JSONValue = Field(alias="edgeInput")

    def variants(self) -> dict[str, JSONValue]:
        """Return the variants keyed by name, in canonical order."""
        return {name: getattr(self, name) for name in VARIANT_NAMES}


class VariantCheck(SchemaSmithModel):
    """Structural check result for a single input variant."""

    variant: str
    ok: bool
    error: str | None = None


class InputValidationResult(SchemaSmithModel):
    """Outcome of validating all four input variants."""

    checks: list[VariantCheck]
    overall_ok: bool

    @property
    def success_count(self) -> int:
        """Number of variants that passed."""
        return sum(1 for check in self.checks if check.ok)

    @property
    def total(self) -> int:
        """Number of variants checked."""
        return len(self.checks)

    @property
    def failed(self) -> list[VariantCheck]:
        """Checks that did not pass."""
        return [check for check in self.checks if not check.ok]

    @property
    def successful(self) -> list[str]:
        """Names of the variants that passed."""
        return [check.variant for check in self.checks if check.ok]


class AcceptedInputs(SchemaSmithModel):
    """An input set accepted by the generation loop."""

    inputs: TestInputSet
    validation: InputValidationResult
    attempts: int
