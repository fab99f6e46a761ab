# Copyright (c) Syntropy Systems
"""Test input generation and the retry-with-feedback loop."""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError

from schemasmith.clients.llm import extract_json
from schemasmith.errors import InputGenerationError, ValidationExhausted
from schemasmith.models import AcceptedInputs, TestInputSet
from schemasmith.stages.input_validator import InputValidator

if TYPE_CHECKING:
    from schemasmith.clients.protocols import ChatModel
    from schemasmith.models import InputValidationResult

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

PROMPT_TEMPLATE = """\
Prepare four test inputs for the workload {target}.{feedback_section}

Look up the workload's input schema and use its exact field names.
Keep every configuration small: at most 3 result items.

- minimalInput: only required parameters with simple values
- normalInput: required and common optional parameters with realistic values
- maximalInput: as many parameters as the schema allows, within valid ranges
- edgeInput: valid-looking values that fail during processing (for example a
  non-existent but well-formed identifier) so the run still produces output

Do not invent placeholder URLs. Reply with one JSON object in a ```json block:
{{
    "minimalInput": {{}},
    "normalInput": {{}},
    "maximalInput": {{}},
    "edgeInput": {{}},
    "targetActorId": "{target}"
}}
"""

FEEDBACK_SECTION = """

Your previous attempt was rejected:
{feedback}

Fix these issues in the new inputs."""


class InputSource(Protocol):
    """Anything that can propose a test input set."""

    def generate(self, target: str, feedback: str | None = None) -> TestInputSet:
        """Propose inputs for ``target``, optionally addressing ``feedback``."""
        ...


class InputGenerator:
    """Asks a chat model for four input variants of a workload."""

    def __init__(self, chat: ChatModel, temperature: float = 0.0) -> None:
        self.chat = chat
        self.temperature = temperature

    def build_prompt(self, target: str, feedback: str | None = None) -> str:
        """Render the generation prompt."""
        section = FEEDBACK_SECTION.format(feedback=feedback) if feedback else ""
        return PROMPT_TEMPLATE.format(target=target, feedback_section=section)

    def generate(self, target: str, feedback: str | None = None) -> TestInputSet:
        """Generate a test input set.

        Raises:
            InputGenerationError: If the reply holds no input set.

        """
        reply = self.chat.complete(self.build_prompt(target, feedback), temperature=self.temperature)
        return parse_input_set(reply, target)


def parse_input_set(reply: str, target: str) -> TestInputSet:
    """Parse a model reply into a TestInputSet.

    A missing ``targetActorId`` defaults to ``target``; a missing variant is
    an error.
    """
    try:
        data = extract_json(reply)
    except ValueError as e:
        msg = f"JSON extraction failed: {e}"
        raise InputGenerationError(msg) from e
    if not isinstance(data, dict):
        msg = "Generated inputs must be a JSON object"
        raise InputGenerationError(msg)

    _ = data.setdefault("targetActorId", target)
    try:
        return TestInputSet.model_validate(data)
    except ValidationError as e:
        missing = sorted(
            str(error["loc"][0]) for error in e.errors() if error["type"] == "missing"
        )
        detail = f"missing {', '.join(missing)}" if missing else str(e)
        msg = f"Invalid JSON structure in generated inputs: {detail}"
        raise InputGenerationError(msg) from e


class LoopPhase(str, Enum):
    """States of the retry-with-feedback loop."""

    GENERATE = "generate"
    VALIDATE = "validate"
    ACCEPT = "accept"
    EXHAUSTED = "exhausted"


def next_phase(
    phase: LoopPhase,
    attempts: int,
    result: InputValidationResult | None,
    max_attempts: int = MAX_ATTEMPTS,
) -> LoopPhase:
    """Transition function of the loop.

    ``attempts`` counts completed Generate steps.
    """
    if phase is LoopPhase.GENERATE:
        return LoopPhase.VALIDATE
    if phase is LoopPhase.VALIDATE:
        if result is not None and result.overall_ok:
            return LoopPhase.ACCEPT
        if attempts < max_attempts:
            return LoopPhase.GENERATE
        return LoopPhase.EXHAUSTED
    return phase


class InputGenerationLoop:
    """Generate, validate and retry with feedback until inputs are accepted.

    Feedback given to attempt N+1 is computed from attempt N's result only.
    Errors raised by the generator itself are not retried.
    """

    def __init__(
        self,
        source: InputSource,
        validator: InputValidator | None = None,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.source = source
        self.validator = validator or InputValidator()
        self.max_attempts = max_attempts

    def run(self, target: str) -> AcceptedInputs:
        """Run the loop for ``target``.

        Raises:
            ValidationExhausted: If no attempt produced an accepted input set.

        """
        phase = LoopPhase.GENERATE
        attempts = 0
        feedback: str | None = None
        candidate: TestInputSet | None = None
        result: InputValidationResult | None = None

        while True:
            if phase is LoopPhase.GENERATE:
                attempts += 1
                logger.info(
                    "Generating test inputs for %s (attempt %d/%d)",
                    target,
                    attempts,
                    self.max_attempts,
                )
                candidate = self.source.generate(target, feedback)
                result = None
            elif phase is LoopPhase.VALIDATE:
                assert candidate is not None
                result = self.validator.validate(candidate)
                logger.info(
                    "Attempt %d: %d/%d inputs valid",
                    attempts,
                    result.success_count,
                    result.total,
                )
                feedback = None if result.overall_ok else self.validator.generate_feedback(result)
            elif phase is LoopPhase.ACCEPT:
                assert candidate is not None and result is not None
                return AcceptedInputs(inputs=candidate, validation=result, attempts=attempts)
            else:
                assert result is not None
                raise ValidationExhausted(attempts, result.success_count, result.total)

            phase = next_phase(phase, attempts, result, self.max_attempts)
