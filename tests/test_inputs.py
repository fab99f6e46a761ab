# Copyright (c) Syntropy Systems
"""Tests for input validation and the retry-with-feedback loop."""

import pytest

from schemasmith.clients.memory import ScriptedChatModel
from schemasmith.errors import InputGenerationError, LLMError, ValidationExhausted
from schemasmith.models import TestInputSet
from schemasmith.stages.input_generation import (
    InputGenerationLoop,
    InputGenerator,
    LoopPhase,
    next_phase,
    parse_input_set,
)
from schemasmith.stages.input_validator import InputValidator, check_variant

from conftest import INPUTS_REPLY, TARGET, fenced


def make_inputs(**overrides) -> TestInputSet:
    """Build an input set where every variant is an object unless overridden."""
    data = {
        "minimalInput": {"a": 1},
        "normalInput": {"a": 2},
        "maximalInput": {"a": 3},
        "edgeInput": {"a": 4},
        "targetActorId": TARGET,
    }
    data.update(overrides)
    return TestInputSet.model_validate(data)


class ListSource:
    """Input source that hands out a fixed sequence of input sets."""

    def __init__(self, *candidates: TestInputSet) -> None:
        self.candidates = list(candidates)
        self.feedback: list[str | None] = []

    def generate(self, target: str, feedback: str | None = None) -> TestInputSet:
        self.feedback.append(feedback)
        return self.candidates.pop(0)


class TestInputValidator:
    """Tests for structural input validation."""

    def test_all_objects_pass(self):
        """Test that four object variants are accepted."""
        result = InputValidator().validate(make_inputs())

        assert result.overall_ok
        assert result.success_count == 4
        assert result.total == 4

    def test_two_valid_variants_are_enough(self):
        """Test the acceptance threshold of two valid variants."""
        result = InputValidator().validate(make_inputs(maximalInput=None, edgeInput=[1]))

        assert result.overall_ok
        assert [check.variant for check in result.failed] == ["maximal", "edge"]

    def test_one_valid_variant_is_rejected(self):
        """Test that a single valid variant does not satisfy the threshold."""
        result = InputValidator().validate(
            make_inputs(normalInput="x", maximalInput=None, edgeInput=3)
        )

        assert not result.overall_ok
        assert result.success_count == 1

    def test_check_variant_names_the_type(self):
        """Test the error text of a rejected variant."""
        assert check_variant("edge", None).error == "Input must be an object, got null"
        assert check_variant("edge", [1]).error == "Input must be an object, got list"
        assert check_variant("edge", {}).ok

    def test_feedback_lists_failures(self):
        """Test feedback for a rejected input set."""
        validator = InputValidator()
        result = validator.validate(make_inputs(normalInput=1, maximalInput=None, edgeInput="s"))

        feedback = validator.generate_feedback(result)

        assert feedback.startswith("Validation failed: Only 1/4 inputs were valid.")
        assert "- normal: Input must be an object, got int" in feedback
        assert "- maximal: Input must be an object, got null" in feedback
        assert "- edge: Input must be an object, got str" in feedback
        assert "- minimal" not in feedback

    def test_feedback_for_accepted_inputs(self):
        """Test feedback for an accepted input set."""
        validator = InputValidator()

        feedback = validator.generate_feedback(validator.validate(make_inputs()))

        assert feedback == "All inputs validated successfully"


class TestParseInputSet:
    """Tests for parsing model replies into input sets."""

    def test_parse_fenced_reply(self):
        """Test parsing a reply with a fenced JSON block."""
        inputs = parse_input_set(fenced(INPUTS_REPLY), TARGET)

        assert inputs.target == TARGET
        assert inputs.normal == {"variant": "normal", "maxItems": 3}

    def test_missing_target_defaults(self):
        """Test that a missing targetActorId defaults to the target."""
        reply = {key: value for key, value in INPUTS_REPLY.items() if key != "targetActorId"}

        inputs = parse_input_set(fenced(reply), "other/actor")

        assert inputs.target == "other/actor"

    def test_missing_variant_is_an_error(self):
        """Test that a reply without all four variants is rejected."""
        reply = {"minimalInput": {}, "normalInput": {}}

        with pytest.raises(InputGenerationError, match="edgeInput, maximalInput"):
            _ = parse_input_set(fenced(reply), TARGET)

    def test_reply_without_json(self):
        """Test that prose without JSON is rejected."""
        with pytest.raises(InputGenerationError, match="JSON extraction failed"):
            _ = parse_input_set("I cannot help with that.", TARGET)

    def test_generator_uses_temperature_and_feedback(self):
        """Test that the generator sends feedback in the prompt."""
        chat = ScriptedChatModel([fenced(INPUTS_REPLY)])
        generator = InputGenerator(chat, temperature=0.0)

        _ = generator.generate(TARGET, feedback="- edge: Input must be an object, got null")

        assert "Your previous attempt was rejected" in chat.prompts[0]
        assert "- edge: Input must be an object, got null" in chat.prompts[0]
        assert chat.params[0]["temperature"] == 0.0


class TestNextPhase:
    """Tests for the loop's transition function."""

    def test_generate_goes_to_validate(self):
        """Test that every generation is validated."""
        assert next_phase(LoopPhase.GENERATE, 1, None) is LoopPhase.VALIDATE

    def test_accepted_result(self):
        """Test that an accepted result ends the loop."""
        result = InputValidator().validate(make_inputs())

        assert next_phase(LoopPhase.VALIDATE, 3, result) is LoopPhase.ACCEPT

    @pytest.mark.parametrize(
        ("attempts", "expected"),
        [(1, LoopPhase.GENERATE), (2, LoopPhase.GENERATE), (3, LoopPhase.EXHAUSTED)],
    )
    def test_rejected_result(self, attempts, expected):
        """Test retry until the attempt budget is spent."""
        result = InputValidator().validate(make_inputs(normalInput=None, maximalInput=None, edgeInput=None))

        assert next_phase(LoopPhase.VALIDATE, attempts, result) is expected

    def test_terminal_phases_stay(self):
        """Test that terminal phases do not transition."""
        assert next_phase(LoopPhase.ACCEPT, 1, None) is LoopPhase.ACCEPT
        assert next_phase(LoopPhase.EXHAUSTED, 3, None) is LoopPhase.EXHAUSTED


class TestInputGenerationLoop:
    """Tests for the retry-with-feedback loop."""

    def test_first_attempt_accepted(self):
        """Test that valid inputs are accepted without feedback."""
        source = ListSource(make_inputs())

        accepted = InputGenerationLoop(source).run(TARGET)

        assert accepted.attempts == 1
        assert accepted.validation.overall_ok
        assert source.feedback == [None]

    def test_feedback_comes_from_previous_attempt(self):
        """Test that each retry sees only the previous attempt's problems."""
        source = ListSource(
            make_inputs(normalInput=None, maximalInput=None, edgeInput=None),
            make_inputs(minimalInput=1, normalInput=2, edgeInput=None),
            make_inputs(),
        )

        accepted = InputGenerationLoop(source).run(TARGET)

        assert accepted.attempts == 3
        assert source.feedback[0] is None
        assert "- normal:" in source.feedback[1]
        assert "- minimal:" not in source.feedback[1]
        assert "- minimal:" in source.feedback[2]
        assert "- normal:" in source.feedback[2]
        assert "- maximal:" not in source.feedback[2]

    def test_exhaustion_after_three_attempts(self):
        """Test that three rejected attempts raise ValidationExhausted."""
        bad = make_inputs(normalInput=None, maximalInput=None, edgeInput=None)
        source = ListSource(bad, bad, bad, make_inputs())

        with pytest.raises(ValidationExhausted) as excinfo:
            _ = InputGenerationLoop(source).run(TARGET)

        assert excinfo.value.attempts == 3
        assert excinfo.value.valid_variants == 1
        assert str(excinfo.value) == (
            "Failed to generate valid inputs after 3 attempts. Only 1/4 inputs were valid."
        )
        # The fourth, valid candidate is never requested
        assert len(source.candidates) == 1

    def test_generator_errors_are_not_retried(self):
        """Test that a failing chat call ends the loop immediately."""
        chat = ScriptedChatModel([LLMError("upstream unavailable", status_code=503), fenced(INPUTS_REPLY)])

        with pytest.raises(LLMError):
            _ = InputGenerationLoop(InputGenerator(chat)).run(TARGET)

        assert len(chat.prompts) == 1
