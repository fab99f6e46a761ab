# Copyright (c) Syntropy Systems
"""LLM refinement of a draft schema."""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, cast

from schemasmith.clients.llm import extract_json
from schemasmith.errors import SchemaRefinementError, SchemaShapeError, ServiceClientError
from schemasmith.models.base import JSONObject, JSONValue, SchemaSmithModel
from schemasmith.schema_document import normalize_schema

if TYPE_CHECKING:
    from schemasmith.clients.protocols import ChatModel

logger = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 1024 * 1024
MAX_SCHEMA_BYTES = 500 * 1024

PROMPT_TEMPLATE = """\
Enrich the dataset schema below for the workload {target}.

Rules:
- Keep exactly the same set of top-level fields; do not add, drop or rename any.
- Mark every field, nested ones included, as "nullable": true.
- Leave "required" empty and set "additionalProperties": true at every level.
- Give every field a short description and one anonymized "example" value
  matching its type.
- Answer with the complete document in a ```json block, shaped as
  {{"actorSpecification": 1, "fields": {{<JSON Schema>}}, "views": {{...}}}}.
{views_rule}

Schema to enrich:
```json
{schema}
```
"""

VIEWS_RULE = """\
- Add display views: always an "overview" table view listing the key fields
  with labels and formats (number, link, date, image), plus views for other
  useful perspectives of the data."""

NO_VIEWS_RULE = "- Leave \"views\" as an empty object."


class RefinementResult(SchemaSmithModel):
    """Outcome of one refinement call."""

    success: bool
    refined_schema: JSONObject | None = None
    error: str | None = None


def _size(value: object) -> int:
    return len(json.dumps(value, ensure_ascii=False).encode("utf-8"))


class SchemaRefiner:
    """Asks a chat model to enrich a draft schema.

    Preconditions and postconditions are checked locally: oversized input is
    rejected before any call, and a reply is accepted only if it carries a
    specification version and a ``fields`` object.
    """

    def __init__(
        self,
        chat: ChatModel,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> None:
        self.chat = chat
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_prompt(self, target: str, draft: JSONObject, want_views: bool) -> str:
        """Render the refinement prompt for a normalized draft."""
        return PROMPT_TEMPLATE.format(
            target=target,
            schema=json.dumps(draft, indent=2, ensure_ascii=False),
            views_rule=VIEWS_RULE if want_views else NO_VIEWS_RULE,
        )

    def refine(self, target: str, draft: JSONObject, want_views: bool = False) -> RefinementResult:
        """Refine ``draft``.

        Args:
            target: Technical name of the workload the schema describes
            draft: Draft schema in any accepted shape
            want_views: Ask the model to design display views too

        Returns:
            A successful result with the refined document, or the reason it
            was rejected. Never raises for rejected input or replies.

        """
        if not target:
            return RefinementResult(success=False, error="Missing required input: target name")

        try:
            document = normalize_schema(draft)
        except SchemaShapeError as e:
            return RefinementResult(success=False, error=f"Invalid draft schema: {e}")

        request_size = _size({"target": target, "schema": draft, "wantViews": want_views})
        if request_size > MAX_REQUEST_BYTES:
            return RefinementResult(
                success=False,
                error=(
                    f"Input too large: {request_size} bytes exceeds maximum "
                    f"allowed size of {MAX_REQUEST_BYTES} bytes"
                ),
            )
        schema_size = _size(draft)
        if schema_size > MAX_SCHEMA_BYTES:
            return RefinementResult(
                success=False,
                error=(
                    f"Draft schema too large: {schema_size} bytes exceeds maximum "
                    f"allowed size of {MAX_SCHEMA_BYTES} bytes"
                ),
            )

        prompt_input: JSONObject = {"fields": document.fields}
        if document.views:
            prompt_input["views"] = document.views

        logger.info("Refining schema with %d fields", len(document.field_names))
        try:
            reply = self.chat.complete(
                self.build_prompt(target, prompt_input, want_views),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except ServiceClientError as e:
            return RefinementResult(success=False, error=f"Chat completion failed: {e}")

        return self.parse_reply(reply)

    def parse_reply(self, reply: str) -> RefinementResult:
        """Check a model reply and turn it into a result."""
        try:
            refined: JSONValue = extract_json(reply)
        except ValueError as e:
            return RefinementResult(
                success=False,
                error=f"Failed to parse refined schema from model reply: {e}",
            )
        if not isinstance(refined, dict):
            return RefinementResult(success=False, error="Refined schema is not a JSON object")
        if not refined.get("actorSpecification") or not isinstance(refined.get("fields"), dict):
            return RefinementResult(
                success=False,
                error="Refined schema lacks an actorSpecification version or a fields object",
            )
        return RefinementResult(success=True, refined_schema=cast("JSONObject", refined))

    def refine_or_raise(self, target: str, draft: JSONObject, want_views: bool = False) -> JSONObject:
        """Like :meth:`refine`, but raise on failure.

        Raises:
            SchemaRefinementError: If the refinement was rejected.

        """
        result = self.refine(target, draft, want_views)
        if not result.success or result.refined_schema is None:
            raise SchemaRefinementError(result.error or "No refined schema returned")
        return result.refined_schema
