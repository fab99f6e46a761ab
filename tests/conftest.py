# Copyright (c) Syntropy Systems
"""Pytest fixtures for schemasmith tests."""

import json
import os
import random
import tempfile
from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from schemasmith.clients.memory import (
    InMemoryMetrics,
    InMemoryPlatform,
    InMemorySourceControl,
    ScriptedChatModel,
    ScriptedRun,
    rows_for,
)
from schemasmith.config import PipelineConfig
from schemasmith.controller import PipelineController, build_controller

# Store original cwd at module load time
_original_cwd = Path.cwd()

TARGET = "acme/demo-scraper"
WORKLOAD_ID = "Xy7demo"
REPOSITORY_URL = "https://github.com/acme/demo-scraper"
GENERATOR_ID = PipelineConfig().schema_generator_id
VALIDATOR_ID = PipelineConfig().schema_validator_id

DRAFT_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "price": {"type": "number"},
        "url": {"type": "string"},
    },
}

REFINED_SCHEMA = {
    "actorSpecification": 1,
    "fields": {
        "type": "object",
        "properties": {
            "title": {"type": "string", "nullable": True, "description": "Product title"},
            "price": {"type": "number", "nullable": True, "description": "Price in USD"},
            "url": {"type": "string", "nullable": True, "description": "Product page"},
        },
        "required": [],
        "additionalProperties": True,
    },
    "views": {},
}

INPUTS_REPLY = {
    "minimalInput": {"variant": "minimal"},
    "normalInput": {"variant": "normal", "maxItems": 3},
    "maximalInput": {"variant": "maximal", "maxItems": 3, "proxy": True},
    "edgeInput": {"variant": "edge", "startUrl": "https://example.com/nothing-here"},
    "targetActorId": TARGET,
}

ACTOR_JSON = """{
    "actorSpecification": 1,
    "name": "demo-scraper",
    "version": "0.1",
    "views": {
        "legacy": {"title": "Legacy"}
    }
}
"""

# What each variant run does in the standard scenario
VARIANT_SCRIPTS = {
    "minimal": ScriptedRun(items=[{"title": "A", "price": 1, "url": "https://x/a"}]),
    "normal": ScriptedRun(items=[{"title": "B", "price": 2, "url": "https://x/b"}]),
    "maximal": ScriptedRun(status="FAILED"),
    "edge": ScriptedRun(status="FAILED", items=[{"error": "not found"}]),
}


def fenced(value: object) -> str:
    """Wrap a JSON value in a fenced block, the way a chat model answers."""
    return f"Here you go:\n```json\n{json.dumps(value, indent=2)}\n```\n"


def chat_script(prompt: str) -> str:
    """Answer input-generation and refinement prompts."""
    if prompt.startswith("Prepare four test inputs"):
        return fenced(INPUTS_REPLY)
    if prompt.startswith("Enrich the dataset schema"):
        return fenced(REFINED_SCHEMA)
    msg = f"Unexpected prompt: {prompt[:40]}"
    raise AssertionError(msg)


@dataclass
class World:
    """In-memory collaborators for one pipeline scenario."""

    platform: InMemoryPlatform
    chat: ScriptedChatModel
    metrics: InMemoryMetrics
    scm: InMemorySourceControl
    config: PipelineConfig = field(default_factory=PipelineConfig)

    def controller(self, seed: int = 7) -> PipelineController:
        """Build a controller over this world's collaborators."""
        return build_controller(
            self.config,
            platform=self.platform,
            chat=self.chat,
            metrics=self.metrics,
            scm=self.scm,
            rng=random.Random(seed),
        )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Change into a temporary directory for the duration of a test."""
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def world() -> World:
    """The standard demo-scraper scenario.

    Minimal and normal variants succeed, maximal fails without output and
    edge fails after writing a dataset. Two production datasets exist and
    validate cleanly.
    """
    platform = InMemoryPlatform(
        datasets={
            "prod-1": [{"title": f"P{i}", "price": i, "url": "https://x"} for i in range(4)],
            "prod-2": [{"title": "Q", "price": 9, "url": "https://y"}],
        },
        workload_ids={TARGET: WORKLOAD_ID},
    )
    platform.register(TARGET, lambda run_input: VARIANT_SCRIPTS[run_input["variant"]])
    platform.register(GENERATOR_ID, ScriptedRun(items=[{"schema": DRAFT_SCHEMA}]))
    platform.register(VALIDATOR_ID, ScriptedRun(items=[]))

    return World(
        platform=platform,
        chat=ScriptedChatModel(chat_script),
        metrics=InMemoryMetrics({WORKLOAD_ID: rows_for(["prod-1", "prod-2"])}),
        scm=InMemorySourceControl(files={".actor/actor.json": ACTOR_JSON, "README.md": "# demo"}),
    )
