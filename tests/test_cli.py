# Copyright (c) Syntropy Systems
"""Tests for schemasmith CLI commands."""

import json
from contextlib import contextmanager

import pytest
import yaml
from typer.testing import CliRunner

from schemasmith.cli.main import app

from conftest import INPUTS_REPLY, REPOSITORY_URL, TARGET

runner = CliRunner()

CREDENTIAL_VARIABLES = ("APIFY_TOKEN", "GITHUB_TOKEN", "REDASH_API_KEY")


@pytest.fixture
def clean_env(project_dir, monkeypatch):
    """No credentials and no global config."""
    for variable in CREDENTIAL_VARIABLES:
        monkeypatch.delenv(variable, raising=False)
    monkeypatch.setenv("HOME", str(project_dir))
    return project_dir


@pytest.fixture
def cli_world(world, clean_env, monkeypatch):
    """Route the run command to the in-memory world and record what it was given."""
    opened = []

    @contextmanager
    def fake_open_controller(config, credentials):
        opened.append((config, credentials))
        yield world.controller()

    monkeypatch.setattr("schemasmith.cli.run.open_controller", fake_open_controller)
    world.opened = opened
    return world


class TestInitCommand:
    """Tests for schemasmith init command."""

    def test_init_writes_config(self, clean_env):
        """Test that init writes a loadable config file."""
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "Initialized schemasmith config" in result.stdout
        data = yaml.safe_load((clean_env / "schemasmith.yaml").read_text())
        assert data["run_timeout"] == 300
        assert "APIFY_TOKEN" not in (clean_env / "schemasmith.yaml").read_text()

    def test_init_already_initialized(self, clean_env):
        """Test init when a config file exists."""
        _ = runner.invoke(app, ["init"])

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "Already initialized" in result.stdout

    def test_init_other_directory(self, clean_env):
        """Test init with an explicit path."""
        result = runner.invoke(app, ["init", "nested/project"])

        assert result.exit_code == 0
        assert (clean_env / "nested" / "project" / "schemasmith.yaml").exists()


class TestDoctorCommand:
    """Tests for schemasmith doctor command."""

    def test_doctor_without_credentials(self, clean_env):
        """Test that a missing platform token is an issue."""
        result = runner.invoke(app, ["doctor"])

        assert result.exit_code == 0
        assert "No schemasmith.yaml found" in result.stdout
        assert "APIFY_TOKEN is not set" in result.stdout
        assert "Found 1 issue(s)" in result.stdout

    def test_doctor_with_platform_token_only(self, clean_env, monkeypatch):
        """Test that missing optional credentials are warnings."""
        monkeypatch.setenv("APIFY_TOKEN", "tok")

        result = runner.invoke(app, ["doctor"])

        assert "APIFY_TOKEN is set" in result.stdout
        assert "Found 2 warning(s)" in result.stdout

    def test_doctor_all_good(self, clean_env, monkeypatch):
        """Test a complete setup."""
        for variable in CREDENTIAL_VARIABLES:
            monkeypatch.setenv(variable, "secret")
        _ = runner.invoke(app, ["init"])

        result = runner.invoke(app, ["doctor"])

        assert "Config:" in result.stdout
        assert "All checks passed" in result.stdout


class TestRunCommand:
    """Tests for schemasmith run command."""

    def test_run_success(self, cli_world):
        """Test a complete run."""
        result = runner.invoke(app, ["run", TARGET, "--repo", REPOSITORY_URL])

        assert result.exit_code == 0
        assert "Pipeline completed" in result.stdout
        assert "pull/1" in result.stdout

    def test_run_failure_exits_nonzero(self, cli_world):
        """Test that a failing stage exits 1 with its error."""
        cli_world.metrics.rows.clear()

        result = runner.invoke(app, ["run", TARGET, "--repo", REPOSITORY_URL])

        assert result.exit_code == 1
        assert "Error:" in result.stdout
        assert "failed" in result.stdout

    def test_run_writes_report(self, cli_world, project_dir):
        """Test the JSON report file."""
        result = runner.invoke(
            app,
            ["run", TARGET, "--repo", REPOSITORY_URL, "--output", "report.json"],
        )

        assert result.exit_code == 0
        report = json.loads((project_dir / "report.json").read_text())
        assert report["success"] is True
        assert report["target"] == TARGET

    def test_run_with_supplied_inputs(self, cli_world, project_dir):
        """Test skipping input generation with an inputs file."""
        (project_dir / "inputs.json").write_text(json.dumps(INPUTS_REPLY))

        result = runner.invoke(
            app,
            [
                "run", TARGET,
                "--repo", REPOSITORY_URL,
                "--skip", "input_generation",
                "--test-inputs", "inputs.json",
            ],
        )

        assert result.exit_code == 0
        assert not any(p.startswith("Prepare") for p in cli_world.chat.prompts)

    def test_run_unreadable_substitute(self, cli_world, project_dir):
        """Test that a malformed substitute file exits before running."""
        (project_dir / "draft.json").write_text("not json")

        result = runner.invoke(app, ["run", TARGET, "--draft-schema", "draft.json"])

        assert result.exit_code == 1
        assert "Cannot read draft schema" in result.stdout
        assert cli_world.opened == []

    def test_run_invalid_request(self, cli_world):
        """Test that an empty target is rejected."""
        result = runner.invoke(app, ["run", ""])

        assert result.exit_code == 1
        assert "Invalid request" in result.stdout

    def test_credentials_from_environment(self, cli_world, monkeypatch):
        """Test that tokens are read from the environment."""
        monkeypatch.setenv("APIFY_TOKEN", "platform-secret")
        monkeypatch.setenv("GITHUB_TOKEN", "github-secret")

        _ = runner.invoke(app, ["run", TARGET, "--repo", REPOSITORY_URL])

        (_, credentials) = cli_world.opened[0]
        assert credentials.platform_token == "platform-secret"
        assert credentials.github_token == "github-secret"
        assert credentials.metrics_api_key is None

    def test_help(self):
        """Test that the run command documents its options."""
        result = runner.invoke(app, ["run", "--help"])

        assert result.exit_code == 0
        assert "--skip" in result.stdout
