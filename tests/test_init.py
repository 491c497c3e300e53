"""Tests for `threadline init` command."""

from __future__ import annotations

from pathlib import Path

import yaml
from click.testing import CliRunner

from threadline.cli import cli
from threadline.commands.init import ENV_EXAMPLE_FILENAME, TEMPLATE_YAML
from threadline.config.models import ThreadlineConfig
from threadline.config.parser import DEFAULT_CONFIG_NAME


class TestInitCreatesFiles:
    """threadline init creates the expected files."""

    def test_creates_config(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert Path(DEFAULT_CONFIG_NAME).is_file()

    def test_creates_env_example(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert Path(ENV_EXAMPLE_FILENAME).is_file()

    def test_output_mentions_created_files(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert f"Created {DEFAULT_CONFIG_NAME}" in result.output
            assert f"Created {ENV_EXAMPLE_FILENAME}" in result.output


class TestGeneratedConfigIsValid:
    """The generated threadline.yaml must parse and validate correctly."""

    def test_config_validates(self) -> None:
        data = yaml.safe_load(TEMPLATE_YAML)
        config = ThreadlineConfig.model_validate(data)
        assert config.version == "1"
        assert config.sandbox.type == "docker"
        assert config.sandbox.container == "claude-project-demo"
        assert config.agent.command == "claude"


class TestOverwriteGuard:
    def test_refuses_existing_config(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(DEFAULT_CONFIG_NAME).write_text("keep me", encoding="utf-8")
            result = runner.invoke(cli, ["init"])
            assert result.exit_code != 0
            assert "already exists" in result.output
            assert Path(DEFAULT_CONFIG_NAME).read_text(encoding="utf-8") == "keep me"

    def test_force_overwrites(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(DEFAULT_CONFIG_NAME).write_text("old", encoding="utf-8")
            result = runner.invoke(cli, ["init", "--force"])
            assert result.exit_code == 0
            assert Path(DEFAULT_CONFIG_NAME).read_text(encoding="utf-8") == TEMPLATE_YAML

    def test_keeps_existing_env_example(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(ENV_EXAMPLE_FILENAME).write_text("mine", encoding="utf-8")
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert f"Skipped {ENV_EXAMPLE_FILENAME}" in result.output
            assert Path(ENV_EXAMPLE_FILENAME).read_text(encoding="utf-8") == "mine"
