"""Smoke tests for the Threadline CLI."""

from click.testing import CliRunner

from threadline import __version__
from threadline.cli import cli


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Threadline" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"threadline, version {__version__}" in result.output


def test_init_runs() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "Created threadline.yaml" in result.output


def test_up_no_config_errors() -> None:
    """threadline up without a threadline.yaml exits with error."""
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["up"])
        assert result.exit_code == 1
        assert "threadline.yaml" in result.output or "Error" in result.output


def test_up_bad_config_errors() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        with open("threadline.yaml", "w", encoding="utf-8") as fh:
            fh.write('version: "1"\nsandbox:\n  type: docker\n')
        result = runner.invoke(cli, ["up"])
        assert result.exit_code == 1
        assert "container" in result.output


def test_up_flags() -> None:
    result = CliRunner().invoke(cli, ["up", "--help"])
    assert result.exit_code == 0
    assert "--file" in result.output
    assert "--thread" in result.output
    assert "--verbose" in result.output
