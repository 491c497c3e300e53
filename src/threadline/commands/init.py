"""threadline init: scaffold a threadline.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

from threadline.config.parser import DEFAULT_CONFIG_NAME

ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# Threadline configuration
version: "1"

# The agent CLI launched once per chat thread.  Stream-json flags are
# added automatically; extra_args are appended after them.
agent:
  command: claude
  extra_args: []

# Where agent sessions run.
#   docker: `docker exec` into an existing container (started if stopped)
#   local:  run the agent directly on this host
sandbox:
  type: docker
  container: claude-project-demo
  workdir: /workspace
  uploads_dir: /workspace/uploads

# Session bridge tuning (all optional)
# bridge:
#   question_debounce: 0.5     # seconds before a trailing question is sent
#   choice_timeout: 300        # seconds to wait for a choice answer
#   fallback_answer: skip      # sent when no answer arrives
#   choice_tool: AskUserQuestion
#   overflow_pattern: "prompt is too long"
#   max_overflow_retries: 1
#   max_queued: 100            # inputs held per thread while busy
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment for the agent CLI and the Docker client.
# Copy this file to .env next to threadline.yaml and fill in values.

ANTHROPIC_API_KEY=
# DOCKER_HOST=unix:///var/run/docker.sock
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help=f"Overwrite existing {DEFAULT_CONFIG_NAME} if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a Threadline config in the current directory."""
    cwd = Path.cwd()
    config_path = cwd / DEFAULT_CONFIG_NAME
    env_example_path = cwd / ENV_EXAMPLE_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{DEFAULT_CONFIG_NAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(
            f"Cannot write {DEFAULT_CONFIG_NAME}: {exc}"
        ) from exc
    click.echo(f"  Created {DEFAULT_CONFIG_NAME}")

    if not env_example_path.exists() or force:
        try:
            env_example_path.write_text(TEMPLATE_ENV_EXAMPLE, encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(
                f"Cannot write {ENV_EXAMPLE_FILENAME}: {exc}"
            ) from exc
        click.echo(f"  Created {ENV_EXAMPLE_FILENAME}")
    else:
        click.echo(f"  Skipped {ENV_EXAMPLE_FILENAME} (already exists)")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Point the sandbox section of {DEFAULT_CONFIG_NAME} at your container")
    click.echo(f"  2. Copy {ENV_EXAMPLE_FILENAME} to .env and add your keys")
    click.echo("  3. Run `threadline up` and start chatting")
