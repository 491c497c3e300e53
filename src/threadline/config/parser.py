"""threadline.yaml loading.

The file is read with PyYAML, ``.env`` next to it is loaded into the
process environment, ``${NAME}`` references in string values are filled
from that environment, and the result is validated as a
``ThreadlineConfig``.  Every failure surfaces as a ``ConfigError`` whose
message can be shown to the user as-is.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from threadline.config.models import ThreadlineConfig

DEFAULT_CONFIG_NAME = "threadline.yaml"

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Extra guidance appended to validation errors, keyed by field location.
_HINTS: dict[tuple[str, ...], str] = {
    ("sandbox",): "name the container the agent CLI is installed in",
    ("sandbox", "container"): "name the container the agent CLI is installed in",
    ("bridge", "overflow_pattern"): "the pattern is a Python regular expression",
}


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> ThreadlineConfig:
    """Read, expand and validate a threadline config file.

    Without *path*, ``threadline.yaml`` in the working directory is used.

    Raises:
        ConfigError: The file is missing or unreadable, is not a YAML
            mapping, references an unset variable, or fails validation.
    """
    config_path = _locate(path)
    _load_env(config_path.parent)
    raw = _read_mapping(config_path)
    return _validate(_expand_env(raw, ()))


def _locate(path: Path | None) -> Path:
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `threadline init` to create one."
        )
        raise ConfigError(msg)

    candidate = Path(path)
    if not candidate.is_file():
        msg = f"Config file not found: {candidate}"
        raise ConfigError(msg)
    return candidate


def _load_env(config_dir: Path) -> None:
    env_file = config_dir / ".env"
    if env_file.is_file():
        load_dotenv(env_file)


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1}, column {mark.column + 1})" if mark else ""
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    if data is None:
        msg = f"{path.name} is empty; expected at least `version: \"1\"`"
        raise ConfigError(msg)
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _expand_env(value: Any, loc: tuple[str, ...]) -> Any:
    """Replace ``${NAME}`` in every string value with ``$NAME`` from the env."""
    if isinstance(value, dict):
        return {k: _expand_env(v, (*loc, str(k))) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v, (*loc, str(i))) for i, v in enumerate(value)]
    if not isinstance(value, str):
        return value

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            msg = f"{'.'.join(loc)}: environment variable {name} is not set"
            raise ConfigError(msg)
        return os.environ[name]

    return _ENV_REF.sub(_substitute, value)


def _describe(err: dict[str, Any]) -> str:
    loc = tuple(str(part) for part in err["loc"])
    kind = err["type"]
    if kind == "missing":
        text = "This field is required"
    elif kind == "extra_forbidden":
        text = "Unknown setting"
    elif kind == "value_error":
        text = str(err["ctx"]["error"]) if "ctx" in err else err["msg"]
    else:
        text = f"Invalid value: {err['msg']}"

    hint = _HINTS.get(loc)
    if hint and kind in ("value_error", "missing"):
        text = f"{text} ({hint})"
    return f"  {'.'.join(loc) or '(root)'}: {text}"


def _validate(raw: dict[str, Any]) -> ThreadlineConfig:
    try:
        return ThreadlineConfig.model_validate(raw)
    except ValidationError as exc:
        lines = "\n".join(_describe(err) for err in exc.errors())
        msg = f"Config validation failed:\n{lines}"
        raise ConfigError(msg) from exc
