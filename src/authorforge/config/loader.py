"""Settings loading from the environment and optional ``.env`` files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dotenv import find_dotenv
from pydantic import ValidationError as PydanticValidationError

from authorforge.exceptions import ConfigurationError

from .schema import StudioSettings

log = logging.getLogger(__name__)


def _resolve_env_file(env_file: str | Path | bool | None) -> Path | None:
    if env_file is None or env_file is False:
        return None
    if env_file is True:
        found = find_dotenv(usecwd=True)
        if not found:
            log.debug("No .env file found from the working directory")
            return None
        return Path(found)
    path = Path(env_file)
    if not path.exists():
        raise FileNotFoundError(f"Environment file not found: {path}")
    return path


def load_settings(
    env_file: str | Path | bool | None = None, **overrides: Any
) -> StudioSettings:
    """Resolve settings from overrides, environment, then ``.env``, then defaults.

    Args:
        env_file: Path to a ``.env`` file, ``True`` to search upwards from the
            working directory, or ``None`` to read the environment only.
        **overrides: Field values that take precedence over every other source.

    Returns:
        Validated settings.

    Raises:
        ConfigurationError: If any source holds an invalid value.
        FileNotFoundError: If an explicit ``env_file`` does not exist.
    """
    path = _resolve_env_file(env_file)
    try:
        settings = StudioSettings(_env_file=path, **overrides)  # type: ignore[call-arg]
    except PydanticValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise ConfigurationError(f"Invalid configuration ({fields}): {e}") from e

    log.debug(
        "Loaded settings: provider=%s, env_file=%s",
        settings.active_provider,
        path,
    )
    return settings
