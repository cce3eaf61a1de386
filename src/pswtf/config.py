"""Runtime settings for pswtf, read from the environment."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from pswtf.errors import ValidationError

MIN_POLL_RATE = 0.1
DEFAULT_LSOF = "lsof"
DEFAULT_POLL_RATE = 3.0
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(slots=True, frozen=True)
class Settings:
    """
    Settings shared by the service layer and the terminal front end.

    Attributes:
        lsof: Executable used for socket listings and file handle counts.
        poll_rate: Seconds between background refreshes in the UI.
        command_timeout: Upper bound for external commands, None for no limit.
        log_level: Name of the logging level applied by `main()`.
    """

    lsof: str = DEFAULT_LSOF
    poll_rate: float = DEFAULT_POLL_RATE
    command_timeout: float | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from PSWTF_* environment variables."""
        env = os.environ if environ is None else environ

        poll_rate = _parse_float(env, "PSWTF_POLL_RATE", DEFAULT_POLL_RATE)
        timeout_text = env.get("PSWTF_COMMAND_TIMEOUT", "").strip()
        command_timeout = None
        if timeout_text:
            command_timeout = _parse_float(env, "PSWTF_COMMAND_TIMEOUT", 0.0)
            if command_timeout <= 0:
                raise ValidationError("PSWTF_COMMAND_TIMEOUT must be positive")

        return cls(
            lsof=env.get("PSWTF_LSOF", "").strip() or DEFAULT_LSOF,
            poll_rate=max(MIN_POLL_RATE, poll_rate),
            command_timeout=command_timeout,
            log_level=_parse_log_level(env),
        )


def _parse_log_level(env: Mapping[str, str]) -> str:
    """Read PSWTF_LOG_LEVEL as an upper-case level name. Raises ValidationError if unknown."""
    level = (env.get("PSWTF_LOG_LEVEL", "").strip() or DEFAULT_LOG_LEVEL).upper()
    # getLevelName maps known names to their numeric level
    if not isinstance(logging.getLevelName(level), int):
        raise ValidationError(f"PSWTF_LOG_LEVEL must be a logging level name, got {level!r}")
    return level


def _parse_float(env: Mapping[str, str], key: str, default: float) -> float:
    """Read `key` as a float, `default` when unset or blank."""
    text = env.get(key, "").strip()
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        raise ValidationError(f"{key} must be a number, got {text!r}") from None
