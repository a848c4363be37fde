from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError
from .model import ColorMode

DEFAULT_CODECOV_URL = "https://codecov.io"
DEFAULT_CACHE_DIR = ".platcov/cache"
DEFAULT_TOKEN_ENV = "CODECOV_TOKEN"


class Secret:
    """Opaque secret value; never shows up in repr/str."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:
        return "Secret('***')"

    __str__ = __repr__


class EnvSecretStore:
    """
    Secrets come from the environment, which is where CI injects repository
    secrets (e.g. `CODECOV_TOKEN`).
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ

    def get(self, name: str) -> Secret | None:
        value = self._environ.get(name)
        if not value:
            return None
        return Secret(value)


@dataclass(frozen=True)
class Settings:
    cache_dir: str = DEFAULT_CACHE_DIR
    codecov_url: str = DEFAULT_CODECOV_URL
    color: ColorMode = ColorMode.ALWAYS
    commit: str | None = None
    branch: str | None = None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    color = env.get("PLATCOV_COLOR", ColorMode.ALWAYS.value)
    try:
        color_mode = ColorMode(color)
    except ValueError:
        raise ConfigError(
            f"PLATCOV_COLOR must be one of {[c.value for c in ColorMode]}, got {color!r}"
        ) from None
    return Settings(
        cache_dir=env.get("PLATCOV_CACHE_DIR", DEFAULT_CACHE_DIR),
        codecov_url=env.get("CODECOV_URL", DEFAULT_CODECOV_URL).rstrip("/"),
        color=color_mode,
        commit=env.get("GITHUB_SHA") or None,
        branch=env.get("GITHUB_HEAD_REF") or env.get("GITHUB_REF_NAME") or None,
    )
