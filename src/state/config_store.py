from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from .models import DEFAULT_SERVER, DEFAULT_WEBUI, Config


logger = logging.getLogger(__name__)

BUNDLE_ID = "com.lisowski-development.alfred.bitwarden"
CONFIG_FILE_NAME = "config.json"

# Alfred exposes workflow configuration and paths as environment variables
ENV_CACHE_DIR = "alfred_workflow_cache"
ENV_DATA_DIR = "alfred_workflow_data"
ENV_DEBUG = "alfred_debug"

DAY_SECONDS = 24 * 3600

# env var -> Config field; ages are configured in days
_ENV_FIELDS = {
    "server": "server",
    "webui": "webui",
    "email": "email",
    "sfa": "sfa",
    "sfamode": "sfa_mode",
    "apikey_login": "use_apikey",
    "max_results": "max_results",
    "reordering_disabled": "reordering_disabled",
    "icon_cache_enabled": "icon_cache_enabled",
    "icon_cache_age": "icon_max_cache_age",
    "auto_fetch_icon_cache_age": "auto_fetch_icon_max_cache_age",
    "bw_exec": "bw_exec",
    "bw_data_path": "bw_data_path",
    "bwf_keyword": "bwf_keyword",
    "bwconf_keyword": "bwconf_keyword",
}
_DAY_FIELDS = {"icon_max_cache_age", "auto_fetch_icon_max_cache_age"}
# Resolved from Alfred's environment on every load, never persisted
_RUNTIME_FIELDS = {"cache_dir", "data_dir", "debug"}

# `-setconfigs` keys -> Config field
SETTABLE_KEYS = {
    "email": "email",
    "server": "server",
    "webui": "webui",
    "2fa": "sfa",
    "2famode": "sfa_mode",
    "apikey": "use_apikey",
}


class ConfigError(ValueError):
    """Raised when a setting cannot be applied."""


def _getenv(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    v = env.get(name)
    return v if v not in (None, "") else default


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _default_dirs(env: Mapping[str, str]) -> tuple[Path, Path]:
    home = Path.home()
    cache_dir = _getenv(env, ENV_CACHE_DIR)
    data_dir = _getenv(env, ENV_DATA_DIR)
    return (
        Path(cache_dir) if cache_dir else home / "Library" / "Caches" / "com.runningwithcrayons.Alfred" / "Workflow Data" / BUNDLE_ID,
        Path(data_dir) if data_dir else home / "Library" / "Application Support" / "Alfred" / "Workflow Data" / BUNDLE_ID,
    )


def _default_bw_data_path() -> str:
    return str(Path.home() / "Library" / "Application Support" / "Bitwarden CLI" / "data.json")


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for var, field in _ENV_FIELDS.items():
        raw = _getenv(env, var)
        if raw is None:
            continue
        if field in ("sfa", "use_apikey", "reordering_disabled", "icon_cache_enabled"):
            out[field] = _parse_bool(raw)
        elif field in _DAY_FIELDS:
            try:
                out[field] = int(float(raw) * DAY_SECONDS)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", var, raw)
        else:
            out[field] = raw
    return out


class ConfigStore:
    """
    JSON-file persistence for `Config` in the workflow data directory.

    Precedence, lowest first: model defaults, Alfred environment variables,
    values saved with `-setconfigs`. Only explicitly saved keys are written
    back so later environment changes still apply to everything else.
    """

    def __init__(self, path: os.PathLike[str] | str, *, env: Optional[Mapping[str, str]] = None) -> None:
        self._path = Path(path)
        self._env = os.environ if env is None else env
        self._saved: Dict[str, Any] = {}

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ConfigStore":
        env = os.environ if env is None else env
        _, data_dir = _default_dirs(env)
        return cls(data_dir / CONFIG_FILE_NAME, env=env)

    @property
    def path(self) -> Path:
        return self._path

    def _read_saved(self) -> Dict[str, Any]:
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring config %s: expected a JSON object", self._path)
            return {}
        return {k: v for k, v in raw.items() if k in Config.model_fields and k not in _RUNTIME_FIELDS}

    def load(self) -> Config:
        cache_dir, data_dir = _default_dirs(self._env)
        values: Dict[str, Any] = {
            "bw_data_path": _default_bw_data_path(),
            "cache_dir": str(cache_dir),
            "data_dir": str(data_dir),
            "debug": _getenv(self._env, ENV_DEBUG) == "1",
        }
        values.update(_env_overrides(self._env))
        try:
            base = Config(**values)
        except ValidationError as exc:
            logger.warning("Ignoring invalid workflow environment settings: %s", exc)
            base = Config(
                bw_data_path=values["bw_data_path"],
                cache_dir=values["cache_dir"],
                data_dir=values["data_dir"],
                debug=values["debug"],
            )

        self._saved = self._read_saved()
        try:
            return Config(**{**base.model_dump(), **self._saved})
        except ValidationError as exc:
            logger.warning("Ignoring invalid saved settings in %s: %s", self._path, exc)
            self._saved = {}
            return base

    def set(self, config: Config, key: str, value: str) -> Config:
        """
        Apply one `-setconfigs` key/value, persist it, and return the new config.

        Empty `server`/`webui` values fall back to the Bitwarden cloud URLs.
        Raises ConfigError for unknown keys or values that fail validation.
        """
        field = SETTABLE_KEYS.get(key)
        if field is None:
            raise ConfigError(f"Unknown setting: {key}")

        parsed: Any = value
        if field == "server" and not value:
            parsed = DEFAULT_SERVER
        elif field == "webui" and not value:
            parsed = DEFAULT_WEBUI
        elif field in ("sfa", "use_apikey"):
            parsed = _parse_bool(value)
        elif field == "sfa_mode":
            try:
                parsed = int(value)
            except ValueError as exc:
                raise ConfigError(f"Invalid 2FA mode: {value!r}") from exc

        try:
            updated = Config(**{**config.model_dump(), field: parsed})
        except ValidationError as exc:
            raise ConfigError(f"Invalid value for {key}: {value!r}") from exc

        self._saved = {**self._read_saved(), field: getattr(updated, field)}
        self._save()
        return updated

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(self._saved, f, indent=2, sort_keys=True)
        os.replace(tmp, self._path)
