"""Configuration loading (TOML)."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .trust.fingerprint import DEFAULT_REPOSITORY

AUR_RPC_URL = "https://aur.archlinux.org/rpc/"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    value = os.environ.get(env_var)
    if value:
        return Path(value)
    return Path.home() / fallback


def default_config_path() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "aur-trust" / "config.toml"


def default_ledger_path() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share") / "aur-trust" / "ledger.json"


@dataclass(frozen=True)
class FetchSettings:
    """Bounds for upstream fetching."""

    concurrency: int = 8
    retries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    timeout: float = 10.0  # per request
    batch_timeout: float = 60.0  # whole fetch_all() call


@dataclass(frozen=True)
class Settings:
    ledger_path: Path = field(default_factory=default_ledger_path)
    default_repository: str = DEFAULT_REPOSITORY
    repositories: dict[str, str] = field(default_factory=lambda: {DEFAULT_REPOSITORY: AUR_RPC_URL})
    fetch: FetchSettings = field(default_factory=FetchSettings)
    # Upstream maintainers whose packages get an "All maintainers trusted" note
    trusted_maintainers: frozenset[str] = frozenset()

    @property
    def history_path(self) -> Path:
        """Approval history lives next to the ledger."""
        return self.ledger_path.with_name(self.ledger_path.name + ".history.jsonl")

    def with_ledger(self, ledger_path: Path | None) -> "Settings":
        if ledger_path is None:
            return self
        return replace(self, ledger_path=ledger_path)


def _coerce_dict(value: Any, key: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{key}` must be a table.")
    return value


def _positive_number(raw: dict[str, Any], key: str, default: float, *, kind: type = float) -> Any:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"`fetch.{key}` must be a number.", context={"value": repr(value)})
    if kind is int and not isinstance(value, int):
        raise ConfigError(f"`fetch.{key}` must be an integer.", context={"value": repr(value)})
    if value < 0 or (key == "concurrency" and value == 0):
        raise ConfigError(f"`fetch.{key}` is out of range.", context={"value": repr(value)})
    return kind(value)


def parse_settings(data: dict[str, Any]) -> Settings:
    """Build Settings from a decoded TOML document."""
    defaults = Settings()

    ledger = data.get("ledger")
    if ledger is not None and not isinstance(ledger, str):
        raise ConfigError("`ledger` must be a path string.")
    ledger_path = Path(ledger).expanduser() if ledger else defaults.ledger_path

    default_repository = str(data.get("default_repository", DEFAULT_REPOSITORY)).strip()
    if not default_repository or "/" in default_repository:
        raise ConfigError("`default_repository` must be a plain repository name.")

    repositories = dict(defaults.repositories)
    for name, url in _coerce_dict(data.get("repositories"), "repositories").items():
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ConfigError(f"Repository `{name}` needs an http(s) RPC URL.", context={"value": repr(url)})
        repositories[name] = url

    raw_maintainers = data.get("trusted_maintainers", [])
    if not isinstance(raw_maintainers, list) or not all(isinstance(m, str) and m.strip() for m in raw_maintainers):
        raise ConfigError("`trusted_maintainers` must be a list of maintainer names.")

    fetch_raw = _coerce_dict(data.get("fetch"), "fetch")
    base = FetchSettings()
    fetch = FetchSettings(
        concurrency=_positive_number(fetch_raw, "concurrency", base.concurrency, kind=int),
        retries=_positive_number(fetch_raw, "retries", base.retries, kind=int),
        backoff_base=_positive_number(fetch_raw, "backoff_base", base.backoff_base),
        backoff_max=_positive_number(fetch_raw, "backoff_max", base.backoff_max),
        timeout=_positive_number(fetch_raw, "timeout", base.timeout),
        batch_timeout=_positive_number(fetch_raw, "batch_timeout", base.batch_timeout),
    )

    return Settings(
        ledger_path=ledger_path,
        default_repository=default_repository,
        repositories=repositories,
        fetch=fetch,
        trusted_maintainers=frozenset(m.strip() for m in raw_maintainers),
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from `path`, or the default location if it exists.

    An explicitly given path must exist; the default one is optional.
    """
    explicit = path is not None
    config_path = path if path is not None else default_config_path()

    if not config_path.exists():
        if explicit:
            raise ConfigError("Config file does not exist.", context={"path": str(config_path)})
        return Settings()

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(
            "Cannot read config file.", context={"path": str(config_path), "reason": str(exc)}
        ) from exc
    except UnicodeDecodeError as exc:
        raise ConfigError("Config file is not valid UTF-8.", context={"path": str(config_path)}) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError("Config file is not valid TOML.", hint=str(exc), context={"path": str(config_path)}) from exc

    return parse_settings(data)
