"""Global configuration for EventDesk."""

from __future__ import annotations

import os
import secrets
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

MAIL_BACKENDS = {"console", "smtp", "memory"}

DEFAULTS: dict[str, Any] = {
    "admin_email": "admin@example.org",
    "mail_from": "EventDesk <noreply@example.org>",
    "mail_backend": "console",
    "smtp_host": "localhost",
    "smtp_port": 25,
    "smtp_username": "",
    "smtp_password": "",
    "smtp_use_tls": False,
    "session_secret": "",
    "admin_events_per_page": 25,
    "enable_scheduler": True,
    "sqlite_vacuum_hours": 12,
    "seed_users": 5,
    "seed_events": 12,
    "app_host": "0.0.0.0",
    "app_port": 8000,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "admin_email": str,
    "mail_from": str,
    "mail_backend": str,
    "smtp_host": str,
    "smtp_port": int,
    "smtp_username": str,
    "smtp_password": str,
    "smtp_use_tls": bool,
    "session_secret": str,
    "admin_events_per_page": int,
    "enable_scheduler": bool,
    "sqlite_vacuum_hours": int,
    "seed_users": int,
    "seed_events": int,
    "app_host": str,
    "app_port": int,
}

# Never echoed back by ``eventdesk config --show``.
SECRET_KEYS = {"smtp_password", "session_secret"}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    admin_email: str
    mail_from: str
    mail_backend: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_use_tls: bool
    session_secret: str
    admin_events_per_page: int
    enable_scheduler: bool
    sqlite_vacuum_hours: int
    seed_users: int
    seed_events: int
    app_host: str
    app_port: int
    config_path: Path


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"EVENTDESK_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_path: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_db = Path(database_path) if database_path else resolved_data / "eventdesk.db"
    if not resolved_db.is_absolute():
        resolved_db = resolved_base / resolved_db
    return resolved_base, resolved_data, resolved_db


def _resolve_session_secret(configured: str, data_dir: Path) -> str:
    """Return the configured secret or one persisted under ``data_dir``."""
    if configured:
        return configured
    secret_path = data_dir / "session_secret"
    if secret_path.exists():
        stored = secret_path.read_text(encoding="utf-8").strip()
        if stored:
            return stored
    generated = secrets.token_urlsafe(48)
    secret_path.write_text(generated, encoding="utf-8")
    secret_path.chmod(0o600)
    return generated


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("EVENTDESK_BASE_DIR", Path.cwd()))
    env_config = os.getenv("EVENTDESK_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "eventdesk.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_path_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("EVENTDESK_DATA_DIR", toml_config.get("data_dir")),
        database_path=os.getenv("EVENTDESK_DB", toml_config.get("database_path")),
    )
    data_dir_value.mkdir(parents=True, exist_ok=True)

    values = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    if values["mail_backend"] not in MAIL_BACKENDS:
        raise ValueError(
            f"Unknown mail_backend {values['mail_backend']!r}; "
            f"expected one of {sorted(MAIL_BACKENDS)}"
        )
    values["session_secret"] = _resolve_session_secret(
        values["session_secret"], data_dir_value
    )

    return Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_path=database_path_value,
        config_path=config_path,
        **values,
    )


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
    }
    for key in DEFAULTS:
        if key in SECRET_KEYS:
            payload[key] = "********" if getattr(settings, key) else ""
            continue
        payload[key] = getattr(settings, key)
    return payload


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# EventDesk configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in DEFAULTS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
