"""Configuration management for the invoice dashboard."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the dashboard and its remote collaborators."""

    supabase_url: str
    supabase_anon_key: str
    secure_cookies: bool = True
    cookie_prefix: str = "sb"
    items_per_page: int = 6
    latest_invoices_limit: int = 5
    public_routes: Tuple[str, ...] = ("/login", "/")
    login_path: str = "/login"
    dashboard_path: str = "/dashboard"
    request_timeout: float = 10.0

    @property
    def rest_url(self) -> str:
        return f"{self.supabase_url}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.supabase_url}/auth/v1"

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        required_fields = {"supabase_url", "supabase_anon_key"}
        missing = {name for name in required_fields if not data.get(name)}
        if missing:
            raise ValueError(f"Missing required configuration fields: {', '.join(sorted(missing))}")

        known = {item.name for item in fields(Settings)}
        unknown = set(data.keys()) - known
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        items_per_page = int(data.get("items_per_page", 6))
        if items_per_page < 1:
            raise ValueError("items_per_page must be a positive integer")

        public_routes = data.get("public_routes", ("/login", "/"))
        if isinstance(public_routes, str):
            public_routes = [public_routes]

        return Settings(
            supabase_url=str(data["supabase_url"]).strip().rstrip("/"),
            supabase_anon_key=str(data["supabase_anon_key"]).strip(),
            secure_cookies=bool(data.get("secure_cookies", True)),
            cookie_prefix=str(data.get("cookie_prefix", "sb")),
            items_per_page=items_per_page,
            latest_invoices_limit=int(data.get("latest_invoices_limit", 5)),
            public_routes=tuple(str(route) for route in public_routes),  # type: ignore[union-attr]
            login_path=str(data.get("login_path", "/login")),
            dashboard_path=str(data.get("dashboard_path", "/dashboard")),
            request_timeout=float(data.get("request_timeout", 10.0)),
        )


def _load_yaml(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    overrides: Dict[str, object] = {}
    if environ.get("SUPABASE_URL"):
        overrides["supabase_url"] = environ["SUPABASE_URL"]
    if environ.get("SUPABASE_ANON_KEY"):
        overrides["supabase_anon_key"] = environ["SUPABASE_ANON_KEY"]
    if "DASHBOARD_SESSION_SECURE" in environ:
        overrides["secure_cookies"] = _env_flag(environ["DASHBOARD_SESSION_SECURE"], True)
    if environ.get("DASHBOARD_ITEMS_PER_PAGE"):
        overrides["items_per_page"] = int(environ["DASHBOARD_ITEMS_PER_PAGE"])
    return overrides


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (Path(__file__).resolve().parent.parent / "config" / "dashboard.yaml").resolve(strict=False)
    if candidate.exists():
        return candidate
    return None


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from defaults, an optional YAML file and the environment."""

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("DASHBOARD_CONFIG"))

    data: Dict[str, object] = {}
    if config_path is not None:
        data.update(_load_yaml(config_path))
    data.update(_env_overrides(env))
    return Settings.from_dict(data)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
