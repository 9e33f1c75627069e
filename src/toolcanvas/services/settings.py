"""Render settings and their persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

LOGGER = logging.getLogger(__name__)

_ENV_OVERRIDES: Mapping[str, str] = {
    "TOOLCANVAS_NAMESPACE": "namespace",
    "TOOLCANVAS_THEME": "theme",
    "TOOLCANVAS_COMPUTE_APP_ID": "compute_app_id",
    "TOOLCANVAS_COMPUTE_ENDPOINT": "compute_endpoint",
    "TOOLCANVAS_COMPUTE_FORMAT": "compute_format",
    "TOOLCANVAS_DIAGRAM_ENDPOINT": "diagram_endpoint",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "TOOLCANVAS_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "TOOLCANVAS_RETRY_DELAY": "retry_delay",
    "TOOLCANVAS_REFRESH_DELAY": "refresh_delay",
    "TOOLCANVAS_CONFIRM_SWEEP_DELAY": "confirm_sweep_delay",
    "TOOLCANVAS_REQUEST_TIMEOUT": "request_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "TOOLCANVAS_MAX_RETRIES": "max_retries",
    "TOOLCANVAS_COMPLETION_MAX_RETRIES": "completion_max_retries",
    "TOOLCANVAS_TRANSPORT_ATTEMPTS": "transport_attempts",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
THEME_CHOICES: tuple[str, ...] = ("default", "dark")
FORMAT_CHOICES: tuple[str, ...] = ("html", "markdown", "raw")


@dataclass(slots=True)
class RenderSettings:
    """User-tunable knobs for the rendering pipeline.

    Delays are in seconds. ``max_retries`` bounds ordinary sweeps while
    ``completion_max_retries`` bounds the sweep that runs once a message has
    finished streaming.
    """

    namespace: str = "default_api"
    max_retries: int = 3
    completion_max_retries: int = 5
    retry_delay: float = 1.5
    refresh_delay: float = 0.1
    confirm_sweep_delay: float = 0.5
    compute_start_delay: float = 0.1
    theme: str = "default"
    compute_app_id: str = ""
    compute_endpoint: str = "https://api.wolframalpha.com/v2/query"
    compute_format: str = "html"
    diagram_endpoint: str = "https://kroki.io"
    request_timeout: float = 30.0
    transport_attempts: int = 3
    debug_logging: bool = False

    @property
    def dark_mode(self) -> bool:
        return self.theme == "dark"


class SettingsStore:
    """Read and write :class:`RenderSettings` as JSON on disk."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path else self.default_path()

    @staticmethod
    def default_path() -> Path:
        return Path.home() / ".toolcanvas" / "settings.json"

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> RenderSettings:
        """Load settings from disk, then apply CLI and environment overrides in that order."""

        payload = self._read_payload()
        allowed = {field.name for field in fields(RenderSettings)}
        unknown = sorted(set(payload) - allowed)
        if unknown:
            LOGGER.debug("Ignoring unknown settings keys in %s: %s", self._path, unknown)
        settings = RenderSettings(**{key: value for key, value in payload.items() if key in allowed})
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="cli")
        settings = self._apply_env_overrides(settings)
        return _normalize(settings)

    def save(self, settings: RenderSettings) -> Path:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
        LOGGER.debug("Settings written to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return data

    def _apply_overrides(
        self,
        settings: RenderSettings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> RenderSettings:
        allowed = {field.name for field in fields(RenderSettings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if not filtered:
            return settings
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        return replace(settings, **filtered)

    def _apply_env_overrides(self, settings: RenderSettings) -> RenderSettings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def load_settings(path: Path | str | None = None, **overrides: Any) -> RenderSettings:
    return SettingsStore(path).load(overrides=overrides or None)


def _normalize(settings: RenderSettings) -> RenderSettings:
    changes: Dict[str, Any] = {}
    if settings.theme not in THEME_CHOICES:
        LOGGER.warning("Unknown theme %r; falling back to 'default'", settings.theme)
        changes["theme"] = "default"
    if settings.compute_format not in FORMAT_CHOICES:
        LOGGER.warning("Unknown compute format %r; falling back to 'html'", settings.compute_format)
        changes["compute_format"] = "html"
    for name in ("max_retries", "completion_max_retries"):
        if getattr(settings, name) < 0:
            changes[name] = 0
    if settings.transport_attempts < 1:
        changes["transport_attempts"] = 1
    for name in ("retry_delay", "refresh_delay", "confirm_sweep_delay", "compute_start_delay"):
        if getattr(settings, name) < 0:
            changes[name] = 0.0
    return replace(settings, **changes) if changes else settings


__all__ = [
    "RenderSettings",
    "SettingsStore",
    "load_settings",
    "THEME_CHOICES",
    "FORMAT_CHOICES",
]
