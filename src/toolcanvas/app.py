"""Command-line entry point: render a chat message file into a standalone HTML document."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, get_type_hints

from .interpreter import PythonCallParser
from .pipeline import ToolCanvas
from .services.backends import BackendSet
from .services.kroki import KrokiDiagramBackend
from .services.settings import RenderSettings, SettingsStore
from .services.wolfram import WolframAlphaBackend
from .session import RenderSession
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

DEFAULT_MESSAGE_ID = "message-1"


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RenderSettings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return RenderSettings()


def build_backends(settings: RenderSettings) -> BackendSet:
    """Backends reachable from a plain Python process.

    Only mermaid layout and compute have HTTP services; the other kinds report
    an unavailable backend inline.
    """

    compute = None
    if settings.compute_app_id:
        compute = WolframAlphaBackend(
            settings.compute_app_id,
            endpoint=settings.compute_endpoint,
            timeout=settings.request_timeout,
            max_attempts=settings.transport_attempts,
        )
    return BackendSet(
        parser=PythonCallParser(),
        diagram=KrokiDiagramBackend(settings.diagram_endpoint, timeout=settings.request_timeout),
        compute=compute,
    )


async def render_document(
    text: str,
    settings: RenderSettings,
    *,
    backends: BackendSet | None = None,
    message_id: str = DEFAULT_MESSAGE_ID,
    stream_chunk: int = 0,
) -> str:
    """Render ``text`` as one chat message and return the whole document as HTML.

    With ``stream_chunk`` the message is fed in growing prefixes first, the way
    a streaming reply arrives, and then completed.
    """

    session = RenderSession(settings=settings, backends=backends or build_backends(settings))
    canvas = ToolCanvas(session)
    try:
        if stream_chunk > 0:
            for end in range(stream_chunk, len(text), stream_chunk):
                await canvas.streaming.update(message_id, text[:end])
            await canvas.streaming.complete(message_id, text)
        else:
            await canvas.streaming.render_final(message_id, text)
        await session.join()
        return session.document.to_html()
    finally:
        await canvas.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``toolcanvas`` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("TOOLCANVAS_DEBUG")
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("TOOLCANVAS_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    store = SettingsStore(resolved_path)
    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    if args.theme:
        overrides["theme"] = args.theme
    settings = load_settings(resolved_path, store=store, overrides=overrides or None)
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command == "settings":
        print(json.dumps(_redacted(settings), indent=2, sort_keys=True))
        return 0

    source = Path(args.input)
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Cannot read {source}: {exc}", file=sys.stderr)
        return 1

    html = asyncio.run(render_document(text, settings, stream_chunk=args.stream_chunk))
    if args.output:
        Path(args.output).write_text(html, encoding="utf-8")
        _LOGGER.info("Wrote rendered document to %s", args.output)
    else:
        sys.stdout.write(html)
    return 0


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="toolcanvas",
        description="Render chat messages containing tool_code blocks into HTML.",
    )
    parser.add_argument("--settings-path", metavar="PATH", help="Override the default ~/.toolcanvas/settings.json path.")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings (repeatable).",
    )
    parser.add_argument("--theme", choices=("default", "dark"), help="Theme used by typeset artifacts.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command", required=True)
    render = commands.add_parser("render", help="Render a markdown message file.")
    render.add_argument("input", metavar="MARKDOWN_FILE")
    render.add_argument("-o", "--output", metavar="PATH", help="Write HTML here instead of stdout.")
    render.add_argument(
        "--stream-chunk",
        type=int,
        default=0,
        metavar="N",
        help="Replay the message as a stream in chunks of N characters before completing it.",
    )
    commands.add_parser("settings", help="Print the effective settings and exit.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    fields = RenderSettings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(RenderSettings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(target: Any, raw_value: str) -> Any:
    if target is bool:
        return _parse_bool(raw_value)
    if target is int:
        return int(raw_value, 10)
    if target is float:
        return float(raw_value)
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _redacted(settings: RenderSettings) -> Dict[str, Any]:
    payload = asdict(settings)
    if payload.get("compute_app_id"):
        payload["compute_app_id"] = "***"
    return payload


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
