"""Entry point and object wiring for the Ghostwriter desktop app.

``build_components`` assembles the headless graph (settings, buffer,
mutator, generation client, coordinator and event bus) so tests can drive
it without a window. ``main`` adds the Qt application, a qasync loop and
the main window on top.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, cast, get_args, get_origin, get_type_hints

from .ai.continuation import ContentGenerationClient, build_generation_client, uses_mock
from .ai.errors import QuotaExceeded
from .editor.buffer import EditorBuffer
from .editor.mutator import DocumentMutator
from .services.settings import Settings, SettingsStore, active_env_overrides, redact_secret
from .ui.domain.generation_coordinator import GenerationCoordinator
from .ui.events import EventBus, FallbackGenerationUsed, StatusMessage
from .utils import logging as logging_utils

APP_NAME = "Ghostwriter"

_LOGGER = logging.getLogger(__name__)
_YES = frozenset({"1", "true", "yes", "on", "debug"})
_NO = frozenset({"0", "false", "no", "off", "disabled"})
_NULLS = frozenset({"none", "null"})


@dataclass(slots=True)
class QtRuntime:
    """QApplication plus the qasync loop driving it."""

    app: Any
    loop: asyncio.AbstractEventLoop


@dataclass(slots=True)
class AppComponents:
    settings: Settings
    event_bus: EventBus
    buffer: EditorBuffer
    mutator: DocumentMutator
    client: ContentGenerationClient
    coordinator: GenerationCoordinator


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Writing %s logs to %s", logging.getLevelName(level), log_path)
    _route_qt_messages()


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load settings through ``store``; unreadable stores yield defaults."""

    store = store or SettingsStore(path)
    try:
        return store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Using default settings, %s could not be read: %s", store.path, exc)
        return Settings()


def build_components(
    settings: Settings,
    *,
    loop: asyncio.AbstractEventLoop | None = None,
    client: ContentGenerationClient | None = None,
    event_bus: EventBus | None = None,
) -> AppComponents:
    """Create the headless object graph around one shared buffer.

    Without an explicit ``client`` the generation client is chosen from
    ``settings``; quota fallbacks it reports are republished on the bus as
    :class:`FallbackGenerationUsed`.
    """

    bus = event_bus or EventBus()
    generation_client: ContentGenerationClient

    def _on_fallback(exc: QuotaExceeded) -> None:
        bus.publish(FallbackGenerationUsed(reason=exc.error_code, count=getattr(generation_client, "fallback_count", 0)))

    generation_client = client or build_generation_client(settings, on_fallback=_on_fallback)
    buffer = EditorBuffer()
    mutator = DocumentMutator(buffer)
    coordinator = GenerationCoordinator(
        generation_client,
        mutator,
        event_bus=bus,
        context_chars=settings.context_chars,
        loop=loop,
    )
    coordinator.bind_buffer(buffer)
    return AppComponents(settings, bus, buffer, mutator, generation_client, coordinator)


def create_qapp(settings: Settings) -> QtRuntime:
    """Return the QApplication (reused when one exists) and a qasync loop bound to it."""

    try:
        from PySide6.QtWidgets import QApplication
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - desktop extras missing
        raise RuntimeError("PySide6 and qasync are required to launch the Ghostwriter window.") from exc

    os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")
    qt_app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    qt_app.setApplicationName(APP_NAME)
    qt_app.setApplicationDisplayName(APP_NAME)

    loop = QEventLoop(qt_app)
    asyncio.set_event_loop(loop)
    qt_app.aboutToQuit.connect(loop.stop)
    _LOGGER.debug("Qt application ready (font=%s %spt)", settings.font_family, settings.font_size)
    return QtRuntime(app=qt_app, loop=loop)


def main(argv: Sequence[str] | None = None) -> None:
    """Console entry point: ``ghostwriter [--mock] [--set KEY=VALUE]... [--dump-settings]``."""

    args, qt_args = _parse_cli_args(argv)
    sys.argv = [sys.argv[0] if sys.argv else "ghostwriter", *qt_args]

    debug = _env_flag("GHOSTWRITER_DEBUG")
    configure_logging(debug)

    store = SettingsStore(_settings_path(args.settings_path))
    try:
        overrides = _coerce_cli_overrides(args.overrides)
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.mock:
        overrides["use_mock_ai"] = True
    settings = load_settings(store=store, overrides=overrides or None)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=overrides)
        return
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
    _run_window(settings)


def _run_window(settings: Settings) -> None:
    from .editor.editor_widget import EditorWidget
    from .ui.main_window import MainWindow

    runtime = create_qapp(settings)
    components = build_components(settings, loop=runtime.loop)
    editor = EditorWidget(buffer=components.buffer, event_bus=components.event_bus)
    editor.apply_font(settings.font_family, settings.font_size)
    window = MainWindow(components.event_bus, components.coordinator, editor)
    window.show()
    if uses_mock(settings):
        components.event_bus.publish(StatusMessage("Using mock AI service (no API key configured)", 5000))

    loop = runtime.loop
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - interactive
        _LOGGER.info("Interrupted; shutting down.")
    finally:
        with contextlib.suppress(RuntimeError):
            loop.run_until_complete(_shutdown_coordinator(components.coordinator))
        _drain_event_loop(loop)
        loop.close()


def _settings_path(cli_value: str | None) -> Path | None:
    raw = cli_value or os.environ.get("GHOSTWRITER_SETTINGS_PATH")
    return Path(raw).expanduser() if raw else None


def _env_flag(name: str, *, default: bool = False) -> bool:
    raw = os.environ.get(name)
    return default if raw is None else raw.strip().lower() in _YES


async def _shutdown_coordinator(coordinator: GenerationCoordinator | None) -> None:
    if coordinator is None:
        return
    try:
        await coordinator.aclose()
    except Exception:  # pragma: no cover - shutdown continues regardless
        _LOGGER.debug("Coordinator did not close cleanly", exc_info=True)


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel leftover tasks and shut down async generators and the executor."""

    if loop.is_closed():
        return

    async def _drain() -> None:
        me = asyncio.current_task()
        leftovers = [task for task in asyncio.all_tasks() if task is not me and not task.done()]
        for task in leftovers:
            task.cancel()
        if leftovers:
            _LOGGER.debug("Cancelled %d pending task(s) at shutdown", len(leftovers))
            await asyncio.gather(*leftovers, return_exceptions=True)
        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_asyncgens()
        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_default_executor()

    try:
        loop.run_until_complete(_drain())
    except RuntimeError:  # pragma: no cover - loop still running
        _LOGGER.debug("Event loop busy; skipped draining", exc_info=True)


def _route_qt_messages() -> None:
    """Forward Qt's own diagnostics into the ``PySide6`` logger."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except ImportError:  # pragma: no cover - headless installs
        return

    levels = {
        QtMsgType.QtDebugMsg: logging.DEBUG,
        QtMsgType.QtInfoMsg: logging.INFO,
        QtMsgType.QtWarningMsg: logging.WARNING,
        QtMsgType.QtCriticalMsg: logging.ERROR,
        QtMsgType.QtFatalMsg: logging.CRITICAL,
    }
    qt_logger = logging.getLogger("PySide6")

    def _forward(kind, _context, message):  # type: ignore[no-untyped-def]
        qt_logger.log(levels.get(kind, logging.INFO), message)

    qInstallMessageHandler(_forward)


# ----------------------------------------------------------------------
# Command line
# ----------------------------------------------------------------------
def _parse_cli_args(argv: Sequence[str] | None) -> tuple[argparse.Namespace, list[str]]:
    """Parse Ghostwriter's flags; anything unrecognised is left for Qt."""

    parser = argparse.ArgumentParser(prog="ghostwriter", description="AI-assisted text continuation editor.")
    parser.add_argument("--mock", action="store_true", help="Use the offline mock AI even when a key is configured.")
    parser.add_argument("--settings-path", metavar="PATH", help="Settings file (default ~/.ghostwriter/settings.json).")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override one setting for this run; may be repeated.",
    )
    parser.add_argument("--dump-settings", action="store_true", help="Print effective settings (key redacted) and exit.")
    return parser.parse_known_args(argv)


def _parse_flag(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _YES:
        return True
    if lowered in _NO:
        return False
    raise ValueError(f"Cannot coerce '{raw}' to a boolean.")


def _parse_json(expected: type) -> Callable[[str], Any]:
    def _parse(raw: str) -> Any:
        value = json.loads(raw or ("[]" if expected is list else "{}"))
        if not isinstance(value, expected):
            raise ValueError(f"Expected a JSON {expected.__name__}, got {type(value).__name__}")
        return value

    return _parse


_PARSERS: dict[Any, Callable[[str], Any]] = {
    str: str,
    bool: _parse_flag,
    int: lambda raw: int(raw, 10),
    float: float,
    list: _parse_json(list),
    dict: _parse_json(dict),
}


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into typed :class:`Settings` overrides."""

    hints = get_type_hints(Settings)
    known = {item.name for item in fields(Settings)}
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, sep, raw = entry.partition("=")
        key, raw = key.strip(), raw.strip()
        if not sep:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        target, optional = _field_type(hints[key])
        if optional and raw.lower() in _NULLS:
            overrides[key] = None
        else:
            overrides[key] = _PARSERS.get(target, str)(raw)
    return overrides


def _field_type(annotation: Any) -> tuple[Any, bool]:
    """Reduce ``list[str]`` to ``list`` and ``str | None`` to ``(str, True)``."""

    origin = get_origin(annotation)
    if origin in (list, dict):
        return origin, False
    if origin is None:
        return annotation, False
    members = [arg for arg in get_args(annotation) if arg is not type(None)]
    return (members[0] if members else str), len(members) < len(get_args(annotation))


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    values = asdict(settings)
    values["api_key"] = redact_secret(settings.api_key)
    report = {
        "settings": values,
        "meta": {
            "path": str(store.path),
            "secret_backend": store.vault.strategy,
            "cli_overrides": sorted(overrides),
            "environment_variables": active_env_overrides(),
            "mock_ai": uses_mock(settings),
        },
    }
    out = stream or sys.stdout
    json.dump(report, out, indent=2)
    out.write("\n")
