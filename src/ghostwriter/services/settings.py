"""User settings: the dataclass, its JSON store and the API key vault.

Settings live in ``~/.ghostwriter/settings.json`` unless another path is
given. The API key never touches disk in plaintext; it is written as a
``fernet:<token>`` string next to a ``settings.key`` file holding the
symmetric key. Precedence on load is file, then CLI overrides, then
``GHOSTWRITER_*`` environment variables.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "ENV_PREFIX",
    "Settings",
    "SettingsStore",
    "SecretVault",
    "active_env_overrides",
    "has_usable_credentials",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
ENV_PREFIX = "GHOSTWRITER_"
SETTINGS_VERSION = 1
CIPHERTEXT_FIELD = "api_key_ciphertext"

_HOME_DIR = Path.home() / ".ghostwriter"
_OPENAI_KEY_ENV = "OPENAI_API_KEY"
_TRUTHY = frozenset({"1", "true", "yes", "on", "debug"})


@dataclass(slots=True)
class Settings:
    """Everything the app remembers between sessions."""

    # Service
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-3.5-turbo"
    organization: str | None = None
    temperature: float = 0.7
    max_tokens: int = 100
    stop_sequences: list[str] = field(default_factory=lambda: ["\n\n\n", "---"])
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    # Transport
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0

    # Generation
    context_chars: int = 500
    use_mock_ai: bool = False
    mock_min_delay: float = 1.0
    mock_max_delay: float = 3.0

    # Editor
    font_family: str = "Georgia"
    font_size: int = 13
    debug_logging: bool = False


def _flag(raw: str) -> bool:
    return raw.strip().lower() in _TRUTHY


def _integer(raw: str) -> int:
    return int(raw, 10)


# env variable -> (settings field, parser)
_ENV_TABLE: dict[str, tuple[str, Callable[[str], Any]]] = {
    "GHOSTWRITER_API_KEY": ("api_key", str),
    "GHOSTWRITER_BASE_URL": ("base_url", str),
    "GHOSTWRITER_MODEL": ("model", str),
    "GHOSTWRITER_ORGANIZATION": ("organization", str),
    "GHOSTWRITER_USE_MOCK_AI": ("use_mock_ai", _flag),
    "GHOSTWRITER_DEBUG_LOGGING": ("debug_logging", _flag),
    "GHOSTWRITER_REQUEST_TIMEOUT": ("request_timeout", float),
    "GHOSTWRITER_TEMPERATURE": ("temperature", float),
    "GHOSTWRITER_CONTEXT_CHARS": ("context_chars", _integer),
}


class SecretVault:
    """Fernet wrapper producing ``fernet:``-prefixed tokens.

    The key file is created on first use with ``0600`` permissions on
    POSIX systems and reused afterwards.
    """

    strategy = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self.key_path = key_path or (_HOME_DIR / "settings.key")
        self._cipher: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._fernet().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{self.strategy}:{token}"

    def decrypt(self, token: str | None) -> str:
        """Reverse :meth:`encrypt`; unprefixed tokens are accepted as Fernet."""

        if not token:
            return ""
        backend, sep, body = token.partition(":")
        if not sep:
            backend, body = self.strategy, token
        if backend and backend != self.strategy:
            raise ValueError(f"Unsupported secret backend '{backend}'")
        try:
            return self._fernet().decrypt(body.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _fernet(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._read_or_create_key())
        return self._cipher

    def _read_or_create_key(self) -> bytes:
        if self.key_path.exists():
            return self.key_path.read_bytes().strip()
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = self.key_path.with_suffix(".tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - POSIX only
            staging.chmod(0o600)
        staging.replace(self.key_path)
        LOGGER.info("Created settings key at %s", self.key_path)
        return key


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (_HOME_DIR / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Return the stored settings with ``overrides`` and the environment applied.

        Files written by an older version, or holding a plaintext ``api_key``,
        are rewritten in the current format before overrides are applied.
        """

        raw = self._read()
        settings, stale = self._decode(raw)
        if stale:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - filesystem dependent
                LOGGER.warning("Could not rewrite %s: %s", self._path, exc)

        if overrides:
            settings = _merge(settings, overrides, source="CLI")
        settings = _merge(settings, _environment_values(settings), source="environment")
        LOGGER.debug("Loaded settings from %s (model=%s, mock=%s)", self._path, settings.model, settings.use_mock_ai)
        return settings

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically and return the file path."""

        document = json.dumps(self._encode(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(document, encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Saved settings to %s", self._path)
        return self._path

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def _encode(self, settings: Settings) -> Dict[str, Any]:
        document = asdict(settings)
        secret = document.pop("api_key", "") or ""
        if secret:
            try:
                document[CIPHERTEXT_FIELD] = self._vault.encrypt(secret)
            except (OSError, ValueError) as exc:  # pragma: no cover - key file unwritable
                LOGGER.warning("API key was not saved: %s", exc)
        document["version"] = SETTINGS_VERSION
        document["secret_backend"] = self._vault.strategy
        return document

    def _decode(self, raw: Dict[str, Any]) -> tuple[Settings, bool]:
        if not raw:
            return Settings(), False

        ciphertext = raw.get(CIPHERTEXT_FIELD)
        plaintext = raw.get("api_key")
        api_key = ""
        if ciphertext:
            try:
                api_key = self._vault.decrypt(ciphertext)
            except ValueError as exc:
                LOGGER.warning("Stored API key could not be decrypted: %s", exc)
        elif plaintext:
            LOGGER.info("Found a plaintext API key in %s; it will be encrypted", self._path)
            api_key = str(plaintext)

        known = {item.name for item in fields(Settings)} - {"api_key"}
        values = {name: value for name, value in raw.items() if name in known}
        try:
            settings = Settings(**values, api_key=api_key)
        except TypeError as exc:
            LOGGER.warning("Ignoring malformed settings in %s: %s", self._path, exc)
            settings = Settings()

        stale = bool(plaintext and not ciphertext) or raw.get("version") != SETTINGS_VERSION
        return settings, stale

    def _read(self) -> Dict[str, Any]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return raw


def _merge(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    """Apply the known, non-``None`` entries of ``overrides``; ``metadata`` is merged."""

    known = {item.name for item in fields(Settings)}
    changes = {name: value for name, value in overrides.items() if name in known and value is not None}
    if isinstance(changes.get("metadata"), Mapping):
        changes["metadata"] = {**settings.metadata, **changes["metadata"]}
    if not changes:
        return settings
    LOGGER.debug("Applying %s overrides: %s", source, sorted(changes))
    return replace(settings, **changes)


def _environment_values(settings: Settings) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, (target, parse) in _ENV_TABLE.items():
        raw = os.environ.get(name)
        if raw is None:
            continue
        try:
            values[target] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: expected %s", name, raw, type(getattr(settings, target)).__name__)
    if "api_key" not in values and not settings.api_key and os.environ.get(_OPENAI_KEY_ENV):
        values["api_key"] = os.environ[_OPENAI_KEY_ENV]
    return values


def has_usable_credentials(settings: Settings) -> bool:
    """``True`` when a real API key is configured and mock mode is off."""

    return bool((settings.api_key or "").strip()) and not settings.use_mock_ai


def active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith(ENV_PREFIX) or name == _OPENAI_KEY_ENV)


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of ``value``."""

    secret = (value or "").strip()
    if len(secret) <= 4:
        return "*" * len(secret)
    return secret[:2] + "*" * (len(secret) - 4) + secret[-2:]
