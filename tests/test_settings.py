"""Tests for settings persistence, secrets and overrides."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ghostwriter.services.settings import (
    SecretVault,
    Settings,
    SettingsStore,
    active_env_overrides,
    has_usable_credentials,
    redact_secret,
)


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "settings.key"))


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    def test_missing_file_yields_defaults(self, store: SettingsStore) -> None:
        settings = store.load()

        assert settings == Settings()
        assert settings.context_chars == 500
        assert settings.use_mock_ai is False

    def test_round_trip_encrypts_api_key(self, store: SettingsStore) -> None:
        original = Settings(api_key="sk-secret-value", model="gpt-4o-mini", context_chars=300)

        path = store.save(original)

        raw = path.read_text(encoding="utf-8")
        assert "sk-secret-value" not in raw
        payload = json.loads(raw)
        assert payload["api_key_ciphertext"].startswith("fernet:")
        assert payload["secret_backend"] == "fernet"
        assert "api_key" not in payload
        assert store.load() == original

    def test_empty_api_key_is_not_stored(self, store: SettingsStore) -> None:
        store.save(Settings())

        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert "api_key_ciphertext" not in payload

    def test_plaintext_key_is_migrated(self, store: SettingsStore) -> None:
        store.path.write_text(json.dumps({"api_key": "sk-legacy", "model": "gpt-legacy"}), encoding="utf-8")

        settings = store.load()

        assert settings.api_key == "sk-legacy"
        assert settings.model == "gpt-legacy"
        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert "api_key" not in payload
        assert payload["api_key_ciphertext"].startswith("fernet:")

    def test_invalid_json_falls_back_to_defaults(self, store: SettingsStore) -> None:
        store.path.write_text("{not json", encoding="utf-8")

        assert store.load() == Settings()

    def test_non_object_payload_falls_back_to_defaults(self, store: SettingsStore) -> None:
        store.path.write_text("[1, 2, 3]", encoding="utf-8")

        assert store.load() == Settings()

    def test_unknown_fields_are_ignored(self, store: SettingsStore) -> None:
        store.path.write_text(json.dumps({"version": 1, "theme": "dark", "font_size": 16}), encoding="utf-8")

        settings = store.load()

        assert settings.font_size == 16

    def test_undecryptable_key_is_dropped(self, store: SettingsStore) -> None:
        store.path.write_text(json.dumps({"version": 1, "api_key_ciphertext": "fernet:garbage"}), encoding="utf-8")

        assert store.load().api_key == ""


# =============================================================================
# Overrides
# =============================================================================


class TestOverrides:
    def test_cli_overrides_apply(self, store: SettingsStore) -> None:
        settings = store.load(overrides={"model": "gpt-cli", "unknown": 1, "temperature": None})

        assert settings.model == "gpt-cli"
        assert settings.temperature == Settings().temperature

    def test_metadata_override_merges(self, store: SettingsStore) -> None:
        store.save(Settings(metadata={"app": "ghostwriter"}))

        settings = store.load(overrides={"metadata": {"user": "me"}})

        assert settings.metadata == {"app": "ghostwriter", "user": "me"}

    def test_environment_overrides(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GHOSTWRITER_API_KEY", "sk-env")
        monkeypatch.setenv("GHOSTWRITER_USE_MOCK_AI", "yes")
        monkeypatch.setenv("GHOSTWRITER_REQUEST_TIMEOUT", "12.5")
        monkeypatch.setenv("GHOSTWRITER_CONTEXT_CHARS", "250")

        settings = store.load(overrides={"model": "gpt-cli"})

        assert settings.api_key == "sk-env"
        assert settings.use_mock_ai is True
        assert settings.request_timeout == 12.5
        assert settings.context_chars == 250
        assert settings.model == "gpt-cli"

    def test_environment_beats_cli(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GHOSTWRITER_MODEL", "gpt-env")

        assert store.load(overrides={"model": "gpt-cli"}).model == "gpt-env"

    def test_invalid_numeric_environment_is_ignored(
        self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GHOSTWRITER_CONTEXT_CHARS", "lots")
        monkeypatch.setenv("GHOSTWRITER_TEMPERATURE", "warm")

        settings = store.load()

        assert settings.context_chars == 500
        assert settings.temperature == 0.7

    def test_openai_key_is_a_fallback(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")

        assert store.load().api_key == "sk-openai"

        store.save(Settings(api_key="sk-stored"))
        assert store.load().api_key == "sk-stored"


# =============================================================================
# Helpers
# =============================================================================


@pytest.mark.parametrize(
    ("settings", "expected"),
    [
        (Settings(), False),
        (Settings(api_key="  "), False),
        (Settings(api_key="sk-live"), True),
        (Settings(api_key="sk-live", use_mock_ai=True), False),
    ],
)
def test_has_usable_credentials(settings: Settings, expected: bool) -> None:
    assert has_usable_credentials(settings) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("", ""),
        ("abc", "***"),
        ("sk-1234567", "sk******67"),
        ("  sk-12345  ", "sk****45"),
    ],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected


def test_active_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GHOSTWRITER_MODEL", "gpt-env")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
    monkeypatch.setenv("UNRELATED_VARIABLE", "1")

    assert active_env_overrides() == ["GHOSTWRITER_MODEL", "OPENAI_API_KEY"]


def test_vault_rejects_foreign_backend(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "settings.key")

    with pytest.raises(ValueError):
        vault.decrypt("keyring:abc")

    assert vault.decrypt(vault.encrypt("hunter2")) == "hunter2"
    assert vault.encrypt("") == ""
