"""Service layer helpers (settings persistence and secrets)."""

from .settings import Settings, SettingsStore, SecretVault, has_usable_credentials, redact_secret

__all__ = ["Settings", "SettingsStore", "SecretVault", "has_usable_credentials", "redact_secret"]
