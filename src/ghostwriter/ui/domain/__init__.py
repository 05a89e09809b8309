"""Domain layer for UI architecture.

Domain managers encapsulate state and business rules independent of Qt
widgets. They receive dependencies via constructor injection and
communicate through the event bus.

Domain Managers:
    - GenerationCoordinator: continuation request/review state machine
"""

from __future__ import annotations

from .generation_coordinator import GenerationCoordinator

__all__: list[str] = ["GenerationCoordinator"]
