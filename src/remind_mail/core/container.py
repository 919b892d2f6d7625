"""Simple service container for dependency management."""

from __future__ import annotations

from collections.abc import Callable
from threading import RLock
from typing import Any, TypeVar

T = TypeVar("T")


class ServiceContainer:
    """Dependency container with lazy, thread-safe singleton semantics.

    The web app resolves services from request threads, so the first
    resolution of a key is guarded.
    """

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}
        self._lock = RLock()

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under a given key, replacing any cached instance."""
        with self._lock:
            self._factories[key] = factory
            self._instances.pop(key, None)

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        with self._lock:
            if key in self._instances:
                return self._instances[key]
            if key not in self._factories:
                msg = f"Service '{key}' is not registered"
                raise KeyError(msg)
            instance = self._factories[key](self)
            self._instances[key] = instance
            return instance

    def __contains__(self, key: object) -> bool:
        return key in self._factories


__all__ = ["ServiceContainer"]
