"""Key-value settings store used for credentials and persisted state."""

from typing import Any, Protocol


class SettingsStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...
