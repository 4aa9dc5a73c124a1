from abc import ABC, abstractmethod

_TRUTHY = ("true", "1", "yes", "on")


class SecretsInterface(ABC):
    """Provides access to secrets and environment-level configuration."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get a secret value by key. Returns None if not found."""
        ...

    @abstractmethod
    def get_or_default(self, key: str, default: str) -> str:
        """Get a secret value, returning default if not found."""
        ...

    @abstractmethod
    def require(self, key: str) -> str:
        """Get a secret value, raising KeyError if not found."""
        ...

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        return int(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() in _TRUTHY
