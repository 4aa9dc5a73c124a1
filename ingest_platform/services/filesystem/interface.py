from abc import ABC, abstractmethod


class FileSystemInterface(ABC):
    """Read access to uploaded files referenced by upload events."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Read file contents. Raises FileNotFoundError if missing."""
        ...

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """Write data to a file. Creates intermediate directories."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def health_check(self) -> bool: ...
