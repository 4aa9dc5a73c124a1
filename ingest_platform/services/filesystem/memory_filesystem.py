from ingest_platform.services.filesystem.interface import FileSystemInterface


class MemoryFileSystem(FileSystemInterface):
    """In-memory file system for unit testing."""

    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}
        self.reads: list[str] = []

    def read(self, path: str) -> bytes:
        if path not in self._files:
            raise FileNotFoundError(f"File not found: {path}")
        self.reads.append(path)
        return self._files[path]

    def write(self, path: str, data: bytes) -> None:
        self._files[path] = data

    def exists(self, path: str) -> bool:
        return path in self._files

    def health_check(self) -> bool:
        return True
