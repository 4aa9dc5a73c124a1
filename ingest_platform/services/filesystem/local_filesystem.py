import os
import tempfile
from pathlib import Path

from ingest_platform.services.filesystem.interface import FileSystemInterface
from ingest_platform.services.secrets.interface import SecretsInterface


class LocalFileSystem(FileSystemInterface):
    """Local disk access for the shared upload volume.

    Relative paths resolve against ``FS_LOCAL_ROOT``; absolute paths (what the
    upload service usually puts in ``filePath``) are used as-is. ``..`` segments
    are rejected either way.
    """

    def __init__(self, secrets: SecretsInterface) -> None:
        root = secrets.get_or_default("FS_LOCAL_ROOT", "uploads")
        self._root = Path(root)

    def _resolve(self, path: str) -> Path:
        if ".." in Path(path).parts:
            raise ValueError(f"Path traversal not allowed: {path}")
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self._root / candidate

    def read(self, path: str) -> bytes:
        full = self._resolve(path)
        if not full.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return full.read_bytes()

    def write(self, path: str, data: bytes) -> None:
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        # Atomic write: temp file + rename
        fd, tmp = tempfile.mkstemp(dir=full.parent)
        closed = False
        try:
            os.write(fd, data)
            os.fsync(fd)
            os.close(fd)
            closed = True
            os.replace(tmp, full)
        except BaseException:
            if not closed:
                os.close(fd)
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def health_check(self) -> bool:
        return self._root.is_dir() and os.access(self._root, os.R_OK)
