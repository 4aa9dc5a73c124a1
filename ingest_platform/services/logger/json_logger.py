"""JSON-lines logger for containers: one object per line on stdout.

Each line carries ``ts``, ``level``, ``service`` and ``msg`` plus the call's
keyword context, so log shippers can index fields such as ``file_id``.
"""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from ingest_platform.services.logger.interface import LoggingInterface


class JsonLogger(LoggingInterface):
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._service = os.environ.get("LOG_SERVICE", "ingest_platform")

    def info(self, msg: str, **ctx: Any) -> None:
        self._emit("INFO", msg, ctx)

    def warn(self, msg: str, **ctx: Any) -> None:
        self._emit("WARN", msg, ctx)

    def error(self, msg: str, **ctx: Any) -> None:
        self._emit("ERROR", msg, ctx)

    def debug(self, msg: str, **ctx: Any) -> None:
        self._emit("DEBUG", msg, ctx)

    def _emit(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "service": self._service,
            "msg": msg,
            **ctx,
        }
        stream = self._stream or sys.stdout
        stream.write(json.dumps(record, default=str) + "\n")
        stream.flush()
