"""Offset-tracking reads of append-only transcript files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEvent:
    path: str
    new_data: bytes
    rewound: bool = False


@dataclass
class WatchedFile:
    path: str
    consumed_offset: int = 0
    rewound: bool = False


class IncrementalReader:
    """Reads only the bytes appended since the previous read of each file.

    Offsets live for the lifetime of the reader. Advancing is not
    transactional: once bytes are returned they are never returned again,
    which is fine because callers re-parse the full accumulated buffer.
    """

    def __init__(self) -> None:
        self._files: dict[str, WatchedFile] = {}

    def offset(self, path: str | Path) -> int:
        watched = self._files.get(str(path))
        return watched.consumed_offset if watched else 0

    def read_new(self, path: str | Path) -> FileEvent | None:
        key = str(path)
        watched = self._files.setdefault(key, WatchedFile(path=key))
        try:
            with open(key, "rb") as handle:
                size = handle.seek(0, 2)
                if size < watched.consumed_offset:
                    logger.warning(
                        "%s shrank from %d to %d bytes; reading from the start",
                        key,
                        watched.consumed_offset,
                        size,
                    )
                    watched.consumed_offset = 0
                    watched.rewound = True
                handle.seek(watched.consumed_offset)
                data = handle.read()
        except OSError as exc:
            logger.warning("cannot read %s: %s", key, exc)
            return None
        if not data:
            return None
        watched.consumed_offset += len(data)
        rewound, watched.rewound = watched.rewound, False
        return FileEvent(path=key, new_data=data, rewound=rewound)


class TranscriptBuffer:
    """Full per-file content accumulated from successive read events."""

    def __init__(self) -> None:
        self._data: dict[str, bytearray] = {}

    def append(self, event: FileEvent) -> bytes:
        if event.rewound:
            self.reset(event.path)
        buffer = self._data.setdefault(event.path, bytearray())
        buffer.extend(event.new_data)
        return bytes(buffer)

    def reset(self, path: str) -> None:
        self._data.pop(path, None)

    def get(self, path: str) -> bytes:
        return bytes(self._data.get(path, b""))
