"""WebSocket fan-out to connected browser viewers.

The server is a threaded `websockets` server. `/ws` upgrades to a push-only
viewer connection; the static page and generated images are answered from
`process_request` as plain HTTP on the same port.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from pathlib import Path
from typing import Any, Mapping, Protocol
from urllib.parse import unquote, urlsplit

from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response
from websockets.sync.server import Server, ServerConnection, serve

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"
WS_PATH = "/ws"
IMAGES_PREFIX = "/images/"


class Viewer(Protocol):
    def send(self, message: str) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass(frozen=True)
class SessionImage:
    filename: str
    session_id: str
    title: str
    updated_at: str

    @classmethod
    def now(cls, filename: str, session_id: str, title: str) -> "SessionImage":
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
        return cls(filename=filename, session_id=session_id, title=title, updated_at=stamp)

    def to_payload(self) -> dict[str, str]:
        return {
            "filename": self.filename,
            "sessionId": self.session_id,
            "title": self.title,
            "updatedAt": self.updated_at,
        }


class ViewerHub:
    """Live viewer set; safe to mutate while a broadcast is running."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._viewers: set[Viewer] = set()

    def add(self, viewer: Viewer) -> int:
        with self._lock:
            self._viewers.add(viewer)
            return len(self._viewers)

    def remove(self, viewer: Viewer) -> int:
        with self._lock:
            self._viewers.discard(viewer)
            return len(self._viewers)

    def has_viewers(self) -> bool:
        with self._lock:
            return bool(self._viewers)

    def count(self) -> int:
        with self._lock:
            return len(self._viewers)

    def broadcast(self, message: Mapping[str, Any]) -> int:
        """Send `message` to every viewer; returns how many writes succeeded."""
        try:
            data = json.dumps(dict(message), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("json encode error: %s", exc)
            return 0
        with self._lock:
            viewers = list(self._viewers)
        delivered = 0
        for viewer in viewers:
            try:
                viewer.send(data)
            except Exception as exc:
                logger.warning("websocket write error: %s", exc)
                continue
            delivered += 1
        return delivered

    def close_all(self) -> None:
        with self._lock:
            viewers = list(self._viewers)
        for viewer in viewers:
            try:
                viewer.close()
            except Exception as exc:
                logger.debug("error closing viewer: %s", exc)


class ViewerServer:
    def __init__(
        self,
        hub: ViewerHub,
        image_dir: str | Path,
        *,
        host: str = "0.0.0.0",
        port: int = 8080,
        static_dir: Path = STATIC_DIR,
    ) -> None:
        self.hub = hub
        self.image_dir = Path(image_dir)
        self.host = host
        self.port = port
        self.static_dir = static_dir
        self._server: Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def bound_port(self) -> int | None:
        if self._server is None:
            return None
        return int(self._server.socket.getsockname()[1])

    def start(self) -> None:
        self._server = serve(
            self._handle_viewer,
            self.host,
            self.port,
            process_request=self._process_request,
        )
        self._thread = threading.Thread(target=self._server.serve_forever, name="imgchat-viewers", daemon=True)
        self._thread.start()
        logger.info("server listening on %s:%s", self.host, self.bound_port)

    def stop(self, *, grace_s: float = 5.0) -> None:
        server = self._server
        thread = self._thread
        if server is None:
            return
        server.shutdown()
        self.hub.close_all()
        if thread is not None:
            thread.join(timeout=max(0.0, float(grace_s)))
            if thread.is_alive():
                logger.warning("viewer server did not stop within %.1fs", grace_s)
        self._server = None
        self._thread = None

    def _handle_viewer(self, connection: ServerConnection) -> None:
        total = self.hub.add(connection)
        logger.info("WebSocket client connected (total: %d)", total)
        try:
            # Viewers never send anything meaningful; reading only detects disconnects.
            for _message in connection:
                pass
        except ConnectionClosed:
            pass
        finally:
            total = self.hub.remove(connection)
            logger.info("WebSocket client disconnected (total: %d)", total)

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        path = unquote(urlsplit(request.path).path)
        if path == WS_PATH:
            return None
        if path == "/":
            return self._file_response(self.static_dir / "index.html", "text/html; charset=utf-8")
        if path.startswith(IMAGES_PREFIX):
            image_path = safe_child(self.image_dir, path[len(IMAGES_PREFIX) :])
            if image_path is None:
                return _text_response(HTTPStatus.NOT_FOUND, "not found")
            return self._file_response(image_path, None)
        return _text_response(HTTPStatus.NOT_FOUND, "not found")

    def _file_response(self, path: Path, content_type: str | None) -> Response:
        try:
            body = path.read_bytes()
        except OSError:
            return _text_response(HTTPStatus.NOT_FOUND, "not found")
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return _response(HTTPStatus.OK, body, content_type)


def safe_child(base: Path, name: str) -> Path | None:
    """Resolve `name` inside `base`, rejecting anything that escapes it."""
    if not name or "/" in name or "\\" in name or name in {".", ".."}:
        return None
    candidate = (base / name).resolve()
    try:
        candidate.relative_to(base.resolve())
    except ValueError:
        return None
    return candidate if candidate.is_file() else None


def _text_response(status: HTTPStatus, text: str) -> Response:
    return _response(status, text.encode("utf-8"), "text/plain; charset=utf-8")


def _response(status: HTTPStatus, body: bytes, content_type: str) -> Response:
    headers = Headers(
        [
            ("Content-Type", content_type),
            ("Content-Length", str(len(body))),
            ("Cache-Control", "no-cache"),
            ("Connection", "close"),
        ]
    )
    return Response(status.value, status.phrase, headers, body)
