from __future__ import annotations

import http.client
import json
import socket
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, *, socket_path: str, timeout: float) -> None:
        super().__init__("localhost", timeout=timeout)
        self._socket_path = socket_path

    def connect(self) -> None:  # type: ignore[override]
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        sock.connect(self._socket_path)
        self.sock = sock


@dataclass(frozen=True)
class DockerUnixResponse:
    status: int
    ok: bool
    data: Any
    error: str | None


def docker_unix_get(*, socket_path: str, path: str, timeout_seconds: float = 5.0) -> DockerUnixResponse:
    """
    GET against the Docker Engine API over its unix socket; `data` is the raw body.

    Transport problems are returned as values, never raised.
    """
    sp = str(socket_path or "").strip()
    if not sp:
        return DockerUnixResponse(status=0, ok=False, data=None, error="missing_socket_path")
    p = str(path or "").strip()
    if not p.startswith("/"):
        p = "/" + p

    conn: _UnixHTTPConnection | None = None
    try:
        conn = _UnixHTTPConnection(socket_path=sp, timeout=max(0.5, float(timeout_seconds)))
        conn.request("GET", p, headers={"Host": "docker"})
        resp = conn.getresponse()
        raw = resp.read()
        status = int(resp.status)
        ok = 200 <= status < 300
        return DockerUnixResponse(status=status, ok=ok, data=raw, error=None if ok else f"http_{status}")
    except FileNotFoundError:
        return DockerUnixResponse(status=0, ok=False, data=None, error="socket_not_found")
    except (OSError, http.client.HTTPException) as exc:
        return DockerUnixResponse(status=0, ok=False, data=None, error=f"{type(exc).__name__}: {exc}")
    finally:
        if conn is not None:
            conn.close()


def docker_unix_get_json(*, socket_path: str, path: str, timeout_seconds: float = 5.0) -> DockerUnixResponse:
    resp = docker_unix_get(socket_path=socket_path, path=path, timeout_seconds=timeout_seconds)
    raw = resp.data if isinstance(resp.data, (bytes, bytearray)) else b""
    try:
        data = json.loads(raw.decode("utf-8")) if raw else None
    except ValueError:
        data = raw.decode("utf-8", errors="replace")
    return DockerUnixResponse(status=resp.status, ok=resp.ok, data=data, error=resp.error)


def container_path(container_id: str, suffix: str = "json", **query: Any) -> str:
    path = f"/containers/{quote(container_id, safe='')}/{suffix}"
    params = [f"{k}={quote(str(v), safe='')}" for k, v in query.items() if v is not None]
    if params:
        path += "?" + "&".join(params)
    return path


def demux_log_stream(raw: bytes) -> str:
    """
    Decode a /logs body. Containers without a TTY multiplex stdout/stderr in
    frames of an 8-byte header (stream, 0, 0, 0, big-endian size) and payload.
    """
    if len(raw) < 8 or raw[0] not in (0, 1, 2) or raw[1:4] != b"\x00\x00\x00":
        return raw.decode("utf-8", errors="replace")

    chunks: list[bytes] = []
    pos = 0
    while pos + 8 <= len(raw):
        size = int.from_bytes(raw[pos + 4 : pos + 8], "big")
        chunks.append(raw[pos + 8 : pos + 8 + size])
        pos += 8 + size
    return b"".join(chunks).decode("utf-8", errors="replace")
