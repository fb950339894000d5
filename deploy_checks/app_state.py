from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from deploy_checks.check_executor import ConnectionTarget
from deploy_checks.runtime import DockerRuntime

logger = structlog.get_logger(__name__)


class AppStateError(Exception):
    """Raised when the container or its listen address cannot be resolved."""


@dataclass(frozen=True)
class AppState:
    """Per-app files written at deploy time: CONTAINER.web.1, PORT.web.1, IP.web.1 ..."""

    root: Path
    app: str

    @property
    def app_dir(self) -> Path:
        return self.root / self.app

    def read(self, name: str, proc_type: str, index: int = 1) -> str | None:
        for candidate in (f"{name}.{proc_type}.{index}", name):
            path = self.app_dir / candidate
            try:
                value = path.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise AppStateError(f"Cannot read app state {path}: {exc}") from exc
            if value:
                return value
        return None


def resolve_container_id(state: AppState, proc_type: str, container_id: str | None, index: int = 1) -> str:
    if container_id:
        return container_id
    resolved = state.read("CONTAINER", proc_type, index)
    if not resolved:
        raise AppStateError(f"No container id given and none recorded for {state.app} ({proc_type}.{index})")
    logger.debug("Resolved container id from app state", app=state.app, container=resolved)
    return resolved


def resolve_target(
    state: AppState,
    proc_type: str,
    *,
    port: str | int | None,
    ip: str | None,
    runtime: DockerRuntime,
    container_id: str,
    index: int = 1,
) -> ConnectionTarget:
    raw_port = str(port).strip() if port not in (None, "") else state.read("PORT", proc_type, index)
    if not raw_port:
        raise AppStateError(f"No listen port given and none recorded for {state.app} ({proc_type}.{index})")
    try:
        port_num = int(raw_port)
    except ValueError as exc:
        raise AppStateError(f"Invalid listen port {raw_port!r} for {state.app}") from exc
    if not 0 < port_num < 65536:
        raise AppStateError(f"Listen port out of range: {port_num}")

    listen_ip = (ip or "").strip() or state.read("IP", proc_type, index)
    if not listen_ip:
        listen_ip = runtime.inspect(container_id).ip_address
    if not listen_ip:
        raise AppStateError(f"No listen IP given, recorded, or reported by docker for {container_id}")

    return ConnectionTarget(ip=listen_ip, port=port_num)
