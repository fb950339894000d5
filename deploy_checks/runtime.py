from __future__ import annotations

import io
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from deploy_checks.docker_unix import container_path, demux_log_stream, docker_unix_get, docker_unix_get_json

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContainerState:
    container_id: str
    exists: bool
    running: bool
    restarting: bool = False
    status: str | None = None
    exit_code: int | None = None
    ip_address: str | None = None
    error: str | None = None

    @property
    def alive(self) -> bool:
        return self.exists and self.running and not self.restarting


def _first_network_ip(data: dict[str, Any]) -> str | None:
    settings = data.get("NetworkSettings") if isinstance(data.get("NetworkSettings"), dict) else {}
    ip = str(settings.get("IPAddress") or "").strip()
    if ip:
        return ip
    networks = settings.get("Networks")
    if isinstance(networks, dict):
        for net in networks.values():
            if isinstance(net, dict) and str(net.get("IPAddress") or "").strip():
                return str(net["IPAddress"]).strip()
    return None


class DockerRuntime:
    """Container runtime operations needed by the probe, over the Docker Engine API."""

    def __init__(self, socket_path: str, timeout_seconds: float = 5.0) -> None:
        self.socket_path = socket_path
        self.timeout_seconds = timeout_seconds

    def inspect(self, container_id: str) -> ContainerState:
        resp = docker_unix_get_json(
            socket_path=self.socket_path,
            path=container_path(container_id),
            timeout_seconds=self.timeout_seconds,
        )
        if resp.status == 404:
            return ContainerState(container_id=container_id, exists=False, running=False, error="not_found")
        if not resp.ok or not isinstance(resp.data, dict):
            logger.warning("Container inspect failed", container=container_id, error=resp.error)
            return ContainerState(
                container_id=container_id,
                exists=False,
                running=False,
                error=f"docker_inspect_failed: {resp.error or resp.status}",
            )

        state = resp.data.get("State") if isinstance(resp.data.get("State"), dict) else {}
        exit_code = state.get("ExitCode")
        return ContainerState(
            container_id=container_id,
            exists=True,
            running=state.get("Running") is True,
            restarting=state.get("Restarting") is True,
            status=str(state.get("Status") or "") or None,
            exit_code=int(exit_code) if isinstance(exit_code, int) else None,
            ip_address=_first_network_ip(resp.data),
        )

    def copy_file_out(self, container_id: str, src_path: str, dest_dir: Path) -> Path | None:
        """
        Copy one regular file out of the container into dest_dir.

        Returns None when the file does not exist in the container.
        """
        resp = docker_unix_get(
            socket_path=self.socket_path,
            path=container_path(container_id, "archive", path=src_path),
            timeout_seconds=self.timeout_seconds,
        )
        if resp.status == 404:
            logger.debug("File not present in container", container=container_id, path=src_path)
            return None
        if not resp.ok or not resp.data:
            logger.warning("Container file copy failed", container=container_id, path=src_path, error=resp.error)
            return None

        with tarfile.open(fileobj=io.BytesIO(resp.data), mode="r:*") as archive:
            members = archive.getmembers()
            member = members[0] if members else None
            if member is None or not member.isfile() or Path(member.name).name != Path(src_path).name:
                logger.warning("Container path is not a regular file", container=container_id, path=src_path)
                return None
            extracted = archive.extractfile(member)
            if extracted is None:
                return None
            dest = dest_dir / Path(member.name).name
            dest.write_bytes(extracted.read())
        return dest

    def logs_tail(self, container_id: str, lines: int = 100) -> list[str]:
        resp = docker_unix_get(
            socket_path=self.socket_path,
            path=container_path(container_id, "logs", stdout=1, stderr=1, tail=max(1, int(lines))),
            timeout_seconds=self.timeout_seconds,
        )
        if not resp.ok or not resp.data:
            return []
        return demux_log_stream(resp.data).splitlines()
