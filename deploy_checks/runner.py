from __future__ import annotations

import asyncio
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import httpx

from deploy_checks.app_state import AppState, resolve_container_id, resolve_target
from deploy_checks.attempt_loop import RunState, SleepFn, run_attempts
from deploy_checks.config import ProbeConfig
from deploy_checks.fallback import probe_liveness
from deploy_checks.reporter import Reporter
from deploy_checks.runtime import DockerRuntime
from deploy_checks.spec_parser import parse_checks


@dataclass(frozen=True)
class DeployRequest:
    app: str
    container_id: str | None = None
    proc_type: str = "web"
    port: str | None = None
    ip: str | None = None
    container_index: int = 1


@contextmanager
def checks_workspace(reporter: Reporter) -> Iterator[Path]:
    tmp = Path(tempfile.mkdtemp(prefix="deploy-checks-"))
    try:
        yield tmp
    finally:
        reporter.verbose("Removing checks workspace", path=str(tmp))
        shutil.rmtree(tmp, ignore_errors=True)


async def fetch_checks_text(
    runtime: DockerRuntime, container_id: str, checks_path: str, workspace: Path
) -> str | None:
    copied = await asyncio.to_thread(runtime.copy_file_out, container_id, checks_path, workspace)
    if copied is None:
        return None
    text = copied.read_text(encoding="utf-8", errors="replace")
    return text if text.strip() else None


async def emit_container_logs(runtime: DockerRuntime, container_id: str, lines: int, reporter: Reporter) -> None:
    if lines <= 0:
        return
    tail = await asyncio.to_thread(runtime.logs_tail, container_id, lines)
    if not tail:
        return
    reporter.info(f"Outputting last {len(tail)} lines of container logs", container=container_id)
    for line in tail:
        reporter.info(f"  {line}")


async def check_deploy(
    request: DeployRequest,
    *,
    config: ProbeConfig,
    runtime: DockerRuntime,
    reporter: Reporter,
    sleep: SleepFn = asyncio.sleep,
) -> int:
    """Verify a freshly started container; returns the process exit code."""
    if config.skip_all_checks:
        reporter.warn("Zero downtime checks have been skipped for all process types")
        return 0
    if request.proc_type in config.skipped_process_types:
        reporter.warn(f"Zero downtime checks for {request.proc_type} have been skipped")
        return 0

    state = AppState(root=Path(config.app_state_root), app=request.app)
    container_id = resolve_container_id(state, request.proc_type, request.container_id, request.container_index)
    reporter = reporter.bind(container=container_id[:12])

    with checks_workspace(reporter) as workspace:
        text = None
        if request.proc_type in config.web_process_types:
            text = await fetch_checks_text(runtime, container_id, config.checks_path, workspace)

        settings, checks = parse_checks(text, config.run_settings())
        if not checks:
            if request.proc_type in config.web_process_types:
                reporter.info(f"No check specification found at {config.checks_path}; running default container check")
            else:
                reporter.info(f"Running default container check for non-web process type {request.proc_type}")
            alive = await probe_liveness(
                runtime=runtime,
                container_id=container_id,
                wait=config.default_checks_wait,
                reporter=reporter,
                sleep=sleep,
            )
            if not alive:
                await emit_container_logs(runtime, container_id, config.log_tail_lines, reporter)
                return 1
            return 0

        target = await asyncio.to_thread(
            resolve_target,
            state,
            request.proc_type,
            port=request.port,
            ip=request.ip,
            runtime=runtime,
            container_id=container_id,
            index=request.container_index,
        )
        reporter.info(f"Running checks against {target.base_url('http')}")

        run_state = RunState(settings=settings, checks=checks)
        async with httpx.AsyncClient(verify=config.verify_tls, timeout=float(settings.timeout)) as client:
            outcome = await run_attempts(run_state, target=target, client=client, reporter=reporter, sleep=sleep)

        if outcome.ok:
            return 0

        reporter.fail(f"Could not start due to {outcome.failed_count} failed checks", attempts=outcome.attempts)
        await emit_container_logs(runtime, container_id, config.log_tail_lines, reporter)
        return 1
