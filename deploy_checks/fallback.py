from __future__ import annotations

import asyncio

from deploy_checks.attempt_loop import SleepFn
from deploy_checks.reporter import Reporter
from deploy_checks.runtime import DockerRuntime


async def probe_liveness(
    *,
    runtime: DockerRuntime,
    container_id: str,
    wait: int,
    reporter: Reporter,
    sleep: SleepFn = asyncio.sleep,
) -> bool:
    """Wait, then pass if the container is still running. No retries."""
    reporter.info(f"Waiting for {wait} seconds ...")
    await sleep(wait)

    state = await asyncio.to_thread(runtime.inspect, container_id)
    if state.alive:
        reporter.info("Default container check successful!", status=state.status)
        return True

    reporter.fail(
        "App container failed to start!!",
        status=state.status,
        exit_code=state.exit_code,
        restarting=state.restarting,
        error=state.error,
    )
    return False
