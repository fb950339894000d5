from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from deploy_checks.check_executor import CheckOutcome, ConnectionTarget, run_check
from deploy_checks.reporter import Reporter
from deploy_checks.spec_parser import CheckSpec, RunSettings

SleepFn = Callable[[float], Awaitable[None]]


class LoopPhase(enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    PROBING = "probing"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class AttemptResult:
    attempt: int
    outcomes: list[CheckOutcome] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def ok(self) -> bool:
        return self.failed_count == 0


@dataclass
class RunState:
    settings: RunSettings
    checks: list[CheckSpec]
    attempt: int = 0
    phase: LoopPhase = LoopPhase.IDLE
    last_result: AttemptResult | None = None
    history: list[AttemptResult] = field(default_factory=list)

    @property
    def max_attempts(self) -> int:
        return max(1, int(self.settings.attempts))


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool
    phase: LoopPhase
    attempts: int
    failed_count: int


async def _wait(state: RunState, reporter: Reporter, sleep: SleepFn) -> None:
    state.phase = LoopPhase.WAITING
    state.attempt += 1
    wait = state.settings.wait
    reporter.info(f"Attempt {state.attempt}/{state.max_attempts}: waiting {wait} seconds before checking")
    await sleep(wait)


async def _probe(
    state: RunState,
    *,
    target: ConnectionTarget,
    client: httpx.AsyncClient,
    reporter: Reporter,
) -> AttemptResult:
    state.phase = LoopPhase.PROBING
    result = AttemptResult(attempt=state.attempt)
    for check in state.checks:
        outcome = await run_check(
            check,
            target=target,
            timeout=state.settings.timeout,
            client=client,
            reporter=reporter,
        )
        result.outcomes.append(outcome)
    state.last_result = result
    state.history.append(result)
    return result


async def run_attempts(
    state: RunState,
    *,
    target: ConnectionTarget,
    client: httpx.AsyncClient,
    reporter: Reporter,
    sleep: SleepFn = asyncio.sleep,
) -> ProbeOutcome:
    """
    Run full passes over every check until one pass has no failures or the
    attempt budget is spent. Checks always run in file order, one at a time.
    """
    reporter.info(
        f"Running {len(state.checks)} checks",
        wait=state.settings.wait,
        timeout=state.settings.timeout,
        attempts=state.max_attempts,
    )

    while state.attempt < state.max_attempts:
        await _wait(state, reporter, sleep)
        result = await _probe(state, target=target, client=client, reporter=reporter)
        if result.ok:
            state.phase = LoopPhase.SUCCEEDED
            reporter.info("All checks successful!")
            return ProbeOutcome(ok=True, phase=state.phase, attempts=state.attempt, failed_count=0)
        reporter.warn(f"{result.failed_count} of {len(state.checks)} checks failed", attempt=state.attempt)

    state.phase = LoopPhase.EXHAUSTED
    failed = state.last_result.failed_count if state.last_result is not None else 0
    return ProbeOutcome(ok=False, phase=state.phase, attempts=state.attempt, failed_count=failed)
