from __future__ import annotations

import httpx
import pytest

from deploy_checks.attempt_loop import LoopPhase, RunState, run_attempts
from deploy_checks.check_executor import CheckOutcome, ConnectionTarget
from deploy_checks.reporter import Reporter
from deploy_checks.spec_parser import RunSettings, parse_checks

TARGET = ConnectionTarget(ip="10.0.0.5", port=5000)


class _Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _fake_checks(monkeypatch: pytest.MonkeyPatch, responder) -> list[tuple[int, str]]:
    """Replace the executor; responder(call_index, check) -> bool."""
    calls: list[tuple[int, str]] = []

    async def fake_run_check(check, *, target, timeout, client, reporter) -> CheckOutcome:
        calls.append((len(calls), check.pathname))
        ok = responder(len(calls) - 1, check)
        return CheckOutcome(
            ok=ok,
            reason="ok" if ok else "content_mismatch",
            url=target.base_url(check.protocol) + check.pathname,
            expected=check.expected,
        )

    monkeypatch.setattr("deploy_checks.attempt_loop.run_check", fake_run_check)
    return calls


async def _run(text: str, defaults: RunSettings, sleep: _Sleeps) -> tuple[RunState, object]:
    settings, checks = parse_checks(text, defaults)
    state = RunState(settings=settings, checks=checks)
    async with httpx.AsyncClient() as client:
        outcome = await run_attempts(state, target=TARGET, client=client, reporter=Reporter(), sleep=sleep)
    return state, outcome


@pytest.mark.asyncio
async def test_succeeds_after_one_probe(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _fake_checks(monkeypatch, lambda i, check: True)
    sleep = _Sleeps()

    state, outcome = await _run("/  Welcome\n", RunSettings(wait=5, timeout=30, attempts=5), sleep)

    assert outcome.ok is True
    assert outcome.phase is LoopPhase.SUCCEEDED
    assert outcome.attempts == 1
    assert len(state.history) == 1
    assert calls == [(0, "/")]
    assert sleep.calls == [5]


@pytest.mark.asyncio
async def test_exhausts_attempt_budget(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _fake_checks(monkeypatch, lambda i, check: False)
    sleep = _Sleeps()

    state, outcome = await _run("ATTEMPTS=3\nWAIT=1\n/  Welcome\n", RunSettings(), sleep)

    assert outcome.ok is False
    assert outcome.phase is LoopPhase.EXHAUSTED
    assert outcome.attempts == 3
    assert outcome.failed_count == 1
    assert len(state.history) == 3
    assert len(calls) == 3
    assert sleep.calls == [1, 1, 1]


@pytest.mark.asyncio
async def test_partial_failure_runs_every_check_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _fake_checks(monkeypatch, lambda i, check: check.pathname == "/ok")
    sleep = _Sleeps()

    state, outcome = await _run("/broken  nope\n/ok\n", RunSettings(wait=0, attempts=1), sleep)

    assert outcome.ok is False
    assert state.last_result is not None
    assert state.last_result.failed_count == 1
    assert [o.ok for o in state.last_result.outcomes] == [False, True]
    assert [path for _, path in calls] == ["/broken", "/ok"]


@pytest.mark.asyncio
async def test_recovers_on_a_later_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
    # Two checks per attempt; everything passes from the third attempt on.
    calls = _fake_checks(monkeypatch, lambda i, check: i >= 4)
    sleep = _Sleeps()

    state, outcome = await _run("/a\n/b\n", RunSettings(wait=2, attempts=5), sleep)

    assert outcome.ok is True
    assert outcome.attempts == 3
    assert [r.failed_count for r in state.history] == [2, 2, 0]
    assert len(calls) == 6
    assert sleep.calls == [2, 2, 2]


@pytest.mark.asyncio
async def test_zero_attempt_budget_still_probes_once(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _fake_checks(monkeypatch, lambda i, check: False)

    _, outcome = await _run("/\n", RunSettings(wait=0, attempts=0), _Sleeps())

    assert outcome.attempts == 1
    assert len(calls) == 1
    assert outcome.phase is LoopPhase.EXHAUSTED
