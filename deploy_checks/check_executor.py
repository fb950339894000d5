from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from deploy_checks.reporter import Reporter
from deploy_checks.spec_parser import CheckSpec

BODY_EXCERPT_CHARS = 500


@dataclass(frozen=True)
class ConnectionTarget:
    ip: str
    port: int

    def base_url(self, protocol: str) -> str:
        host = f"[{self.ip}]" if ":" in self.ip and not self.ip.startswith("[") else self.ip
        return f"{protocol}://{host}:{self.port}"


@dataclass(frozen=True)
class CheckOutcome:
    ok: bool
    reason: str
    url: str
    expected: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def check_url(check: CheckSpec, target: ConnectionTarget) -> str:
    return target.base_url(check.protocol) + check.pathname


def display_url(check: CheckSpec) -> str:
    return f"{check.protocol}://{check.hostname}{check.pathname}"


def expected_found(expected: str | None, body: str) -> bool:
    if not expected:
        return True
    try:
        return re.search(expected, body) is not None
    except re.error:
        # Not a valid regex: fall back to a literal substring match.
        return expected in body


def _excerpt(text: str) -> str:
    text = (text or "").strip()
    if len(text) <= BODY_EXCERPT_CHARS:
        return text
    return text[:BODY_EXCERPT_CHARS] + "..."


async def _fetch(client: httpx.AsyncClient, url: str, headers: dict[str, str]) -> httpx.Response:
    return await client.get(url, headers=headers, follow_redirects=True)


async def run_check(
    check: CheckSpec,
    *,
    target: ConnectionTarget,
    timeout: float,
    client: httpx.AsyncClient,
    reporter: Reporter,
) -> CheckOutcome:
    url = check_url(check, target)
    headers = {"Host": check.hostname} if check.host_override else {}
    expected = check.expected
    started = time.perf_counter()

    def _elapsed_ms() -> float:
        return round((time.perf_counter() - started) * 1000.0, 3)

    try:
        resp = await asyncio.wait_for(_fetch(client, url, headers), timeout=max(0.001, float(timeout)))
    except asyncio.TimeoutError:
        outcome = CheckOutcome(
            ok=False,
            reason="timeout",
            url=url,
            expected=expected,
            details={"error": f"no complete response within {timeout}s", "http_elapsed_ms": _elapsed_ms()},
        )
    except httpx.RequestError as e:
        outcome = CheckOutcome(
            ok=False,
            reason="transport_error",
            url=url,
            expected=expected,
            details={"error": f"{type(e).__name__}: {e}", "http_elapsed_ms": _elapsed_ms()},
        )
    else:
        body = resp.text or ""
        details: dict[str, Any] = {
            "status_code": resp.status_code,
            "final_url": str(resp.url),
            "http_elapsed_ms": _elapsed_ms(),
        }
        if resp.status_code >= 400:
            details["error"] = f"HTTP {resp.status_code} {resp.reason_phrase}".strip()
            details["body_excerpt"] = _excerpt(body)
            outcome = CheckOutcome(ok=False, reason="http_status", url=url, expected=expected, details=details)
        elif not expected_found(expected, body):
            details["error"] = "expected content not found in response body"
            details["body_excerpt"] = _excerpt(body)
            outcome = CheckOutcome(ok=False, reason="content_mismatch", url=url, expected=expected, details=details)
        else:
            outcome = CheckOutcome(ok=True, reason="ok", url=url, expected=expected, details=details)

    _report_outcome(reporter, check, outcome)
    return outcome


def _report_outcome(reporter: Reporter, check: CheckSpec, outcome: CheckOutcome) -> None:
    shown = display_url(check)
    if outcome.ok:
        if outcome.expected:
            reporter.verbose(f"- {shown} => '{outcome.expected}'", status=outcome.details.get("status_code"))
        else:
            reporter.verbose(f"- {shown}", status=outcome.details.get("status_code"))
        return

    reporter.warn(
        f"{shown}: check failed",
        reason=outcome.reason,
        url=outcome.url,
        expected=outcome.expected,
        error=outcome.details.get("error"),
        body=outcome.details.get("body_excerpt"),
    )
