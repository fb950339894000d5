from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from typing import Union

import structlog

logger = structlog.get_logger(__name__)

SETTING_FIELDS = {
    "WAIT": "wait",
    "TIMEOUT": "timeout",
    "ATTEMPTS": "attempts",
}

# Smallest accepted value per setting; matches the ProbeConfig bounds.
SETTING_MINIMUMS = {
    "WAIT": 0,
    "TIMEOUT": 1,
    "ATTEMPTS": 1,
}

_SETTING_RE = re.compile(r"^([^=]+)=(.*)$")
_CHECK_URL_RE = re.compile(r"^(https?:)?/")


@dataclass(frozen=True)
class RunSettings:
    wait: int = 5
    timeout: int = 30
    attempts: int = 5

    def with_setting(self, name: str, value: int) -> RunSettings:
        return dataclasses.replace(self, **{SETTING_FIELDS[name]: value})


@dataclass(frozen=True)
class CheckSpec:
    pathname: str
    protocol: str = "http"
    hostname: str = "localhost"
    expected: str | None = None
    # Only a hostname written as //host/... is sent as a Host header.
    host_override: bool = False
    raw_url: str = ""


@dataclass(frozen=True)
class SettingLine:
    name: str
    value: int


@dataclass(frozen=True)
class CheckLine:
    check: CheckSpec


@dataclass(frozen=True)
class IgnoredLine:
    reason: str
    text: str = ""


ParsedLine = Union[SettingLine, CheckLine, IgnoredLine]


def _strip_inline_comment(value: str) -> str:
    return value.split("#", 1)[0].strip()


def _parse_setting(line: str) -> ParsedLine | None:
    m = _SETTING_RE.match(line)
    if not m or m.group(1) not in SETTING_FIELDS:
        return None
    name = m.group(1)
    raw_value = _strip_inline_comment(m.group(2))
    try:
        value = int(raw_value)
    except ValueError:
        return IgnoredLine(reason="invalid_value", text=line)
    if value < SETTING_MINIMUMS[name]:
        return IgnoredLine(reason="invalid_value", text=line)
    return SettingLine(name=name, value=value)


def parse_check_url(check_url: str, expected: str | None = None) -> CheckSpec | None:
    if not check_url or check_url.startswith("#") or not _CHECK_URL_RE.match(check_url):
        return None

    protocol = "http"
    rest = check_url
    for scheme in ("https", "http"):
        if rest.startswith(scheme + ":"):
            protocol = scheme
            rest = rest[len(scheme) + 1 :]
            break

    hostname = "localhost"
    host_override = False
    if rest.startswith("//"):
        host_part = rest[2:]
        slash = host_part.find("/")
        if slash < 0:
            hostname, pathname = host_part, ""
        else:
            hostname, pathname = host_part[:slash], host_part[slash:]
        host_override = True
    else:
        pathname = rest

    if not pathname:
        pathname = "/"

    return CheckSpec(
        pathname=pathname,
        protocol=protocol,
        hostname=hostname,
        expected=expected or None,
        host_override=host_override,
        raw_url=check_url,
    )


def tokenize_line(line: str) -> ParsedLine:
    stripped = line.strip()
    if not stripped:
        return IgnoredLine(reason="blank")
    if stripped.startswith("#"):
        return IgnoredLine(reason="comment", text=stripped)

    setting = _parse_setting(stripped)
    if setting is not None:
        return setting

    parts = stripped.split(None, 1)
    check_url = parts[0]
    expected = parts[1].strip() if len(parts) > 1 else None

    check = parse_check_url(check_url, expected)
    if check is None:
        return IgnoredLine(reason="unsupported_url", text=stripped)
    return CheckLine(check=check)


def parse_checks(text: str | None, defaults: RunSettings | None = None) -> tuple[RunSettings, list[CheckSpec]]:
    """
    Parse a CHECKS file into run settings and the ordered list of checks.

    Setting lines may appear anywhere; the last assignment of a name wins.
    """
    settings = defaults or RunSettings()
    checks: list[CheckSpec] = []
    for lineno, line in enumerate((text or "").splitlines(), start=1):
        parsed = tokenize_line(line)
        if isinstance(parsed, SettingLine):
            settings = settings.with_setting(parsed.name, parsed.value)
        elif isinstance(parsed, CheckLine):
            checks.append(parsed.check)
        elif parsed.reason == "invalid_value":
            logger.warning("Ignoring invalid setting", line=lineno, text=parsed.text)
    return settings, checks
