from __future__ import annotations

import argparse
import asyncio
import os

from deploy_checks.app_state import AppStateError
from deploy_checks.config import ConfigError, load_config
from deploy_checks.reporter import Reporter, configure_logging
from deploy_checks.runner import DeployRequest, check_deploy
from deploy_checks.runtime import DockerRuntime


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy-checks",
        description="Verify a freshly started app container is serving traffic",
    )
    parser.add_argument("app", help="Application name")
    parser.add_argument("container_id", nargs="?", default="", help="Container id (read from app state if empty)")
    parser.add_argument("proc_type", nargs="?", default="web", help="Process type of the container")
    parser.add_argument("port", nargs="?", default="", help="Listen port (read from app state if empty)")
    parser.add_argument("ip", nargs="?", default="", help="Listen IP (read from app state if empty)")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument("--container-index", type=int, default=1, help="Container index within the process type")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG shows each passing check)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
        Reporter(app=args.app).fail(f"Invalid configuration: {exc}")
        return 1

    configure_logging(args.log_level or config.log_level)
    reporter = Reporter(app=args.app, proc_type=args.proc_type or "web")

    request = DeployRequest(
        app=args.app,
        container_id=args.container_id or None,
        proc_type=args.proc_type or "web",
        port=args.port or None,
        ip=args.ip or None,
        container_index=args.container_index,
    )
    runtime = DockerRuntime(config.docker_socket_path, timeout_seconds=config.docker_timeout_seconds)

    try:
        return asyncio.run(check_deploy(request, config=config, runtime=runtime, reporter=reporter))
    except AppStateError as exc:
        reporter.fail(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
