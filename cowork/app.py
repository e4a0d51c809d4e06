"""cowork-host: main entry point for the agent host process."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path

from cowork.config import HostConfig


def _log_runtime_versions() -> None:
    """Log the installed SDK version for startup diagnostics."""
    logger = logging.getLogger(__name__)
    from importlib.metadata import PackageNotFoundError, version

    try:
        sdk_version = version("claude-agent-sdk")
    except PackageNotFoundError:
        sdk_version = "not installed"
    logger.info("Runtime versions: claude-agent-sdk=%s python=%s", sdk_version, sys.version.split()[0])


def configure_logging(config: HostConfig) -> Path:
    """Log to a rotating file and stderr; stdout is reserved for the port line."""
    log_dir = Path(config.log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "cowork-host.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    return log_file


def build_config(args) -> HostConfig:
    config = HostConfig.from_env()
    if args.config:
        from cowork.yaml_config import load_yaml_config

        config = load_yaml_config(args.config, base=config)
    overrides = {}
    if args.port is not None:
        overrides["port"] = args.port
    if args.host:
        overrides["host"] = args.host
    if args.workspace:
        overrides["default_workspace"] = str(Path(args.workspace).expanduser())
    if args.model:
        overrides["default_model"] = args.model
    if args.log_level:
        overrides["log_level"] = args.log_level
    return replace(config, **overrides) if overrides else config


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="cowork-host",
        description="Cowork agent host: HTTP+SSE bridge for the desktop UI",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Server port (0=random available port)",
    )
    parser.add_argument(
        "--host", metavar="ADDR",
        help="Bind address (default 127.0.0.1)",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file with a 'host' section",
    )
    parser.add_argument(
        "--workspace", metavar="DIR",
        help="Default workspace used when the UI does not pick one",
    )
    parser.add_argument(
        "--model", metavar="MODEL",
        help="Default model used when the UI does not pick one",
    )
    parser.add_argument(
        "--log-level", metavar="LEVEL",
        help="Logging level (DEBUG, INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    config = build_config(args)
    log_file = configure_logging(config)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting cowork host port=%s config=%s workspace=%s model=%s log=%s",
        config.port,
        args.config or "<none>",
        config.default_workspace,
        config.default_model,
        log_file,
    )
    _log_runtime_versions()

    from cowork.server import CoworkServer

    server = CoworkServer(config)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
