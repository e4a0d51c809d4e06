"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via COWORK_* env vars, a
YAML file (see ``yaml_config``), or CLI flags.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TOOLS = [
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Glob",
    "Grep",
    "WebFetch",
    "WebSearch",
    "TodoWrite",
    "AskUserQuestion",
    "Skill",
]

_COWORK_HOME = Path.home() / ".cowork"


@dataclass
class HostConfig:
    """Host process configuration."""

    host: str = "127.0.0.1"
    # 0 lets the OS pick; the chosen port is printed on startup.
    port: int = 0

    default_model: str = "claude-sonnet-4-5-20250929"
    default_workspace: str = str(_COWORK_HOME / "workspace")
    allowed_tools: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS))

    # Max wait for an answer to an agent question.
    # Set to 0 (or a negative value) to disable timeout.
    user_question_timeout_seconds: float = 0.0

    # Combined size limit for one message's attachments.
    max_attachment_bytes: int = 50 * 1024 * 1024

    # Logging
    log_level: str = "INFO"
    log_dir: str = str(_COWORK_HOME / "logs")

    @classmethod
    def from_env(cls) -> HostConfig:
        """Load configuration from COWORK_* environment variables."""
        cowork_vars = {
            k: v for k, v in os.environ.items() if k.startswith("COWORK_")
        }
        if cowork_vars:
            logger.info(
                "HostConfig.from_env: COWORK_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(cowork_vars.items())),
            )
        else:
            logger.debug("HostConfig.from_env: no COWORK_* env vars set, using defaults")

        tools_env = os.getenv("COWORK_ALLOWED_TOOLS", "")
        allowed_tools = (
            [t.strip() for t in tools_env.split(",") if t.strip()]
            if tools_env
            else list(DEFAULT_ALLOWED_TOOLS)
        )

        config = cls(
            host=os.getenv("COWORK_HOST", cls.host),
            port=int(os.getenv("COWORK_PORT", str(cls.port))),
            default_model=os.getenv("COWORK_DEFAULT_MODEL", cls.default_model),
            default_workspace=os.getenv(
                "COWORK_DEFAULT_WORKSPACE", cls.default_workspace
            ),
            allowed_tools=allowed_tools,
            user_question_timeout_seconds=float(os.getenv(
                "COWORK_USER_QUESTION_TIMEOUT",
                str(cls.user_question_timeout_seconds),
            )),
            max_attachment_bytes=int(os.getenv(
                "COWORK_MAX_ATTACHMENT_BYTES", str(cls.max_attachment_bytes)
            )),
            log_level=os.getenv("COWORK_LOG_LEVEL", cls.log_level),
            log_dir=os.getenv("COWORK_LOG_DIR", cls.log_dir),
        )
        logger.info(
            "HostConfig.from_env: model=%s workspace=%s port=%d log_level=%s",
            config.default_model, config.default_workspace,
            config.port, config.log_level,
        )
        return config
