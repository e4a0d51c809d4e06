from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from cowork.app import build_config, configure_logging
from cowork.config import HostConfig


def _args(**overrides) -> SimpleNamespace:
    values = dict(port=None, host=None, config=None, workspace=None, model=None, log_level=None)
    values.update(overrides)
    return SimpleNamespace(**values)


def test_build_config_layers_env_yaml_and_flags() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "cowork.yaml"
        config_path.write_text("host:\n  port: 9100\n  default_model: from-yaml\n")
        env = {"COWORK_DEFAULT_MODEL": "from-env", "COWORK_LOG_LEVEL": "WARNING"}
        with patch.dict(os.environ, env):
            cfg = build_config(_args(config=str(config_path), port=9200, workspace="~/ws"))

    assert cfg.port == 9200
    assert cfg.default_model == "from-yaml"
    assert cfg.log_level == "WARNING"
    assert cfg.default_workspace == str(Path("~/ws").expanduser())


def test_build_config_port_zero_flag_is_honoured() -> None:
    with patch.dict(os.environ, {"COWORK_PORT": "7000"}):
        assert build_config(_args(port=0)).port == 0


def test_configure_logging_writes_rotating_file() -> None:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    try:
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = configure_logging(HostConfig(log_dir=f"{tmpdir}/logs", log_level="debug"))
            logging.getLogger("cowork.test").info("hello from test")
            for handler in root.handlers:
                handler.flush()

            assert log_file == Path(tmpdir) / "logs" / "cowork-host.log"
            assert root.level == logging.DEBUG
            assert "hello from test" in log_file.read_text()
            for handler in root.handlers:
                handler.close()
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
