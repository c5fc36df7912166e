"""Runner configuration and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .orchestrator import PollConfig
from .transport import TransportConfig

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE


@dataclass
class RunnerConfig:
    transport: TransportConfig = field(default_factory=TransportConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    clean_output: bool = True
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunnerConfig":
        """Build a config, overriding defaults from ``NREPLRUN_*`` variables."""
        env = os.environ if environ is None else environ
        config = cls()
        transport = config.transport
        if "NREPLRUN_HOST" in env:
            transport.host = env["NREPLRUN_HOST"]
        if "NREPLRUN_PORT" in env:
            transport.port = int(env["NREPLRUN_PORT"])
        if "NREPLRUN_CALL_TIMEOUT" in env:
            transport.call_timeout = float(env["NREPLRUN_CALL_TIMEOUT"])
        if "NREPLRUN_LEGACY_DONE" in env:
            transport.legacy_done = _env_bool(env["NREPLRUN_LEGACY_DONE"])
        if "NREPLRUN_POLL_TIMEOUT" in env:
            config.poll.poll_timeout = float(env["NREPLRUN_POLL_TIMEOUT"])
        if "NREPLRUN_CLEAN" in env:
            config.clean_output = _env_bool(env["NREPLRUN_CLEAN"])
        config.log_level = env.get("NREPLRUN_LOG", config.log_level)
        return config


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
