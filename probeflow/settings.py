from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from probeflow.nodes.configs import MAX_NATIVE_ARGS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSettings:
    rpc_timeout_ms: int = 5000
    max_depth: int = 256
    loop_max_iterations: int = 1000
    range_max_iterations: int = 10000
    max_native_args: int = MAX_NATIVE_ARGS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """
        Build settings, letting ``PROBEFLOW_RPC_TIMEOUT_MS`` and
        ``PROBEFLOW_MAX_DEPTH`` override the defaults.
        """

        environ = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            rpc_timeout_ms=_positive_int(environ, "PROBEFLOW_RPC_TIMEOUT_MS", defaults.rpc_timeout_ms),
            max_depth=_positive_int(environ, "PROBEFLOW_MAX_DEPTH", defaults.max_depth),
        )


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, raw)
        return default
    return value
