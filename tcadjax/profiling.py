"""Profiling utilities for tcadjax.

Provides a context manager that times a code section and optionally records a
JAX/XLA trace for it. Device wraps each assembly pass in one when
``AssemblyOptions.profile`` is set.

Usage:
    from tcadjax.profiling import profile_section, ProfileConfig

    with profile_section("newton_solve"):
        result = newton_solve([device])

Environment Variables:
    TCADJAX_PROFILE_JAX: Enable JAX/XLA profiling (1 or true)
    TCADJAX_PROFILE_DIR: Directory for trace output (default: /tmp/tcadjax-traces)

JAX traces can be viewed in:
    - Perfetto (https://ui.perfetto.dev/)
    - TensorBoard (tensorboard --logdir=/tmp/tcadjax-traces)
"""

import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import jax

from tcadjax._logging import logger


def _env_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(name, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


@dataclass(frozen=True)
class ProfileConfig:
    """Configuration for profiling (immutable for thread safety).

    Attributes:
        jax: Enable JAX/XLA profiling (Perfetto/TensorBoard traces)
        timing: Log elapsed wall time of each section at DEBUG level
        trace_dir: Directory for trace output
    """

    jax: bool = field(default_factory=lambda: _env_bool("TCADJAX_PROFILE_JAX"))
    timing: bool = True
    trace_dir: str = field(
        default_factory=lambda: os.environ.get("TCADJAX_PROFILE_DIR", "/tmp/tcadjax-traces")
    )


_config_lock = threading.Lock()
_global_config: ProfileConfig = ProfileConfig()


def get_config() -> ProfileConfig:
    """Get the global profiling configuration (thread-safe)."""
    with _config_lock:
        return _global_config


def enable_profiling(jax: bool = True, trace_dir: Optional[str] = None) -> None:
    """Enable JAX trace collection globally (thread-safe)."""
    global _global_config
    with _config_lock:
        _global_config = replace(
            _global_config,
            jax=jax,
            trace_dir=trace_dir if trace_dir else _global_config.trace_dir,
        )


def disable_profiling() -> None:
    """Disable JAX trace collection globally (thread-safe)."""
    global _global_config
    with _config_lock:
        _global_config = replace(_global_config, jax=False)


@contextmanager
def profile_section(name: str, config: Optional[ProfileConfig] = None):
    """Context manager for profiling a code section.

    Args:
        name: Name for the profiled section (used in trace paths and log lines)
        config: Profiling configuration (uses global config if None)
    """
    cfg = config or get_config()

    jax_trace = None
    trace_path = Path(cfg.trace_dir) / name
    if cfg.jax:
        trace_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Starting JAX trace: {trace_path}")
        jax_trace = jax.profiler.trace(str(trace_path))
        jax_trace.__enter__()

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        if jax_trace is not None:
            jax_trace.__exit__(None, None, None)
            logger.info(f"JAX trace saved to: {trace_path}")
        if cfg.timing:
            logger.debug(f"{name}: {elapsed_ms:.3f}ms")
