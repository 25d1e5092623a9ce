from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

try:  # pragma: no cover - platform specific fallback
    import resource
except ImportError:  # pragma: no cover - Windows fallback
    resource = None  # type: ignore

from fastmks import config as mks_config


@dataclass(frozen=True)
class _ResourceSnapshot:
    cpu_user: float
    cpu_system: float
    max_rss: int


def _snapshot() -> _ResourceSnapshot | None:
    if resource is None:
        return None
    usage = resource.getrusage(resource.RUSAGE_SELF)
    rss = int(usage.ru_maxrss)
    if sys.platform != "darwin":
        rss *= 1024
    return _ResourceSnapshot(
        cpu_user=float(usage.ru_utime),
        cpu_system=float(usage.ru_stime),
        max_rss=rss,
    )


@dataclass
class OperationLog:
    """Collects metadata for one logged operation."""

    name: str
    diagnostics: bool
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_metadata(self, **values: Any) -> None:
        self.metadata.update(values)


def _format_ms(seconds: float | None) -> str:
    if seconds is None:
        return "NA"
    return f"{seconds * 1e3:.3f}"


def _format_metadata(metadata: Dict[str, Any]) -> str:
    parts = []
    for key, value in metadata.items():
        if isinstance(value, float):
            parts.append(f"{key}={value:.6g}")
        else:
            parts.append(f"{key}={value}")
    return " ".join(parts)


@contextmanager
def log_operation(
    logger: logging.Logger,
    name: str,
    *,
    level: int = logging.INFO,
) -> Iterator[OperationLog]:
    """Time the enclosed block and emit a single ``op=<name>`` log record.

    Resource polling (CPU time and RSS growth) is skipped when diagnostics are
    disabled in the runtime configuration; those fields then read ``NA``.
    """

    runtime = mks_config.runtime_config()
    enabled = bool(runtime.enable_diagnostics)
    op_log = OperationLog(name=name, diagnostics=enabled)
    before = _snapshot() if enabled else None
    start = time.perf_counter()
    status = "ok"
    try:
        yield op_log
    except BaseException:
        status = "error"
        raise
    finally:
        wall = time.perf_counter() - start
        after = _snapshot() if enabled else None
        if before is not None and after is not None:
            cpu_user = _format_ms(after.cpu_user - before.cpu_user)
            cpu_system = _format_ms(after.cpu_system - before.cpu_system)
            rss_delta = str(after.max_rss - before.max_rss)
        else:
            cpu_user = cpu_system = rss_delta = "NA"
        extra = _format_metadata(op_log.metadata)
        message = (
            f"op={name} status={status} wall_ms={wall * 1e3:.3f} "
            f"cpu_user_ms={cpu_user} cpu_system_ms={cpu_system} rss_delta={rss_delta}"
        )
        if extra:
            message = f"{message} {extra}"
        logger.log(level, message)


__all__ = ["OperationLog", "log_operation"]
