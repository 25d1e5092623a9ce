from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

_LOGGER = logging.getLogger("fastmks")

_SUPPORTED_PRECISION = {"float32", "float64"}
_DEFAULT_KERNEL = "linear"
_DEFAULT_BASE = 2.0
_DEFAULT_LEAF_SIZE = 16
_DEFAULT_QUERY_CHUNK = 512
_DEFAULT_BASE_CASE_SIZE = 4096


def _bool_from_env(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value '{raw}'") from exc


def _parse_optional_float(raw: str | None, *, default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid float value '{raw}'") from exc


def _normalise_precision(value: str | None) -> str:
    if value is None:
        return "float64"
    value = value.strip().lower()
    if value not in _SUPPORTED_PRECISION:
        raise ValueError(f"Unsupported precision '{value}'. Expected one of {_SUPPORTED_PRECISION}.")
    return value


def _parse_base(raw: str | None) -> float:
    base = _parse_optional_float(raw, default=_DEFAULT_BASE)
    if base <= 1.0:
        raise ValueError(f"Cover tree base must exceed 1.0 (got {base}).")
    return base


def _parse_positive_int(raw: str | None, *, default: int, name: str) -> int:
    value = _parse_optional_int(raw)
    if value is None:
        return default
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value}).")
    return value


@dataclass(frozen=True)
class RuntimeConfig:
    precision: str
    kernel: str
    base: float
    leaf_size: int
    precompute_bounds: bool
    query_chunk: int
    base_case_size: int
    enable_diagnostics: bool
    log_level: str

    @property
    def dtype(self) -> str:
        return self.precision

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        precision = _normalise_precision(os.getenv("FASTMKS_PRECISION"))
        kernel = os.getenv("FASTMKS_KERNEL", _DEFAULT_KERNEL).strip().lower() or _DEFAULT_KERNEL
        base = _parse_base(os.getenv("FASTMKS_BASE"))
        leaf_size = _parse_positive_int(
            os.getenv("FASTMKS_LEAF_SIZE"), default=_DEFAULT_LEAF_SIZE, name="Leaf size"
        )
        precompute_bounds = _bool_from_env(
            os.getenv("FASTMKS_PRECOMPUTE_BOUNDS"), default=False
        )
        query_chunk = _parse_positive_int(
            os.getenv("FASTMKS_QUERY_CHUNK"), default=_DEFAULT_QUERY_CHUNK, name="Query chunk"
        )
        base_case_size = _parse_positive_int(
            os.getenv("FASTMKS_BASE_CASE_SIZE"),
            default=_DEFAULT_BASE_CASE_SIZE,
            name="Base case size",
        )
        enable_diagnostics = _bool_from_env(
            os.getenv("FASTMKS_ENABLE_DIAGNOSTICS"), default=True
        )
        log_level = os.getenv("FASTMKS_LOG_LEVEL", "INFO").upper()
        return cls(
            precision=precision,
            kernel=kernel,
            base=base,
            leaf_size=leaf_size,
            precompute_bounds=precompute_bounds,
            query_chunk=query_chunk,
            base_case_size=base_case_size,
            enable_diagnostics=enable_diagnostics,
            log_level=log_level,
        )


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("fastmks")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)


@dataclass
class RuntimeContext:
    """Runtime configuration plus the one-off side effects it implies."""

    config: RuntimeConfig
    _activated: bool = False

    def activate(self) -> None:
        """Apply side effects (logging) once."""

        if self._activated:
            return
        _configure_logging(self.config.log_level)
        self._activated = True


_CONTEXT_CACHE: Optional[RuntimeContext] = None


def runtime_context() -> RuntimeContext:
    """Return the cached runtime context, constructing it if necessary."""

    global _CONTEXT_CACHE
    if _CONTEXT_CACHE is None:
        config = RuntimeConfig.from_env()
        context = RuntimeContext(config=config)
        context.activate()
        _CONTEXT_CACHE = context
    return _CONTEXT_CACHE


def current_runtime_context() -> RuntimeContext | None:
    return _CONTEXT_CACHE


def runtime_config() -> RuntimeConfig:
    return runtime_context().config


def configure_runtime(config: RuntimeConfig) -> RuntimeContext:
    """Force the active runtime context to use ``config`` instead of env defaults."""

    context = RuntimeContext(config=config)
    context.activate()
    _set_runtime_context(context)
    return context


def set_runtime_context(context: RuntimeContext) -> RuntimeContext:
    context.activate()
    _set_runtime_context(context)
    return context


def _set_runtime_context(context: RuntimeContext) -> None:
    global _CONTEXT_CACHE
    _CONTEXT_CACHE = context


def reset_runtime_config_cache() -> None:
    reset_runtime_context()


def reset_runtime_context() -> None:
    """Clear the cached runtime context (used in tests)."""

    global _CONTEXT_CACHE
    _CONTEXT_CACHE = None


def describe_runtime() -> Dict[str, Any]:
    """Return a serialisable view of the active runtime configuration."""

    config = runtime_config()
    return {
        "precision": config.precision,
        "kernel": config.kernel,
        "base": config.base,
        "leaf_size": config.leaf_size,
        "precompute_bounds": config.precompute_bounds,
        "query_chunk": config.query_chunk,
        "base_case_size": config.base_case_size,
        "enable_diagnostics": config.enable_diagnostics,
        "log_level": config.log_level,
    }


__all__ = [
    "RuntimeConfig",
    "RuntimeContext",
    "runtime_context",
    "runtime_config",
    "current_runtime_context",
    "configure_runtime",
    "set_runtime_context",
    "reset_runtime_context",
    "reset_runtime_config_cache",
    "describe_runtime",
]
