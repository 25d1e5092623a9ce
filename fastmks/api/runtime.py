from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict

from fastmks import config as mks_config


def _apply_if_present(target: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        target[key] = value


def _active_runtime_config() -> mks_config.RuntimeConfig:
    active = mks_config.current_runtime_context()
    if active is not None:
        return active.config
    return mks_config.RuntimeConfig.from_env()


_ATTR_TO_FIELD = {
    "precision": "precision",
    "kernel": "kernel",
    "base": "base",
    "leaf_size": "leaf_size",
    "precompute_bounds": "precompute_bounds",
    "query_chunk": "query_chunk",
    "base_case_size": "base_case_size",
    "diagnostics": "enable_diagnostics",
    "log_level": "log_level",
}


@dataclass(frozen=True)
class Runtime:
    """Declarative runtime overrides that can activate a fastmks context.

    Unset fields fall back to the active context (or the environment when no
    context has been installed yet).
    """

    precision: str | None = None
    kernel: str | None = None
    base: float | None = None
    leaf_size: int | None = None
    precompute_bounds: bool | None = None
    query_chunk: int | None = None
    base_case_size: int | None = None
    diagnostics: bool | None = None
    log_level: str | None = None

    def to_config(self, base: mks_config.RuntimeConfig | None = None) -> mks_config.RuntimeConfig:
        base_config = base or _active_runtime_config()
        updates: Dict[str, Any] = {}
        for attr, field_name in _ATTR_TO_FIELD.items():
            _apply_if_present(updates, field_name, getattr(self, attr))
        if "precision" in updates:
            updates["precision"] = mks_config._normalise_precision(updates["precision"])
        if "kernel" in updates:
            updates["kernel"] = str(updates["kernel"]).strip().lower()
        if "log_level" in updates:
            updates["log_level"] = str(updates["log_level"]).upper()
        if "base" in updates and float(updates["base"]) <= 1.0:
            raise ValueError(f"Cover tree base must exceed 1.0 (got {updates['base']}).")
        for key in ("leaf_size", "query_chunk", "base_case_size"):
            if key in updates and int(updates[key]) <= 0:
                raise ValueError(f"{key} must be positive (got {updates[key]}).")
        if not updates:
            return base_config
        return replace(base_config, **updates)

    def activate(self) -> mks_config.RuntimeContext:
        """Install this runtime as the active global context and return it."""

        config = self.to_config()
        return mks_config.configure_runtime(config)

    def describe(self) -> Dict[str, Any]:
        config = self.to_config()
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

    def with_updates(self, **kwargs: Any) -> "Runtime":
        return replace(self, **kwargs)

    @classmethod
    def from_active(cls) -> "Runtime":
        return cls.from_config(_active_runtime_config())

    @classmethod
    def from_config(cls, config: mks_config.RuntimeConfig) -> "Runtime":
        return cls(
            precision=config.precision,
            kernel=config.kernel,
            base=config.base,
            leaf_size=config.leaf_size,
            precompute_bounds=config.precompute_bounds,
            query_chunk=config.query_chunk,
            base_case_size=config.base_case_size,
            diagnostics=config.enable_diagnostics,
            log_level=config.log_level,
        )


__all__ = ["Runtime"]
