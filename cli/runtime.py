from __future__ import annotations

from typing import Any, Mapping

from fastmks.api import Runtime as ApiRuntime


def _get_arg(source: Any, name: str, default: Any = None) -> Any:
    if isinstance(source, Mapping):
        return source.get(name, default)
    return getattr(source, name, default)


def runtime_from_args(
    args: Any,
    *,
    extra_overrides: Mapping[str, Any] | None = None,
) -> ApiRuntime:
    """Translate parsed CLI options into runtime overrides."""

    runtime_kwargs: dict[str, Any] = {}
    precision = _get_arg(args, "precision")
    if precision:
        runtime_kwargs["precision"] = precision
    kernel = _get_arg(args, "kernel")
    if kernel:
        runtime_kwargs["kernel"] = kernel
    base = _get_arg(args, "base")
    if base is not None:
        runtime_kwargs["base"] = float(base)
    leaf_size = _get_arg(args, "leaf_size")
    if leaf_size is not None:
        runtime_kwargs["leaf_size"] = int(leaf_size)
    precompute_bounds = _get_arg(args, "precompute_bounds")
    if precompute_bounds is not None:
        runtime_kwargs["precompute_bounds"] = bool(precompute_bounds)
    query_chunk = _get_arg(args, "query_chunk")
    if query_chunk is not None:
        runtime_kwargs["query_chunk"] = int(query_chunk)
    base_case_size = _get_arg(args, "base_case_size")
    if base_case_size is not None:
        runtime_kwargs["base_case_size"] = int(base_case_size)
    diagnostics = _get_arg(args, "diagnostics")
    if diagnostics is not None:
        runtime_kwargs["diagnostics"] = bool(diagnostics)
    log_level = _get_arg(args, "log_level")
    if log_level:
        runtime_kwargs["log_level"] = log_level
    if extra_overrides:
        runtime_kwargs.update(extra_overrides)
    return ApiRuntime(**runtime_kwargs)


__all__ = ["runtime_from_args"]
