from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import typer
from typing_extensions import Annotated

from fastmks import FastMKS, config as mks_config
from fastmks.errors import DimensionMismatchError, InvalidArgumentError

from cli.runtime import runtime_from_args

from .benchmark import benchmark_modes
from .io import load_points, save_matrix


def _kernel_params(options: Any) -> Dict[str, float]:
    params: Dict[str, float] = {}
    for name in ("degree", "offset", "bandwidth", "scale"):
        value = getattr(options, name)
        if value is not None:
            params[name] = float(value)
    return params


@dataclass
class SearchCLIOptions:
    reference: str = ""
    query: str | None = None
    k: int = 1
    kernel: str | None = None
    degree: float | None = None
    offset: float | None = None
    bandwidth: float | None = None
    scale: float | None = None
    naive: bool = False
    single: bool = False
    base: float | None = None
    leaf_size: int | None = None
    base_case_size: int | None = None
    indices_file: str | None = None
    kernels_file: str | None = None
    precision: str | None = None
    diagnostics: bool | None = None
    log_level: str | None = None

    def kernel_params(self) -> Dict[str, float]:
        return _kernel_params(self)


@dataclass
class BenchmarkCLIOptions:
    reference_points: int = 5_000
    query_points: int = 1_000
    dimension: int = 10
    k: int = 5
    seed: int = 0
    kernel: str | None = None
    degree: float | None = None
    offset: float | None = None
    bandwidth: float | None = None
    scale: float | None = None
    modes: List[str] | None = None
    base: float | None = None
    leaf_size: int | None = None
    base_case_size: int | None = None
    precision: str | None = None
    diagnostics: bool | None = None
    log_level: str | None = None

    def kernel_params(self) -> Dict[str, float]:
        return _kernel_params(self)


app = typer.Typer(
    add_completion=False,
    pretty_exceptions_enable=False,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Exact max-kernel search (naive, single-tree and dual-tree).",
)

_DATA_PANEL = "Data"
_KERNEL_PANEL = "Kernel"
_TREE_PANEL = "Search & tree"
_OUTPUT_PANEL = "Output"
_RUNTIME_PANEL = "Runtime controls"

KernelOption = Annotated[
    Optional[str],
    typer.Option(
        "--kernel",
        help="Kernel name (linear, polynomial, cosine, gaussian, epanechnikov, triangular, hyptan).",
        rich_help_panel=_KERNEL_PANEL,
    ),
]
DegreeOption = Annotated[
    Optional[float],
    typer.Option("--degree", help="Polynomial kernel degree.", rich_help_panel=_KERNEL_PANEL),
]
OffsetOption = Annotated[
    Optional[float],
    typer.Option(
        "--offset",
        help="Polynomial / hyperbolic tangent kernel offset.",
        rich_help_panel=_KERNEL_PANEL,
    ),
]
BandwidthOption = Annotated[
    Optional[float],
    typer.Option(
        "--bandwidth",
        help="Gaussian, Epanechnikov or triangular kernel bandwidth.",
        rich_help_panel=_KERNEL_PANEL,
    ),
]
ScaleOption = Annotated[
    Optional[float],
    typer.Option("--scale", help="Hyperbolic tangent kernel scale.", rich_help_panel=_KERNEL_PANEL),
]
BaseOption = Annotated[
    Optional[float],
    typer.Option("--base", help="Cover tree expansion base (> 1).", rich_help_panel=_TREE_PANEL),
]
LeafSizeOption = Annotated[
    Optional[int],
    typer.Option(
        "--leaf-size",
        help="Maximum number of points in a leaf bucket.",
        rich_help_panel=_TREE_PANEL,
    ),
]
BaseCaseSizeOption = Annotated[
    Optional[int],
    typer.Option(
        "--base-case-size",
        help="Dual-tree pairs holding at most this many point pairs are evaluated directly.",
        rich_help_panel=_TREE_PANEL,
    ),
]
PrecisionOption = Annotated[
    Optional[str],
    typer.Option(
        "--precision",
        help="Floating point precision override (float32, float64).",
        rich_help_panel=_RUNTIME_PANEL,
    ),
]
DiagnosticsOption = Annotated[
    Optional[bool],
    typer.Option(
        "--enable-diagnostics/--disable-diagnostics",
        help="Control resource polling in operation logs.",
        rich_help_panel=_RUNTIME_PANEL,
    ),
]
LogLevelOption = Annotated[
    Optional[str],
    typer.Option("--log-level", help="Override runtime log level.", rich_help_panel=_RUNTIME_PANEL),
]


@app.command("search")
def search_command(
    reference: Annotated[
        str,
        typer.Option(
            "--reference",
            "-r",
            help="Reference points (.npy, .csv/.txt, or .npz sparse), one point per row.",
            rich_help_panel=_DATA_PANEL,
        ),
    ],
    k: Annotated[
        int,
        typer.Option("--k", "-k", help="Number of max-kernel results per query.", rich_help_panel=_DATA_PANEL),
    ],
    query: Annotated[
        Optional[str],
        typer.Option(
            "--query",
            "-q",
            help="Query points; omit to search the reference set against itself.",
            rich_help_panel=_DATA_PANEL,
        ),
    ] = None,
    kernel: KernelOption = None,
    degree: DegreeOption = None,
    offset: OffsetOption = None,
    bandwidth: BandwidthOption = None,
    scale: ScaleOption = None,
    naive: Annotated[
        bool,
        typer.Option("--naive", help="Exhaustive search; overrides --single.", rich_help_panel=_TREE_PANEL),
    ] = False,
    single: Annotated[
        bool,
        typer.Option("--single", "--single-tree", help="Single-tree search.", rich_help_panel=_TREE_PANEL),
    ] = False,
    base: BaseOption = None,
    leaf_size: LeafSizeOption = None,
    base_case_size: BaseCaseSizeOption = None,
    indices_file: Annotated[
        Optional[str],
        typer.Option(
            "--indices-file",
            "-i",
            help="CSV file receiving the k x |Q| index matrix.",
            rich_help_panel=_OUTPUT_PANEL,
        ),
    ] = None,
    kernels_file: Annotated[
        Optional[str],
        typer.Option(
            "--kernels-file",
            help="CSV file receiving the k x |Q| kernel value matrix.",
            rich_help_panel=_OUTPUT_PANEL,
        ),
    ] = None,
    precision: PrecisionOption = None,
    diagnostics: DiagnosticsOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Run a max-kernel search over point files."""

    options = SearchCLIOptions(
        reference=reference,
        query=query,
        k=k,
        kernel=kernel,
        degree=degree,
        offset=offset,
        bandwidth=bandwidth,
        scale=scale,
        naive=naive,
        single=single,
        base=base,
        leaf_size=leaf_size,
        base_case_size=base_case_size,
        indices_file=indices_file,
        kernels_file=kernels_file,
        precision=precision,
        diagnostics=diagnostics,
        log_level=log_level,
    )
    _guarded(run_search, options)


@app.command("benchmark")
def benchmark_command(
    reference_points: Annotated[
        int,
        typer.Option("--reference-points", help="Synthetic reference set size.", rich_help_panel=_DATA_PANEL),
    ] = 5_000,
    query_points: Annotated[
        int,
        typer.Option("--query-points", help="Synthetic query set size.", rich_help_panel=_DATA_PANEL),
    ] = 1_000,
    dimension: Annotated[
        int,
        typer.Option("--dimension", help="Dimensionality of the points.", rich_help_panel=_DATA_PANEL),
    ] = 10,
    k: Annotated[
        int,
        typer.Option("--k", "-k", help="Number of max-kernel results per query.", rich_help_panel=_DATA_PANEL),
    ] = 5,
    seed: Annotated[
        int,
        typer.Option("--seed", help="Random seed for the synthetic points.", rich_help_panel=_DATA_PANEL),
    ] = 0,
    kernel: KernelOption = None,
    degree: DegreeOption = None,
    offset: OffsetOption = None,
    bandwidth: BandwidthOption = None,
    scale: ScaleOption = None,
    modes: Annotated[
        Optional[List[str]],
        typer.Option(
            "--mode",
            "-m",
            help="Search mode to time; repeat for several (default: all three).",
            rich_help_panel=_TREE_PANEL,
        ),
    ] = None,
    base: BaseOption = None,
    leaf_size: LeafSizeOption = None,
    base_case_size: BaseCaseSizeOption = None,
    precision: PrecisionOption = None,
    diagnostics: DiagnosticsOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Time every search mode on synthetic Gaussian data."""

    options = BenchmarkCLIOptions(
        reference_points=reference_points,
        query_points=query_points,
        dimension=dimension,
        k=k,
        seed=seed,
        kernel=kernel,
        degree=degree,
        offset=offset,
        bandwidth=bandwidth,
        scale=scale,
        modes=list(modes) if modes else None,
        base=base,
        leaf_size=leaf_size,
        base_case_size=base_case_size,
        precision=precision,
        diagnostics=diagnostics,
        log_level=log_level,
    )
    _guarded(run_benchmark, options)


def _guarded(run: Any, options: Any) -> None:
    try:
        run(options)
    except (InvalidArgumentError, DimensionMismatchError, KeyError, ValueError) as exc:
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
        typer.echo(f"error: {message}", err=True)
        raise typer.Exit(code=1) from exc


def run_search(options: SearchCLIOptions) -> None:
    runtime = runtime_from_args(options)
    try:
        reference = load_points(options.reference)
        queries = load_points(options.query) if options.query else None
        model = FastMKS(
            reference,
            options.kernel,
            naive=options.naive,
            single_tree=options.single,
            base=options.base,
            leaf_size=options.leaf_size,
            runtime=runtime,
            **options.kernel_params(),
        )
        result = model.search(options.k, queries)
        if options.indices_file:
            save_matrix(options.indices_file, result.indices, integer=True)
        if options.kernels_file:
            save_matrix(options.kernels_file, result.kernels)
        stats = result.stats
        print(
            f"[search] mode={result.mode} kernel={model.kernel.name} k={result.k} "
            f"queries={result.num_queries} references={model.reference.num_points} "
            f"kernel_evals={stats.kernel_evaluations} prunes={stats.prunes}"
        )
        if not options.indices_file and not options.kernels_file:
            for column in range(result.num_queries):
                pairs = ", ".join(
                    f"{int(index)}:{value:.6g}"
                    for index, value in zip(result.indices[:, column], result.kernels[:, column])
                )
                print(f"query {column}: {pairs}")
    finally:
        mks_config.reset_runtime_context()


def run_benchmark(options: BenchmarkCLIOptions) -> None:
    runtime = runtime_from_args(options)
    try:
        results = benchmark_modes(
            reference_points=options.reference_points,
            query_points=options.query_points,
            dimension=options.dimension,
            k=options.k,
            seed=options.seed,
            kernel=options.kernel,
            kernel_params=options.kernel_params(),
            modes=options.modes or ("naive", "single_tree", "dual_tree"),
            base=options.base,
            leaf_size=options.leaf_size,
            runtime=runtime,
        )
        print(
            f"[benchmark] reference={options.reference_points} queries={options.query_points} "
            f"dimension={options.dimension} k={options.k}"
        )
        for result in results:
            agreement = ""
            if result.matches_naive is not None:
                agreement = (
                    f" matches_naive={result.matches_naive}"
                    f" max_rel_err={result.max_relative_error:.3g}"
                )
            print(
                f"[{result.mode}] build={result.build_seconds:.4f}s "
                f"search={result.search_seconds:.4f}s "
                f"throughput={result.queries_per_second:,.1f} q/s "
                f"kernel_evals={result.kernel_evaluations} prunes={result.prunes}{agreement}"
            )
    finally:
        mks_config.reset_runtime_context()


def main() -> None:
    app()


__all__ = ["app", "main", "run_benchmark", "run_search"]
