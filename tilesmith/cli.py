"""Command line entry point.

    python -m tilesmith generate --method wfc --width 25 --height 25 --seed 7 \\
        --water-border --land-center --json map.json --png map.png
    python -m tilesmith batch --output-dir output_maps --count 100
    python -m tilesmith analyze --output-dir output_maps

``batch`` sweeps each method's main parameters and writes one JSON document
per map holding the request, the response with its metrics and the time the
generation took. ``analyze`` reads those documents back and writes a CSV row
per map plus a CSV of per-method averages.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Iterator, Sequence
from pathlib import Path

from tilesmith import config
from tilesmith.analyze import run_analysis
from tilesmith.errors import TilesmithError
from tilesmith.export import save_json, save_png
from tilesmith.service import GENERATORS, GenerateRequest, generate
from tilesmith.util import rng

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tilesmith", description="Generate fantasy terrain tile maps"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--master-seed",
        type=int,
        default=config.RANDOM_SEED,
        help="Master seed for the RNG streams used when no explicit seed is given",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    gen = commands.add_parser("generate", help="Generate a single map")
    gen.add_argument("--method", choices=sorted(GENERATORS), default="wfc")
    gen.add_argument("--width", type=int, default=config.DEFAULT_WIDTH)
    gen.add_argument("--height", type=int, default=config.DEFAULT_HEIGHT)
    gen.add_argument("--seed", type=int, help="Generator seed")
    gen.add_argument("--max-retries", type=int, default=config.WFC_MAX_RETRIES)
    gen.add_argument(
        "--water-border", action="store_true", help="WFC: force a water ring"
    )
    gen.add_argument(
        "--land-center", action="store_true", help="WFC: force a land disc"
    )
    gen.add_argument(
        "--iterations", type=int, default=config.TERRAIN_RULES_DEFAULT_ITERATIONS
    )
    gen.add_argument(
        "--randomness", type=float, default=config.TERRAIN_RULES_DEFAULT_RANDOMNESS
    )
    gen.add_argument("--noise-scale", type=float, default=config.NOISE_DEFAULT_SCALE)
    gen.add_argument(
        "--noise-octaves", type=int, default=config.NOISE_DEFAULT_OCTAVES
    )
    gen.add_argument(
        "--noise-persistence", type=float, default=config.NOISE_DEFAULT_PERSISTENCE
    )
    gen.add_argument(
        "--noise-lacunarity", type=float, default=config.NOISE_DEFAULT_LACUNARITY
    )
    gen.add_argument("--json", type=Path, help="Write the response to this file")
    gen.add_argument("--png", type=Path, help="Render the map to this file")
    gen.add_argument("--cell-size", type=int, default=config.PNG_CELL_SIZE)

    batch = commands.add_parser("batch", help="Generate parameter sweeps")
    batch.add_argument("--output-dir", type=Path, default=config.BATCH_OUTPUT_DIR)
    batch.add_argument(
        "--count",
        type=int,
        default=config.BATCH_MAPS_PER_METHOD,
        help="Maps per method",
    )
    batch.add_argument(
        "--methods",
        nargs="+",
        choices=config.BATCH_METHODS,
        default=list(config.BATCH_METHODS),
    )

    analyze = commands.add_parser(
        "analyze", help="Summarize a batch run into per-map and per-method CSVs"
    )
    analyze.add_argument("--output-dir", type=Path, default=config.BATCH_OUTPUT_DIR)
    analyze.add_argument(
        "--methods",
        nargs="+",
        choices=config.BATCH_METHODS,
        default=list(config.BATCH_METHODS),
    )
    analyze.add_argument(
        "--records-csv", type=Path, default=config.ANALYSIS_RECORDS_CSV
    )
    analyze.add_argument(
        "--averages-csv", type=Path, default=config.ANALYSIS_AVERAGES_CSV
    )
    return parser


def _request_from_args(args: argparse.Namespace) -> GenerateRequest:
    is_wfc = args.method == "wfc"
    return GenerateRequest(
        generation_method=args.method,
        width=args.width,
        height=args.height,
        iterations=args.iterations,
        randomness_factor=args.randomness,
        noise_scale=args.noise_scale,
        noise_octaves=args.noise_octaves,
        noise_persistence=args.noise_persistence,
        noise_lacunarity=args.noise_lacunarity,
        wfc_seed=args.seed if is_wfc else None,
        wfc_max_retries=args.max_retries,
        water_border=args.water_border,
        land_center=args.land_center,
        seed=None if is_wfc else args.seed,
    )


def _run_generate(args: argparse.Namespace) -> None:
    response = generate(_request_from_args(args))
    if args.json is not None:
        save_json(response.to_dict(), args.json)
    if args.png is not None:
        save_png(response.grid, args.png, args.cell_size)
    if args.json is None and args.png is None:
        for row in response.grid:
            print(" ".join(str(tile) for tile in row))


# =============================================================================
# Batch sweeps
# =============================================================================


def batch_requests(method: str, count: int) -> Iterator[tuple[str, GenerateRequest]]:
    """Yield ``(filename, request)`` pairs of one method's sweep, at most ``count``.

    - mlca: iterations 1..10 x randomness 0.0..0.9
    - noise: scale 0.2..2.0 x octaves 1..10
    - wfc: solver seeds 1..count
    """
    produced = 0
    if method == "mlca":
        for iterations in range(1, 11):
            for step in range(10):
                if produced >= count:
                    return
                randomness = step * 0.1
                yield (
                    f"mlca_iter_{iterations}_rand_{randomness:.2f}.json",
                    GenerateRequest(
                        "mlca", iterations=iterations, randomness_factor=randomness
                    ),
                )
                produced += 1
    elif method == "noise":
        for step in range(10):
            scale = 0.2 + step * 0.2
            for octaves in range(1, 11):
                if produced >= count:
                    return
                yield (
                    f"noise_scale_{scale:.2f}_oct_{octaves}.json",
                    GenerateRequest("noise", noise_scale=scale, noise_octaves=octaves),
                )
                produced += 1
    elif method == "wfc":
        for seed in range(1, count + 1):
            yield f"wfc_seed_{seed}.json", GenerateRequest("wfc", wfc_seed=seed)
    else:
        raise ValueError(f"No batch sweep for method {method!r}")


def run_batch(output_dir: Path, count: int, methods: Sequence[str]) -> int:
    """Generate every sweep; failed maps are logged and skipped.

    Returns:
        Number of maps that failed.
    """
    failures = 0
    for method in methods:
        logger.info("Starting generation for method: %s", method)
        method_dir = output_dir / method
        generated = 0
        for filename, request in batch_requests(method, count):
            start = time.perf_counter()
            try:
                response = generate(request)
            except TilesmithError as exc:
                logger.error("Skipping %s: %s", filename, exc)
                failures += 1
                continue
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            save_json(
                {
                    "requestParams": request.to_dict(),
                    "responseMetrics": response.to_dict(),
                    "generationTimeMs": elapsed_ms,
                },
                method_dir / filename,
            )
            generated += 1
        logger.info(
            "Finished generation for method: %s, %d maps generated.", method, generated
        )
    return failures


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    rng.init(args.master_seed)

    try:
        if args.command == "generate":
            _run_generate(args)
            return 0
        if args.command == "analyze":
            averages = run_analysis(
                args.output_dir, args.methods, args.records_csv, args.averages_csv
            )
            return 0 if averages else 1
        failures = run_batch(args.output_dir, args.count, args.methods)
    except TilesmithError as exc:
        logger.error("%s", exc)
        return 1
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
