"""Summaries of a batch run.

Reads the documents written by ``tilesmith batch`` from
``<output_dir>/<method>/*.json``, reduces each map to a handful of scalar
metrics and writes two CSV files: one row per map, and one row of averages
per generation method.

Per-map metrics:

- Entropy and FractalDim, copied from the response
- LandRatio: summed frequency of WET_SAND through FOREST
- NumUniqueAdjacencyPairs: unordered tile pairs that touch at least once
- AvgAutocorrLag1: mean of the (1, 0) and (0, 1) autocorrelations
- LowFreqEnergyRatio: share of spectrum magnitude in the top-left quarter
- GenerationTimeMs, copied from the batch document

Missing or undefined values are NaN and are left out of the averages.
"""

from __future__ import annotations

import csv
import json
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import astuple, dataclass, replace
from pathlib import Path
from typing import Any

import numpy as np

from tilesmith import config
from tilesmith.tiles import TileKind

logger = logging.getLogger(__name__)

RECORD_HEADER = (
    "FilePath",
    "Method",
    "Entropy",
    "FractalDim",
    "LandRatio",
    "NumUniqueAdjacencyPairs",
    "AvgAutocorrLag1",
    "LowFreqEnergyRatio",
    "GenerationTimeMs",
)

AVERAGE_HEADER = (
    "Method",
    "AvgEntropy",
    "AvgFractalDim",
    "AvgLandRatio",
    "AvgNumUniqueAdjacencyPairs",
    "AvgAvgAutocorrLag1",
    "AvgLowFreqEnergyRatio",
    "AvgGenerationTimeMs",
    "SampleCount",
)

# Frequencies summed into LandRatio.
_LAND_RATIO_TILES = tuple(
    str(int(tile)) for tile in TileKind if tile >= TileKind.WET_SAND
)


@dataclass(frozen=True)
class MapRecord:
    """Scalar metrics of one generated map."""

    file_name: str
    method: str
    entropy: float
    fractal_dim: float
    land_ratio: float
    unique_adjacency_pairs: int
    autocorr_lag1: float
    low_freq_energy_ratio: float
    generation_time_ms: float

    def metric_values(self) -> tuple[float, ...]:
        """Numeric fields in ``RECORD_HEADER`` order."""
        return astuple(self)[2:]


@dataclass(frozen=True)
class MethodAverage:
    """NaN-aware averages of every metric for one method."""

    method: str
    entropy: float
    fractal_dim: float
    land_ratio: float
    unique_adjacency_pairs: float
    autocorr_lag1: float
    low_freq_energy_ratio: float
    generation_time_ms: float
    sample_count: int


def _number(value: Any) -> float:
    return float(value) if isinstance(value, int | float) else math.nan


def unique_adjacency_pairs(adjacency: Mapping[str, Mapping[str, int]]) -> int:
    pairs = {
        tuple(sorted((int(a), int(b))))
        for a, row in adjacency.items()
        for b, count in row.items()
        if count > 0
    }
    return len(pairs)


def low_freq_energy_ratio(spectrum: Sequence[Sequence[float]]) -> float:
    """Share of the magnitude held by the lowest quarter of both frequencies."""
    magnitudes = np.abs(np.asarray(spectrum, dtype=float))
    if magnitudes.ndim != 2 or magnitudes.size == 0:
        return math.nan
    total = magnitudes.sum()
    if total <= 0:
        return math.nan
    rows = max(1, magnitudes.shape[0] // 4)
    cols = max(1, magnitudes.shape[1] // 4)
    return float(magnitudes[:rows, :cols].sum() / total)


def summarize_document(document: Mapping[str, Any], file_name: str) -> MapRecord:
    """Reduce one batch document to its ``MapRecord``."""
    request = document.get("requestParams") or {}
    metrics = document.get("responseMetrics") or {}

    frequencies = metrics.get("frequencies") or {}
    land_ratio = sum(_number(frequencies.get(key, 0.0)) for key in _LAND_RATIO_TILES)

    autocorr = metrics.get("autocorr") or {}
    lag1 = [_number(autocorr.get(key)) for key in ("1,0", "0,1")]
    lag1 = [value for value in lag1 if not math.isnan(value)]

    return MapRecord(
        file_name=file_name,
        method=str(request.get("generationMethod", "")),
        entropy=_number(metrics.get("entropy")),
        fractal_dim=_number(metrics.get("fractalDim")),
        land_ratio=land_ratio,
        unique_adjacency_pairs=unique_adjacency_pairs(metrics.get("adjacency") or {}),
        autocorr_lag1=sum(lag1) / len(lag1) if lag1 else math.nan,
        low_freq_energy_ratio=low_freq_energy_ratio(metrics.get("spectrum") or []),
        generation_time_ms=_number(document.get("generationTimeMs")),
    )


def load_records(output_dir: Path, methods: Sequence[str]) -> list[MapRecord]:
    """Read every ``<output_dir>/<method>/*.json`` document.

    Unreadable files are logged and skipped. A document without a
    ``generationMethod`` is attributed to the directory it was found in.
    """
    records: list[MapRecord] = []
    for method in methods:
        method_dir = output_dir / method
        if not method_dir.is_dir():
            logger.warning("No results directory for method %s: %s", method, method_dir)
            continue
        for path in sorted(method_dir.glob("*.json")):
            try:
                document = json.loads(path.read_text())
            except (OSError, ValueError) as exc:
                logger.warning("Skipping %s: %s", path, exc)
                continue
            if not isinstance(document, dict):
                logger.warning("Skipping %s: not a batch result document", path)
                continue
            record = summarize_document(document, path.name)
            if not record.method:
                record = replace(record, method=method)
            records.append(record)
    logger.info("Read %d result files from %s", len(records), output_dir)
    return records


def method_averages(
    records: Sequence[MapRecord], methods: Sequence[str]
) -> list[MethodAverage]:
    """Average each metric per method, ignoring NaN values.

    ``sample_count`` is the largest number of non-NaN values among the
    metrics of that method. A method without records averages to NaN.
    """
    averages = []
    for method in methods:
        values = np.array(
            [r.metric_values() for r in records if r.method == method], dtype=float
        ).reshape(-1, len(RECORD_HEADER) - 2)
        present = ~np.isnan(values)
        counts = present.sum(axis=0)
        sums = np.where(present, values, 0.0).sum(axis=0)
        with np.errstate(invalid="ignore", divide="ignore"):
            means = np.where(counts > 0, sums / counts, np.nan)
        averages.append(
            MethodAverage(method, *(float(m) for m in means), int(counts.max()))
        )
    return averages


def _fmt(value: float, digits: int = 4) -> str:
    return f"{value:.{digits}f}"


def write_records_csv(records: Sequence[MapRecord], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(RECORD_HEADER)
        for r in records:
            writer.writerow(
                [
                    r.file_name,
                    r.method,
                    _fmt(r.entropy),
                    _fmt(r.fractal_dim),
                    _fmt(r.land_ratio),
                    r.unique_adjacency_pairs,
                    _fmt(r.autocorr_lag1),
                    _fmt(r.low_freq_energy_ratio),
                    _fmt(r.generation_time_ms, 1),
                ]
            )
    logger.info("Individual metrics exported to %s", path)
    return path


def write_averages_csv(averages: Sequence[MethodAverage], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(AVERAGE_HEADER)
        for a in averages:
            writer.writerow(
                [
                    a.method,
                    _fmt(a.entropy),
                    _fmt(a.fractal_dim),
                    _fmt(a.land_ratio),
                    _fmt(a.unique_adjacency_pairs, 2),
                    _fmt(a.autocorr_lag1),
                    _fmt(a.low_freq_energy_ratio),
                    _fmt(a.generation_time_ms, 1),
                    a.sample_count,
                ]
            )
    logger.info("Method averages exported to %s", path)
    return path


def run_analysis(
    output_dir: Path,
    methods: Sequence[str] = config.BATCH_METHODS,
    records_csv: Path = config.ANALYSIS_RECORDS_CSV,
    averages_csv: Path = config.ANALYSIS_AVERAGES_CSV,
) -> list[MethodAverage]:
    """Summarize a batch run into the two CSV files.

    Returns:
        The per-method averages, or an empty list (and no files) when no
        result document was found.
    """
    records = load_records(output_dir, methods)
    if not records:
        logger.warning("No result documents under %s; nothing to analyze", output_dir)
        return []

    write_records_csv(records, records_csv)
    averages = method_averages(records, methods)
    for a in averages:
        logger.info(
            "%s (%d samples): entropy %.4f, fractal dim %.4f, land ratio %.4f, "
            "adjacency pairs %.2f, lag-1 autocorr %.4f, low-freq energy %.4f",
            a.method,
            a.sample_count,
            a.entropy,
            a.fractal_dim,
            a.land_ratio,
            a.unique_adjacency_pairs,
            a.autocorr_lag1,
            a.low_freq_energy_ratio,
        )
    write_averages_csv(averages, averages_csv)
    return averages
