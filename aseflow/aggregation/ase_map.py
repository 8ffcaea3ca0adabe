# File: aseflow/aggregation/ase_map.py
# Location: aseflow/aseflow/aggregation/ase_map.py

"""
Genome-wide allele-specific expression map.

Reads every case's annotated selected variants, keeps the germline ASE
candidates, and accumulates tumor and normal ASE per one-megabase region.
Cases are processed by a fixed pool of worker threads. Each worker pulls
case ids from a shared list under a queue lock, accumulates into its own
maps, and merges them into the shared result once, under a second lock,
when the list is empty.

Annotated selected variants are tab-delimited with at least the columns
``contig``, ``locus``, ``somatic``, ``tumor_ase`` and ``normal_ase``. An
empty ASE value means the variant is not an ASE candidate in that tissue.
A trailing ``**done**`` line is allowed.
"""

import argparse
import logging
import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..file_types import DerivedFileType, chromosome_index, normalize_chromosome

logger = logging.getLogger(__name__)

REGION_SIZE = 1_000_000
MIN_CASES_TO_WRITE = 100
CHROMOSOME_SPAN = 300_000_000
DONE_MARKER = "**done**"

MAP_COLUMNS = ["Chromosome", "locus", "tumor", "n cases", "index", "mean", "standard deviation"]
DIFFERENCE_COLUMNS = ["Chromosome", "locus", "normal ASE", "tumor ASE", "difference"]
REQUIRED_VARIANT_COLUMNS = ["contig", "locus", "somatic", "tumor_ase", "normal_ase"]
TRUE_VALUES = {"true", "1", "yes", "t"}


@dataclass
class MapEntry:
    """Running totals for one region."""

    n_cases: int = 0
    total_ase: float = 0.0
    total_ase_squared: float = 0.0

    def add(self, ase: float) -> None:
        self.n_cases += 1
        self.total_ase += ase
        self.total_ase_squared += ase * ase

    def merge(self, other: "MapEntry") -> None:
        self.n_cases += other.n_cases
        self.total_ase += other.total_ase
        self.total_ase_squared += other.total_ase_squared

    @property
    def mean(self) -> float:
        return self.total_ase / self.n_cases

    @property
    def standard_deviation(self) -> float:
        n = self.n_cases
        variance_term = max(n * self.total_ase_squared - self.total_ase * self.total_ase, 0.0)
        return float(np.sqrt(variance_term)) / n


class AseMap:
    """Chromosome -> region base -> MapEntry.

    Not thread safe; each worker owns one and merges it into the shared map.
    """

    def __init__(self, region_size: int = REGION_SIZE):
        self.region_size = region_size
        self.map: Dict[str, Dict[int, MapEntry]] = {}

    def region_base(self, locus: int) -> int:
        return locus - locus % self.region_size

    def add_ase(self, chromosome: str, locus: int, ase: float) -> None:
        regions = self.map.setdefault(chromosome, {})
        base = self.region_base(locus)
        entry = regions.get(base)
        if entry is None:
            entry = regions[base] = MapEntry()
        entry.add(ase)

    def merge(self, other: "AseMap") -> None:
        for chromosome, regions in other.map.items():
            mine = self.map.setdefault(chromosome, {})
            for base, entry in regions.items():
                if base in mine:
                    mine[base].merge(entry)
                else:
                    mine[base] = MapEntry(entry.n_cases, entry.total_ase, entry.total_ase_squared)

    def get(self, chromosome: str, base: int) -> Optional[MapEntry]:
        return self.map.get(chromosome, {}).get(base)

    def entries(self) -> Iterator[Tuple[str, int, MapEntry]]:
        """Yield (chromosome, region base, entry) in genome order."""
        for chromosome in sorted(self.map, key=chromosome_index):
            for base in sorted(self.map[chromosome]):
                yield chromosome, base, self.map[chromosome][base]

    def __len__(self) -> int:
        return sum(len(regions) for regions in self.map.values())

    def to_frame(self, tumor: bool, min_cases: int = MIN_CASES_TO_WRITE) -> pd.DataFrame:
        """Rows of the map file for regions with at least ``min_cases`` measurements."""
        rows = []
        for chromosome, base, entry in self.entries():
            if entry.n_cases < min_cases:
                continue
            index = ((chromosome_index(chromosome) - 1) * CHROMOSOME_SPAN + base) // self.region_size
            rows.append(
                [chromosome, base, tumor, entry.n_cases, index, entry.mean, entry.standard_deviation]
            )
        return pd.DataFrame(rows, columns=MAP_COLUMNS)


@dataclass
class AseMapResult:
    """Outcome of ``build_ase_map``."""

    tumor: AseMap
    normal: AseMap
    cases_processed: int = 0
    failed_cases: List[str] = field(default_factory=list)


def read_annotated_variants(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read one case's annotated selected variants.

    Parameters
    ----------
    path : str or Path
        Annotated selected variants file

    Returns
    -------
    pd.DataFrame
        Columns ``contig`` (canonical name), ``locus`` (int), ``somatic`` (bool),
        ``tumor_ase`` and ``normal_ase`` (float, NaN when not a candidate)

    Raises
    ------
    ValueError
        If required columns are missing
    """
    df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)
    missing = [c for c in REQUIRED_VARIANT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path} lacks column(s) {', '.join(missing)}")

    df = df[df["contig"] != DONE_MARKER]
    out = pd.DataFrame(
        {
            "contig": df["contig"].map(normalize_chromosome),
            "locus": pd.to_numeric(df["locus"], errors="coerce"),
            "somatic": df["somatic"].str.strip().str.lower().isin(TRUE_VALUES),
            "tumor_ase": pd.to_numeric(df["tumor_ase"], errors="coerce"),
            "normal_ase": pd.to_numeric(df["normal_ase"], errors="coerce"),
        }
    )
    out = out.dropna(subset=["contig", "locus"])
    out["locus"] = out["locus"].astype(np.int64)
    return out.reset_index(drop=True)


class _WorkerState:
    """Thread-local accumulators of one worker."""

    def __init__(self, region_size: int):
        self.tumor = AseMap(region_size)
        self.normal = AseMap(region_size)
        self.cases_processed = 0
        self.failed_cases: List[str] = []

    def add_case(self, variants: pd.DataFrame) -> None:
        germline = variants[~variants["somatic"]]
        for row in germline.itertuples(index=False):
            if not np.isnan(row.normal_ase):
                self.normal.add_ase(row.contig, int(row.locus), float(row.normal_ase))
            if not np.isnan(row.tumor_ase):
                self.tumor.add_ase(row.contig, int(row.locus), float(row.tumor_ase))
        self.cases_processed += 1


def build_ase_map(
    case_files: Mapping[str, Union[str, Path]],
    n_workers: Optional[int] = None,
    region_size: int = REGION_SIZE,
) -> AseMapResult:
    """
    Accumulate the tumor and normal ASE maps over all cases.

    Parameters
    ----------
    case_files : mapping
        Case id to annotated selected variants file.
    n_workers : int, optional
        Number of worker threads (default: CPU count).
    region_size : int
        Region width in bases.

    Returns
    -------
    AseMapResult
        Merged maps, the number of cases read and the ids of unreadable cases.
    """
    n_workers = max(1, n_workers or os.cpu_count() or 1)
    pending = list(case_files.items())
    pending.reverse()
    queue_lock = threading.Lock()
    merge_lock = threading.Lock()
    result = AseMapResult(tumor=AseMap(region_size), normal=AseMap(region_size))

    def worker() -> None:
        state = _WorkerState(region_size)
        while True:
            with queue_lock:
                if not pending:
                    break
                case_id, path = pending.pop()
            try:
                variants = read_annotated_variants(path)
            except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
                logger.warning(f"Unable to read annotated selected variants of case {case_id}: {e}")
                state.failed_cases.append(case_id)
                continue
            state.add_case(variants)

        with merge_lock:
            result.tumor.merge(state.tumor)
            result.normal.merge(state.normal)
            result.cases_processed += state.cases_processed
            result.failed_cases.extend(state.failed_cases)

    logger.info(f"Processing {len(pending)} cases with {n_workers} workers")
    with ThreadPoolExecutor(max_workers=n_workers) as pool:
        futures = [pool.submit(worker) for _ in range(n_workers)]
        for future in futures:
            future.result()

    result.failed_cases.sort()
    return result


def write_ase_map(
    tumor: AseMap, normal: AseMap, path: Union[str, Path], min_cases: int = MIN_CASES_TO_WRITE
) -> Path:
    """Write the tumor then the normal map, followed by the done marker."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = pd.concat(
        [tumor.to_frame(True, min_cases), normal.to_frame(False, min_cases)], ignore_index=True
    )
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write("\t".join(MAP_COLUMNS) + "\n")
        if not frame.empty:
            frame.to_csv(f, sep="\t", header=False, index=False, lineterminator="\n")
        f.write(DONE_MARKER + "\n")
    logger.info(f"Wrote {len(frame)} regions to {path}")
    return path


def write_difference_map(tumor: AseMap, normal: AseMap, path: Union[str, Path]) -> Path:
    """Write tumor minus normal mean ASE for every region present in both maps."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = []
    for chromosome, base, normal_entry in normal.entries():
        tumor_entry = tumor.get(chromosome, base)
        if tumor_entry is None:
            continue
        rows.append(
            [chromosome, base, normal_entry.mean, tumor_entry.mean, tumor_entry.mean - normal_entry.mean]
        )
    frame = pd.DataFrame(rows, columns=DIFFERENCE_COLUMNS)
    with open(path, "w", encoding="utf-8", newline="") as f:
        frame.to_csv(f, sep="\t", index=False, lineterminator="\n")
        f.write(DONE_MARKER + "\n")
    logger.info(f"Wrote {len(frame)} regions to {path}")
    return path


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="aseflow-asemap: build the genome-wide ASE map from annotated selected variants."
    )
    parser.add_argument(
        "-c",
        "--config",
        "-configuration",
        dest="config",
        help="Path to a JSON configuration file.",
    )
    parser.add_argument("--threads", type=int, default=None, help="Worker threads (default: CPU count)")
    parser.add_argument(
        "--min-cases",
        type=int,
        default=MIN_CASES_TO_WRITE,
        help="Skip regions with fewer measurements than this",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    return parser


def main(args_list: Optional[List[str]] = None) -> int:
    """Entry point of ``aseflow-asemap``."""
    from ..cli import LOG_LEVEL_MAP
    from ..config import SchedulerConfig, load_config
    from ..pipeline_core.world import WorldSnapshot
    from ..stages.catalog import ASE_DIFFERENCE_MAP, ASE_MAP

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    args = create_parser().parse_args(args_list)
    logging.getLogger("aseflow").setLevel(LOG_LEVEL_MAP[args.log_level])
    start = time.time()

    try:
        config = SchedulerConfig.from_dict(load_config(args.config), configuration_file=args.config)
    except (FileNotFoundError, ValueError, TypeError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    world = WorldSnapshot.build(config)
    if not world.has_cases:
        logger.error("No cases loaded; nothing to map")
        return 1

    case_files = {}
    for case in world.list_cases():
        artifact = world.case_artifact(case, DerivedFileType.ANNOTATED_SELECTED_VARIANTS)
        if artifact.is_present:
            case_files[case.case_id] = artifact.path
    skipped = len(world.cases) - len(case_files)
    if skipped:
        logger.warning(f"{skipped} cases have no annotated selected variants and are left out")

    result = build_ase_map(case_files, n_workers=args.threads)
    write_ase_map(result.tumor, result.normal, config.final_result(ASE_MAP), args.min_cases)
    write_difference_map(result.tumor, result.normal, config.final_result(ASE_DIFFERENCE_MAP))

    logger.info(
        f"Mapped {result.cases_processed} cases ({len(result.failed_cases)} unreadable) "
        f"in {time.time() - start:.1f}s"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
