"""
World snapshot: the state of the file system at the start of a run.

The snapshot is built once, before any stage is evaluated, and is read-only
afterwards. Stages ask it where a file for an entity is and receive an
``Artifact`` in one of three states. Nothing here raises for inconsistent
data on disk; every inconsistency is logged as a warning and the affected
item is left out.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..config import SchedulerConfig
from ..file_types import CHROMOSOMES, DerivedFileType, Source, normalize_chromosome
from ..manifest import Case, SourceFile, read_cases
from ..scanner import Inventory, scan_data_directories
from .artifacts import Artifact, ArtifactState, DownloadableArtifact
from .error_handling import ManifestError

logger = logging.getLogger(__name__)

EXPRESSION_PREFIX = "expression_"
EXPRESSION_DISTRIBUTION_PREFIX = "expression_distribution_"


class EntityKind(Enum):
    """The kinds of unit a stage can iterate over."""

    CASE = "case"
    DISEASE = "disease"
    CHROMOSOME = "chromosome"
    CHROMOSOME_DISEASE = "chromosome_disease"


def format_bytes(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    size = float(n)
    for unit in ("KB", "MB", "GB", "TB"):
        size /= 1024
        if size < 1024 or unit == "TB":
            break
    return f"{size:.1f} {unit}"


class WorldSnapshot:
    """
    Immutable view of cases, downloaded files, derived files and auxiliary indices.

    Parameters
    ----------
    config : SchedulerConfig
        Run configuration; locations are resolved against it.
    cases : dict
        Case id to Case, in manifest order. Empty when no manifest was usable.
    inventory : Inventory
        Downloaded and derived files found on disk.
    cases_loaded : bool
        Whether a manifest was successfully parsed.
    """

    def __init__(
        self,
        config: SchedulerConfig,
        cases: Dict[str, Case],
        inventory: Inventory,
        cases_loaded: bool = True,
    ):
        self.config = config
        self.cases = dict(cases)
        self.inventory = inventory
        self.cases_loaded = cases_loaded

        self.cases_by_disease: Dict[str, List[Case]] = {}
        for case in self.cases.values():
            self.cases_by_disease.setdefault(case.disease, []).append(case)
        self.diseases: List[str] = sorted(self.cases_by_disease)
        self.source_files: Dict[str, SourceFile] = {
            source_file.file_id: source_file
            for case in self.cases.values()
            for source_file in case.files.values()
        }

        self._warn_about_unknown_cases()
        self.expression_files = self._index_expression_files()
        self.expression_distribution = self._index_expression_distribution()
        self._one_off_cache: Dict[Path, Artifact] = {}
        self._common_data_ready = self._evaluate_common_data()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, config: SchedulerConfig) -> "WorldSnapshot":
        """Scan the configured directories and parse the manifest."""
        inventory = scan_data_directories(
            config.data_directories,
            config.downloaded_files_directory,
            config.derived_files_directory,
        )
        try:
            cases = read_cases(config.cases_file)
            cases_loaded = True
        except ManifestError as e:
            logger.warning(f"{e}; continuing with no cases")
            cases = {}
            cases_loaded = False

        world = cls(config, cases, inventory, cases_loaded)
        world.log_inventory_summary()
        return world

    def _warn_about_unknown_cases(self) -> None:
        if not self.cases_loaded:
            return
        for case_id in self.inventory.derived_case_ids:
            if case_id not in self.cases:
                logger.warning(
                    f"Derived files directory for unknown case {case_id}; its files are ignored"
                )

    def _index_expression_files(self) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        directory = self.config.expression_files_directory
        if not directory.is_dir():
            return index
        for entry in sorted(directory.iterdir()):
            name = entry.name
            if not entry.is_file() or not name.startswith(EXPRESSION_PREFIX):
                continue
            if name.startswith(EXPRESSION_DISTRIBUTION_PREFIX):
                continue
            disease = name[len(EXPRESSION_PREFIX):].lower()
            if disease not in self.cases_by_disease:
                logger.warning(f"Expression file {entry} names unknown disease '{disease}'")
                continue
            if disease in index:
                logger.warning(f"Duplicate expression file for {disease}: {entry} and {index[disease]}")
                continue
            index[disease] = entry
        return index

    def _index_expression_distribution(self) -> Dict[str, Dict[str, Path]]:
        index: Dict[str, Dict[str, Path]] = {}
        directory = self.config.expression_distribution_directory
        if not directory.is_dir():
            return index
        for entry in sorted(directory.iterdir()):
            name = entry.name
            if not entry.is_file() or not name.startswith(EXPRESSION_DISTRIBUTION_PREFIX):
                continue
            fields = name[len(EXPRESSION_DISTRIBUTION_PREFIX):].split("_")
            if len(fields) != 2:
                logger.warning(f"Malformed expression distribution file name {entry}")
                continue
            chromosome = normalize_chromosome(fields[0])
            disease = fields[1].lower()
            if chromosome is None:
                logger.warning(f"Expression distribution file {entry} names unknown chromosome")
                continue
            if disease not in self.cases_by_disease:
                logger.warning(
                    f"Expression distribution file {entry} names unknown disease '{disease}'"
                )
                continue
            per_disease = index.setdefault(disease, {})
            if chromosome in per_disease:
                logger.warning(
                    f"Duplicate expression distribution file {entry} "
                    f"(already have {per_disease[chromosome]})"
                )
                continue
            per_disease[chromosome] = entry
        return index

    def _evaluate_common_data(self) -> bool:
        if not self.cases_loaded:
            return False
        return all(self.one_off(self.config.final_result(name)).is_present
                   for name in self.config.common_data_files)

    def log_inventory_summary(self) -> None:
        """Log counts and sizes of the downloaded files, grouped by source."""
        counts = {source: 0 for source in Source}
        sizes = {source: 0 for source in Source}
        for case in self.cases.values():
            for source, source_file in case.files.items():
                found = self.inventory.downloaded.get(source_file.file_id)
                if found is not None and not found.partial:
                    counts[source] += 1
                    sizes[source] += found.size
        summary = ", ".join(
            f"{counts[s]} {s.label} ({format_bytes(sizes[s])})" for s in Source
        )
        logger.info(
            f"{len(self.cases)} cases in {len(self.diseases)} diseases; downloaded: {summary}; "
            f"{len(self.inventory.derived)} derived files"
        )

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    @property
    def has_cases(self) -> bool:
        return bool(self.cases)

    def list_cases(self) -> List[Case]:
        return list(self.cases.values())

    def cases_for_disease(self, disease: str) -> List[Case]:
        return list(self.cases_by_disease.get(disease, []))

    def all_entities(self, kind: EntityKind) -> list:
        """Return every entity of a kind in a stable order."""
        if kind is EntityKind.CASE:
            return self.list_cases()
        if kind is EntityKind.DISEASE:
            return list(self.diseases)
        if kind is EntityKind.CHROMOSOME:
            return list(CHROMOSOMES)
        if kind is EntityKind.CHROMOSOME_DISEASE:
            return [(c, d) for c in CHROMOSOMES for d in self.diseases]
        raise ValueError(f"Unknown entity kind: {kind}")

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    def common_data_ready(self) -> bool:
        return self._common_data_ready

    def common_data_artifacts(self) -> List[Artifact]:
        return [self.one_off(self.config.final_result(name)) for name in self.config.common_data_files]

    def one_off(self, path: Union[str, Path]) -> Artifact:
        """Return a global file as an artifact; the result is cached for the run."""
        path = Path(path)
        if path not in self._one_off_cache:
            self._one_off_cache[path] = Artifact.from_path(path)
        return self._one_off_cache[path]

    def expected_derived_path(self, case: Case, file_type: DerivedFileType) -> Optional[Path]:
        """Where a derived file would be written: next to the case's downloaded data if any."""
        if not self.config.data_directories:
            return None
        data_dir = self.config.data_directories[0]
        for source_file in case.files.values():
            found = self.inventory.downloaded.get(source_file.file_id)
            if found is not None:
                data_dir = found.data_directory
                break
        return (
            data_dir
            / self.config.derived_files_directory
            / case.case_id
            / file_type.filename(case.file_id(file_type.source))
        )

    def case_artifact(self, case: Case, file_type: DerivedFileType) -> Artifact:
        """Locate a derived file of a case."""
        if not case.has_source(file_type.source):
            return Artifact.not_applicable()
        key = (case.case_id, case.file_id(file_type.source), file_type)
        found = self.inventory.derived.get(key)
        if found is not None:
            return Artifact.present(found.path, found.mtime, found.size)
        return Artifact.absent(self.expected_derived_path(case, file_type))

    def downloadable(self, case: Case, source: Source) -> DownloadableArtifact:
        """Locate the downloaded data file of one of a case's sources."""
        source_file = case.source_file(source)
        if source_file is None:
            return DownloadableArtifact(ArtifactState.NOT_APPLICABLE)

        found = self.inventory.downloaded.get(source_file.file_id)
        if found is None or found.partial:
            return DownloadableArtifact(
                ArtifactState.ABSENT,
                file_id=source_file.file_id,
                expected_md5=source_file.md5,
                on_disk=found is not None,
            )

        verified = self.file_downloaded_and_verified(source_file.file_id, source_file.md5)
        state = ArtifactState.PRESENT if verified else ArtifactState.ABSENT
        return DownloadableArtifact(
            state,
            found.path,
            found.mtime,
            found.size,
            file_id=source_file.file_id,
            expected_md5=source_file.md5,
            on_disk=True,
        )

    def file_downloaded_and_verified(self, file_id: str, expected_md5: str = "") -> bool:
        found = self.inventory.downloaded.get(file_id)
        if found is None or found.partial:
            return False
        return expected_md5 == "" or found.stored_md5 == expected_md5.lower()

    def has_artifact(self, entity, kind) -> ArtifactState:
        """Generic lookup: a case paired with a DerivedFileType or a Source."""
        if isinstance(kind, DerivedFileType):
            return self.case_artifact(entity, kind).state
        if isinstance(kind, Source):
            return self.downloadable(entity, kind).state
        raise TypeError(f"Cannot look up artifacts of kind {kind!r}")

    def expression_file(self, disease: str) -> Artifact:
        path = self.expression_files.get(disease)
        if path is None:
            return Artifact.absent(self.config.expression_files_directory / f"{EXPRESSION_PREFIX}{disease}")
        return self.one_off(path)

    def expression_distribution_file(self, chromosome: str, disease: str) -> Artifact:
        path = self.expression_distribution.get(disease, {}).get(chromosome)
        if path is None:
            expected = (
                self.config.expression_distribution_directory
                / f"{EXPRESSION_DISTRIBUTION_PREFIX}{chromosome}_{disease}"
            )
            return Artifact.absent(expected)
        return self.one_off(path)

    def download_size(self, file_id: str) -> int:
        """Size of a remote file as recorded in the manifest, 0 if unknown."""
        source_file = self.source_files.get(file_id)
        return source_file.size if source_file is not None else 0

    def __repr__(self) -> str:
        return (
            f"WorldSnapshot(cases={len(self.cases)}, diseases={len(self.diseases)}, "
            f"downloaded={len(self.inventory.downloaded)}, derived={len(self.inventory.derived)})"
        )
