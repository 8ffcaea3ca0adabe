"""
Cases manifest reader.

This module parses the tab-delimited cases file that lists, for every case,
its project and the remote file ids, md5s and sizes of its four sequencing
sources. Columns are resolved by header name, so column order is irrelevant.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from .file_types import Source
from .pipeline_core.error_handling import ManifestError

logger = logging.getLogger(__name__)

REQUIRED_SOURCES = (Source.TUMOR_DNA, Source.NORMAL_DNA, Source.TUMOR_RNA)
OPTIONAL_SOURCES = (Source.NORMAL_RNA,)


def _source_columns(source: Source) -> tuple:
    return (f"{source.value}_file_id", f"{source.value}_md5", f"{source.value}_size")


REQUIRED_COLUMNS = ["case_id", "project_id"] + [
    column for source in Source for column in _source_columns(source)
]


@dataclass(frozen=True)
class SourceFile:
    """A remote file belonging to a case."""

    file_id: str
    md5: str = ""
    size: int = 0


@dataclass
class Case:
    """One tumor/normal case from the manifest."""

    case_id: str
    project_id: str
    files: Dict[Source, SourceFile] = field(default_factory=dict)

    @property
    def disease(self) -> str:
        """Disease label derived from the project id, e.g. ``TCGA-BRCA`` -> ``brca``."""
        return self.project_id.rsplit("-", 1)[-1].lower()

    def has_source(self, source: Source) -> bool:
        return source in self.files

    def source_file(self, source: Source) -> Optional[SourceFile]:
        return self.files.get(source)

    def file_id(self, source: Source) -> str:
        """Return the remote file id for a source, or an empty string if the case has none."""
        source_file = self.files.get(source)
        return source_file.file_id if source_file else ""


def _parse_size(value: str, case_id: str, column: str) -> int:
    if value == "":
        return 0
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Case {case_id}: non-numeric {column} '{value}', treating as 0")
        return 0


def read_cases(file_path: Union[str, Path]) -> Dict[str, Case]:
    """
    Parses a cases manifest into a dictionary keyed by case id.

    Rows with an empty case id or lacking one of the required sources are
    skipped with a warning. A repeated case id is reported and the first
    occurrence wins. The returned dictionary preserves manifest order.

    Args:
        file_path: Path to the cases manifest

    Returns:
        Dictionary mapping case ids to Case objects

    Raises:
        ManifestError: If the file is missing, empty, or lacks required columns
    """
    path = Path(file_path)
    if not path.is_file():
        raise ManifestError(path, "file not found")

    try:
        df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        raise ManifestError(path, "file is empty")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise ManifestError(path, f"cannot be parsed ({e})")

    df.columns = [str(c).strip() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ManifestError(path, f"missing column(s) {', '.join(missing)}")

    cases: Dict[str, Case] = {}
    for row in df.to_dict("records"):
        case_id = row["case_id"].strip()
        if case_id == "":
            logger.warning(f"Skipping row with empty case id in {path}")
            continue

        if case_id in cases:
            logger.warning(f"Duplicate case id {case_id} in {path}; keeping the first occurrence")
            continue

        files = {}
        for source in Source:
            id_column, md5_column, size_column = _source_columns(source)
            file_id = row[id_column].strip()
            if file_id == "":
                continue
            files[source] = SourceFile(
                file_id=file_id,
                md5=row[md5_column].strip().lower(),
                size=_parse_size(row[size_column].strip(), case_id, size_column),
            )

        missing_sources = [s.label for s in REQUIRED_SOURCES if s not in files]
        if missing_sources:
            logger.warning(
                f"Skipping case {case_id}: no file id for {', '.join(missing_sources)}"
            )
            continue

        cases[case_id] = Case(case_id=case_id, project_id=row["project_id"].strip(), files=files)

    logger.info(f"Successfully parsed cases manifest with {len(cases)} cases")
    return cases
