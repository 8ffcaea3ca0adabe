"""
File-system inventory scanner.

Walks every configured data directory and records what has been downloaded
and what has been derived. Nothing is interpreted here beyond file naming;
the world snapshot decides what the inventory means for each case.

Layout::

    <data_dir>/<downloaded_files>/<file_id>/<name>          downloaded bytes
    <data_dir>/<downloaded_files>/<file_id>/<name>.md5      optional checksum
    <data_dir>/<downloaded_files>/<file_id>/<name>.partial  incomplete download
    <data_dir>/<derived_files>/<case_id>/<file_id><ext>     derived file
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .file_types import DerivedFileType

logger = logging.getLogger(__name__)

MD5_SUFFIX = ".md5"
PARTIAL_SUFFIX = ".partial"
# Side files the download client leaves next to the data
IGNORED_SUFFIXES = (".bai", ".log")


@dataclass
class DownloadedFile:
    """A remote file found on local disk."""

    file_id: str
    data_directory: Path
    path: Path
    size: int
    mtime: float
    partial: bool = False
    stored_md5: str = ""
    md5_path: Optional[Path] = None
    md5_mtime: Optional[float] = None


@dataclass
class DerivedFile:
    """A file derived from one of a case's downloaded files."""

    case_id: str
    source_file_id: str
    file_type: DerivedFileType
    data_directory: Path
    path: Path
    size: int
    mtime: float


@dataclass
class Inventory:
    """Everything the scanner found."""

    downloaded: Dict[str, DownloadedFile] = field(default_factory=dict)
    derived: Dict[Tuple[str, str, DerivedFileType], DerivedFile] = field(default_factory=dict)
    derived_case_ids: List[str] = field(default_factory=list)


def _read_md5(path: Path) -> str:
    try:
        content = path.read_text(encoding="ascii", errors="replace").split()
    except OSError as e:
        logger.warning(f"Could not read md5 file {path}: {e}")
        return ""
    return content[0].lower() if content else ""


def _scan_download_directory(file_id: str, directory: Path, data_dir: Path) -> Optional[DownloadedFile]:
    candidates = []
    md5_files = {}
    for entry in sorted(directory.iterdir()):
        if not entry.is_file():
            continue
        if entry.name.endswith(MD5_SUFFIX):
            md5_files[entry.name[: -len(MD5_SUFFIX)]] = entry
        elif not entry.name.lower().endswith(IGNORED_SUFFIXES):
            candidates.append(entry)

    if not candidates:
        logger.debug(f"Download directory {directory} holds no data file")
        return None
    if len(candidates) > 1:
        logger.warning(
            f"Download directory {directory} holds {len(candidates)} data files; "
            f"using {candidates[0].name}"
        )

    data_file = candidates[0]
    stat = data_file.stat()
    downloaded = DownloadedFile(
        file_id=file_id,
        data_directory=data_dir,
        path=data_file,
        size=stat.st_size,
        mtime=stat.st_mtime,
        partial=data_file.name.endswith(PARTIAL_SUFFIX),
    )

    md5_file = md5_files.get(data_file.name)
    if md5_file is not None:
        downloaded.stored_md5 = _read_md5(md5_file)
        downloaded.md5_path = md5_file
        downloaded.md5_mtime = md5_file.stat().st_mtime
    return downloaded


def scan_data_directories(
    data_directories: Sequence[Path],
    downloaded_files_directory: str = "downloaded_files",
    derived_files_directory: str = "derived_files",
) -> Inventory:
    """
    Build the inventory of downloaded and derived files.

    Missing data directories are reported and skipped. When the same
    downloaded file or the same derived artifact appears twice, the first one
    found (in data directory order) wins and the other is reported.

    Parameters
    ----------
    data_directories : sequence of Path
        Roots to scan, in priority order.
    downloaded_files_directory : str
        Name of the downloaded-files directory under each root.
    derived_files_directory : str
        Name of the derived-files directory under each root.

    Returns
    -------
    Inventory
        The downloaded and derived files found.
    """
    inventory = Inventory()
    seen_case_dirs = set()

    for data_dir in data_directories:
        data_dir = Path(data_dir)
        if not data_dir.is_dir():
            logger.warning(f"Data directory {data_dir} does not exist; skipping it")
            continue

        downloaded_root = data_dir / downloaded_files_directory
        if downloaded_root.is_dir():
            for entry in sorted(downloaded_root.iterdir()):
                if not entry.is_dir():
                    continue
                found = _scan_download_directory(entry.name, entry, data_dir)
                if found is None:
                    continue
                if found.file_id in inventory.downloaded:
                    logger.warning(
                        f"File {found.file_id} downloaded twice: {found.path} and "
                        f"{inventory.downloaded[found.file_id].path}; ignoring {found.path}"
                    )
                    continue
                inventory.downloaded[found.file_id] = found

        derived_root = data_dir / derived_files_directory
        if not derived_root.is_dir():
            continue
        for case_dir in sorted(derived_root.iterdir()):
            if not case_dir.is_dir():
                continue
            case_id = case_dir.name
            if case_id not in seen_case_dirs:
                seen_case_dirs.add(case_id)
                inventory.derived_case_ids.append(case_id)
            for entry in sorted(case_dir.iterdir()):
                if not entry.is_file():
                    continue
                match = DerivedFileType.match(entry.name)
                if match is None:
                    logger.debug(f"Ignoring unrecognised derived file {entry}")
                    continue
                file_type, source_file_id = match
                key = (case_id, source_file_id, file_type)
                if key in inventory.derived:
                    logger.warning(
                        f"Duplicate derived file {entry} (already have "
                        f"{inventory.derived[key].path}); using the first one"
                    )
                    continue
                stat = entry.stat()
                inventory.derived[key] = DerivedFile(
                    case_id=case_id,
                    source_file_id=source_file_id,
                    file_type=file_type,
                    data_directory=data_dir,
                    path=entry,
                    size=stat.st_size,
                    mtime=stat.st_mtime,
                )

    logger.debug(
        f"Scanned {len(data_directories)} data directories: "
        f"{len(inventory.downloaded)} downloaded, {len(inventory.derived)} derived files"
    )
    return inventory


def file_age_days(path: Path, now: float) -> float:
    """Age of a file in days relative to ``now`` (seconds since the epoch)."""
    return (now - os.stat(path).st_mtime) / 86400.0
