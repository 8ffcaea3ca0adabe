"""
Artifact records returned by the world snapshot.

An artifact is the answer to "where is this file for this entity?" and has
exactly three states: it exists (``PRESENT``), it is expected but not yet
produced (``ABSENT``), or it will never exist for this entity
(``NOT_APPLICABLE``).
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class ArtifactState(Enum):
    """Three-state result of an artifact lookup."""

    PRESENT = "present"
    ABSENT = "absent"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class Artifact:
    """Information about one expected file.

    ``path`` is always set for ``PRESENT`` artifacts and may be set for
    ``ABSENT`` ones when the expected location is known.
    """

    state: ArtifactState
    path: Optional[Path] = None
    mtime: Optional[float] = None
    size: int = 0

    @classmethod
    def present(
        cls, path: Union[str, Path], mtime: Optional[float] = None, size: Optional[int] = None
    ) -> "Artifact":
        """Create a present artifact, taking missing metadata from the file itself."""
        path = Path(path)
        if mtime is None or size is None:
            stat = os.stat(path)
            mtime = stat.st_mtime if mtime is None else mtime
            size = stat.st_size if size is None else size
        return cls(ArtifactState.PRESENT, path, mtime, size)

    @classmethod
    def absent(cls, expected_path: Optional[Union[str, Path]] = None) -> "Artifact":
        """Create an artifact that is expected but not yet produced."""
        return cls(ArtifactState.ABSENT, Path(expected_path) if expected_path else None)

    @classmethod
    def not_applicable(cls) -> "Artifact":
        """Create an artifact that will never exist for its entity."""
        return cls(ArtifactState.NOT_APPLICABLE)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Artifact":
        """Stat a path and return a present or absent artifact."""
        path = Path(path)
        if path.is_file():
            return cls.present(path)
        return cls.absent(path)

    @property
    def is_present(self) -> bool:
        return self.state is ArtifactState.PRESENT

    @property
    def is_absent(self) -> bool:
        return self.state is ArtifactState.ABSENT

    @property
    def is_not_applicable(self) -> bool:
        return self.state is ArtifactState.NOT_APPLICABLE


@dataclass(frozen=True)
class DownloadableArtifact(Artifact):
    """An artifact fetched from the remote repository rather than produced locally.

    The artifact is ``PRESENT`` only when the bytes are on disk and verified
    against ``expected_md5`` (when one is known). ``on_disk`` distinguishes an
    unverified file from one that still has to be downloaded.
    """

    file_id: str = ""
    expected_md5: str = ""
    on_disk: bool = False

    @property
    def needs_download(self) -> bool:
        """True when the file must be queued for download."""
        return self.state is ArtifactState.ABSENT and not self.on_disk

    @property
    def awaiting_verification(self) -> bool:
        """True when the bytes are on disk but not yet verified."""
        return self.state is ArtifactState.ABSENT and self.on_disk

