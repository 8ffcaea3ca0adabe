"""
Stages that do not fit the four shapes: downloading and md5 verification.

Both operate on the remote source files of every case rather than on
derived files, so they are written by hand against the Stage interface.
"""

import logging
import time
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..file_types import Source
from ..pipeline_core.artifacts import Artifact
from ..pipeline_core.batcher import CLUSTER, LOCAL, emit_single
from ..pipeline_core.freshness import FreshnessViolation, compare
from ..pipeline_core.stage import Stage, StageOutcome
from ..scanner import file_age_days

if TYPE_CHECKING:
    from ..pipeline_core.batcher import ScriptTargets
    from ..pipeline_core.world import WorldSnapshot

logger = logging.getLogger(__name__)

STALLED_DOWNLOAD_DAYS = 1.0


class DownloadStage(Stage):
    """Requests every source file of every case that is not on disk.

    Counts files: done when downloaded and verified, waiting when on disk but
    not yet verified. Writes no command lines; its requests go to the
    download script.
    """

    def __init__(self, sources: Sequence[Source] = tuple(Source)):
        super().__init__()
        self.sources = tuple(sources)

    @property
    def name(self) -> str:
        return "Download"

    def evaluate(self, world: "WorldSnapshot", targets: "ScriptTargets") -> StageOutcome:
        outcome = StageOutcome()
        for case in world.list_cases():
            for source in self.sources:
                artifact = world.downloadable(case, source)
                if artifact.is_not_applicable:
                    continue
                if artifact.is_present:
                    outcome.done += 1
                elif artifact.needs_download:
                    outcome.request_download(artifact.file_id)
                else:
                    outcome.waiting += 1
        return outcome


class MD5ComputationStage(Stage):
    """Writes a ``<file>.md5`` sidecar for every downloaded file that lacks one.

    A file is done once its sidecar exists; a sidecar whose content differs
    from the manifest is reported so the download can be removed and fetched
    again.
    """

    def __init__(
        self,
        binary: str = "ComputeMD5IntoFile",
        targets: Sequence[str] = (LOCAL, CLUSTER),
        sources: Sequence[Source] = tuple(Source),
    ):
        super().__init__()
        self.binary = binary
        self.targets = tuple(targets)
        self.sources = tuple(sources)

    @property
    def name(self) -> str:
        return "MD5 Computation"

    def evaluate(self, world: "WorldSnapshot", targets: "ScriptTargets") -> StageOutcome:
        outcome = StageOutcome()
        selected = targets.select(self.targets)
        now = time.time()
        seen = set()
        pending = []

        for case in world.list_cases():
            for source in self.sources:
                source_file = case.source_file(source)
                if source_file is None or source_file.md5 == "":
                    continue
                if source_file.file_id in seen:
                    continue
                seen.add(source_file.file_id)

                found = world.inventory.downloaded.get(source_file.file_id)
                if found is None:
                    outcome.waiting += 1
                    continue
                if found.partial:
                    if file_age_days(found.path, now) > STALLED_DOWNLOAD_DAYS:
                        logger.warning(
                            f"Partial download {found.path} is more than a day old; "
                            f"the download may have stalled"
                        )
                    outcome.waiting += 1
                    continue
                if found.md5_path is not None:
                    if found.stored_md5 != source_file.md5:
                        logger.warning(
                            f"MD5 mismatch for {found.path} (case {case.case_id}): "
                            f"computed {found.stored_md5 or '<empty>'}, expected "
                            f"{source_file.md5}; delete it to download it again"
                        )
                    outcome.done += 1
                    continue

                pending.append(f"{found.path} {found.path}.md5")

        # Nothing is written unless every file was classified
        for arguments in pending:
            emit_single(selected, self.binary, world.config.configuration_argument, arguments)
        outcome.added = len(pending)
        return outcome

    def find_freshness_violations(self, world: "WorldSnapshot") -> List[FreshnessViolation]:
        violations = []
        for found in world.inventory.downloaded.values():
            if found.md5_path is None or found.partial:
                continue
            output = Artifact.present(found.md5_path, found.md5_mtime, 0)
            data = Artifact.present(found.path, found.mtime, found.size)
            violation: Optional[FreshnessViolation] = compare(self.name, found.file_id, output, data)
            if violation is not None:
                violations.append(violation)
        return violations
