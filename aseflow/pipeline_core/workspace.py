"""
ScriptWorkspace - Centralized path management for generated scripts.

This module provides the ScriptWorkspace class that knows where every
generated script goes, removes stale scripts at the start of a run, builds
the script targets and writes the download script.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import SchedulerConfig
from .batcher import CLOUD, CLUSTER, LOCAL, SHELL_HEADER, UNIX, ScriptTarget, ScriptTargets
from .error_handling import validate_output_directory

logger = logging.getLogger(__name__)

WINDOWS_LINE_TERMINATOR = "\r\n"
UNIX_LINE_TERMINATOR = "\n"


class ScriptWorkspace:
    """Manages all script paths of a scheduler run.

    Attributes
    ----------
    config : SchedulerConfig
        Run configuration
    output_dir : Path
        Directory the scripts are written to
    """

    def __init__(self, config: SchedulerConfig):
        """Initialize the workspace.

        Parameters
        ----------
        config : SchedulerConfig
            Run configuration naming the script directory and file names
        """
        self.config = config
        self.output_dir = Path(config.script_output_directory)
        logger.debug(f"Script workspace initialized: output_dir={self.output_dir}")

    def _path(self, filename: str) -> Optional[Path]:
        if not filename:
            return None
        return self.output_dir / filename

    @property
    def local_script(self) -> Optional[Path]:
        return self._path(self.config.local_script_filename)

    @property
    def cluster_script(self) -> Optional[Path]:
        return self._path(self.config.cluster_script_filename)

    @property
    def unix_script(self) -> Optional[Path]:
        return self._path(self.config.unix_script_filename)

    @property
    def cloud_script(self) -> Optional[Path]:
        return self._path(self.config.cloud_script_filename)

    @property
    def download_script(self) -> Optional[Path]:
        return self._path(self.config.download_script_filename)

    def all_scripts(self) -> List[Path]:
        candidates = [
            self.local_script,
            self.cluster_script,
            self.unix_script,
            self.cloud_script,
            self.download_script,
        ]
        return [p for p in candidates if p is not None]

    def remove_stale_scripts(self) -> List[Path]:
        """Delete scripts left by a previous run so they cannot be run twice.

        Returns
        -------
        list of Path
            The scripts that were removed
        """
        removed = []
        for path in self.all_scripts():
            if path.exists():
                path.unlink()
                removed.append(path)
                logger.debug(f"Removed stale script {path}")
        return removed

    def build_targets(self) -> ScriptTargets:
        """Create the four command-script targets.

        Targets whose file name is empty are created without a path and
        silently drop their lines.
        """
        config = self.config
        return ScriptTargets(
            [
                ScriptTarget(
                    LOCAL,
                    self.local_script,
                    binaries_directory=config.binaries_directory,
                    line_terminator=WINDOWS_LINE_TERMINATOR,
                ),
                ScriptTarget(
                    CLUSTER,
                    self.cluster_script,
                    binaries_directory=config.cluster_binaries_directory,
                    line_prefix=config.cluster_line_prefix,
                    line_terminator=WINDOWS_LINE_TERMINATOR,
                    shuffle=True,
                ),
                ScriptTarget(
                    UNIX,
                    self.unix_script,
                    binaries_directory=config.binaries_directory,
                    line_terminator=UNIX_LINE_TERMINATOR,
                    header=SHELL_HEADER,
                    executable=True,
                ),
                ScriptTarget(
                    CLOUD,
                    self.cloud_script,
                    binaries_directory=config.binaries_directory,
                    line_terminator=UNIX_LINE_TERMINATOR,
                    header=SHELL_HEADER,
                    executable=True,
                ),
            ]
        )

    def download_line(self, file_id: str) -> str:
        command = self.config.download_command.format(token_file=self.config.access_token_file)
        return f"{self.config.binaries_directory}{command} {file_id}"

    def write_download_script(self, file_ids: Sequence[str]) -> Optional[Path]:
        """Write the download script, or nothing when there is nothing to download."""
        path = self.download_script
        if path is None or not file_ids:
            return None
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            for file_id in file_ids:
                f.write(self.download_line(file_id) + WINDOWS_LINE_TERMINATOR)
        logger.debug(f"Wrote {len(file_ids)} downloads to {path}")
        return path

    def prepare(self) -> Path:
        """Validate the script directory and clear out stale scripts."""
        validate_output_directory(self.output_dir, "script workspace")
        self.remove_stale_scripts()
        return self.output_dir

    def __repr__(self) -> str:
        """Return string representation of the workspace."""
        return f"ScriptWorkspace(output_dir='{self.output_dir}')"
