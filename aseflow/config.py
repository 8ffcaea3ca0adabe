# File: aseflow/config.py
# Location: aseflow/aseflow/config.py

"""
Configuration management module.

This module handles loading configuration from a JSON file and turning it
into a typed ``SchedulerConfig``. All default values reside in config.json,
which is included in the installed package directory.

If no config_file is provided, this module attempts to load the default
config.json from the package installation directory.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    If no config_file is provided, the function attempts to load the
    'config.json' from the installed package directory. If it fails
    to find or parse the file, it raises an error.

    Parameters
    ----------
    config_file : str, optional
        Path to a configuration file in JSON format. If None, defaults to
        the package-installed 'config.json'.

    Returns
    -------
    dict
        Configuration dictionary loaded from the JSON file.

    Raises
    ------
    FileNotFoundError
        If the specified configuration file does not exist.
    ValueError
        If there is an error parsing the JSON configuration file.
    """
    if not config_file:
        # Use the package's installed config.json
        config_file = os.path.join(os.path.dirname(__file__), "config.json")

    if not os.path.exists(config_file):
        raise FileNotFoundError(f"Configuration file '{config_file}' not found.")

    with open(config_file, "r", encoding="utf-8") as f:
        try:
            config = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error parsing JSON configuration: {e}")

    return config


@dataclass
class SchedulerConfig:
    """
    Typed view of the scheduler configuration.

    Fields
    ------
    data_directories : list of Path
        Roots that each hold a downloaded-files and a derived-files directory.
    downloaded_files_directory : str
        Name of the per-root directory holding one sub-directory per remote file id.
    derived_files_directory : str
        Name of the per-root directory holding one sub-directory per case id.
    cases_file : Path
        Tab-delimited cases manifest.
    final_results_directory : Path
        Directory of the global (one-off) results.
    expression_files_directory : Path
        Directory of per-disease ``expression_<disease>`` files.
    expression_distribution_directory : Path
        Directory of ``expression_distribution_<chromosome>_<disease>`` files.
    gene_scatter_graphs_directory : Path
        Directory of per-chromosome, per-disease scatter graph lines.
    binaries_directory : str
        Prefix prepended to every executable name in local, Unix and cloud scripts.
    cluster_binaries_directory : str
        Prefix prepended to every executable name in the cluster script.
    script_output_directory : Path
        Where generated scripts are written.
    local_script_filename, cluster_script_filename, unix_script_filename,
    cloud_script_filename, download_script_filename : str
        Script names. An empty name disables that destination.
    cluster_job_prefix : str
        Template put in front of every cluster line; ``{scheduler}`` is replaced.
    cluster_scheduler : str
        Head node name substituted into ``cluster_job_prefix``.
    download_command : str
        Download command; ``{token_file}`` is replaced, the file id is appended.
    access_token_file : str
        Token file handed to the download command.
    worker_machines : int
        Default desired parallelism for batched stages.
    max_chars_per_line : int
        Default line-length cap for batched stages.
    common_data_files : list of str
        Global tables (in the final results directory) a stage may require.
    configuration_file : Path, optional
        Set when the configuration was given explicitly; it is then passed on to
        every external program with ``-configuration``.
    """

    data_directories: List[Path] = field(default_factory=list)
    downloaded_files_directory: str = "downloaded_files"
    derived_files_directory: str = "derived_files"
    cases_file: Path = Path("cases.txt")
    final_results_directory: Path = Path("final_results")
    expression_files_directory: Path = Path("expression")
    expression_distribution_directory: Path = Path("expression_distribution_by_chromosome")
    gene_scatter_graphs_directory: Path = Path("gene_scatter_graphs")
    binaries_directory: str = ""
    cluster_binaries_directory: str = ""
    script_output_directory: Path = Path(".")
    local_script_filename: str = "ASENextSteps.cmd"
    cluster_script_filename: str = ""
    unix_script_filename: str = "ASENextStepsLinux"
    cloud_script_filename: str = ""
    download_script_filename: str = "ASEDownload.cmd"
    cluster_job_prefix: str = "job add %1 /exclusive /numnodes:1-1 /scheduler:{scheduler} "
    cluster_scheduler: str = ""
    download_command: str = "gdc-client download --no-file-md5sum --token-file {token_file}"
    access_token_file: str = ""
    worker_machines: int = 1
    max_chars_per_line: int = 5000
    common_data_files: List[str] = field(default_factory=list)
    configuration_file: Optional[Path] = None

    _PATH_FIELDS = (
        "cases_file",
        "final_results_directory",
        "expression_files_directory",
        "expression_distribution_directory",
        "gene_scatter_graphs_directory",
        "script_output_directory",
    )

    def __post_init__(self):
        """Normalise path fields and validate numeric limits."""
        self.data_directories = [Path(d) for d in self.data_directories]
        for name in self._PATH_FIELDS:
            setattr(self, name, Path(getattr(self, name)))
        if self.configuration_file is not None:
            self.configuration_file = Path(self.configuration_file)

        if int(self.worker_machines) < 1:
            raise ValueError(f"worker_machines must be at least 1, got {self.worker_machines}")
        if int(self.max_chars_per_line) < 1:
            raise ValueError(
                f"max_chars_per_line must be positive, got {self.max_chars_per_line}"
            )
        self.worker_machines = int(self.worker_machines)
        self.max_chars_per_line = int(self.max_chars_per_line)

    @classmethod
    def from_dict(
        cls, cfg: Dict[str, Any], configuration_file: Optional[str] = None
    ) -> "SchedulerConfig":
        """Build a config from a loaded JSON dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in cfg if k not in known)
        if unknown:
            logger.debug(f"Ignoring unknown configuration keys: {unknown}")
        values = {k: v for k, v in cfg.items() if k in known}
        if configuration_file:
            values["configuration_file"] = configuration_file
        return cls(**values)

    @property
    def configuration_argument(self) -> str:
        """Return the argument that forwards an explicit configuration to executables."""
        if self.configuration_file is None:
            return ""
        return f" -configuration {self.configuration_file}"

    @property
    def cluster_line_prefix(self) -> str:
        """Return the job-submission prefix for cluster script lines."""
        return self.cluster_job_prefix.format(scheduler=self.cluster_scheduler)

    def final_result(self, filename: str) -> Path:
        """Return the path of a global result file."""
        return self.final_results_directory / filename
