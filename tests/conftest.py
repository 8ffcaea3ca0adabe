"""Shared pytest fixtures for all test modules."""

import os
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pytest

from aseflow.config import SchedulerConfig
from aseflow.file_types import DerivedFileType, Source
from aseflow.pipeline_core.world import WorldSnapshot

# Fixed point in time all test files are dated relative to
BASE_TIME = 1_600_000_000.0


def make_id(n: int) -> str:
    """Return a 36-character, GUID shaped id."""
    return f"{n:08x}-0000-4000-8000-{n:012x}"


def set_mtime(path: Path, mtime: float) -> None:
    os.utime(path, (mtime, mtime))


class Dataset:
    """Builds a data directory, a cases manifest and a config under tmp_path."""

    def __init__(self, root: Path):
        self.root = root
        self.data_dir = root / "data"
        self.final_results = root / "final_results"
        self.expression_dir = root / "expression"
        self.distribution_dir = root / "expression_distribution"
        self.scatter_dir = root / "gene_scatter_graphs"
        self.script_dir = root / "scripts"
        self.cases_file = root / "cases.txt"
        self.data_dir.mkdir()
        self.rows: List[Dict[str, str]] = []
        self.files: Dict[str, Dict[Source, str]] = {}
        self._next_id = 1
        self.base_time = BASE_TIME

    def new_id(self) -> str:
        file_id = make_id(self._next_id)
        self._next_id += 1
        return file_id

    @staticmethod
    def md5_of(file_id: str) -> str:
        return file_id.replace("-", "")[:32]

    def add_case(
        self,
        case_id: Optional[str] = None,
        project_id: str = "TCGA-BRCA",
        normal_rna: bool = True,
    ) -> str:
        """Add a case to the manifest and return its id."""
        case_id = case_id or self.new_id()
        row = {"case_id": case_id, "project_id": project_id}
        files = {}
        for source in Source:
            if source is Source.NORMAL_RNA and not normal_rna:
                file_id = ""
            else:
                file_id = self.new_id()
                files[source] = file_id
            row[f"{source.value}_file_id"] = file_id
            row[f"{source.value}_md5"] = self.md5_of(file_id) if file_id else ""
            row[f"{source.value}_size"] = "1000" if file_id else ""
        self.rows.append(row)
        self.files[case_id] = files
        return case_id

    def write_manifest(self) -> Path:
        pd.DataFrame(self.rows).to_csv(self.cases_file, sep="\t", index=False)
        return self.cases_file

    def file_id(self, case_id: str, source: Source) -> str:
        return self.files[case_id][source]

    def download(
        self,
        case_id: str,
        source: Source,
        verified: bool = True,
        partial: bool = False,
        md5: Optional[str] = None,
        mtime: float = BASE_TIME,
    ) -> Path:
        """Put a downloaded data file (and optionally its md5 sidecar) on disk."""
        file_id = self.file_id(case_id, source)
        directory = self.data_dir / "downloaded_files" / file_id
        directory.mkdir(parents=True, exist_ok=True)
        name = f"{source.value}.bam" + (".partial" if partial else "")
        path = directory / name
        path.write_bytes(b"x" * 16)
        set_mtime(path, mtime)
        if verified and not partial:
            sidecar = directory / f"{name}.md5"
            sidecar.write_text((md5 or self.md5_of(file_id)) + "\n")
            set_mtime(sidecar, mtime + 10)
        return path

    def download_all(self, case_id: str, mtime: float = BASE_TIME) -> None:
        for source in self.files[case_id]:
            self.download(case_id, source, mtime=mtime)

    def derive(self, case_id: str, file_type: DerivedFileType, mtime: float = BASE_TIME + 100) -> Path:
        """Create a derived file of a case."""
        file_id = self.file_id(case_id, file_type.source)
        directory = self.data_dir / "derived_files" / case_id
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / file_type.filename(file_id)
        path.write_text("content\n")
        set_mtime(path, mtime)
        return path

    def final_result(self, name: str, mtime: float = BASE_TIME + 200) -> Path:
        self.final_results.mkdir(exist_ok=True)
        path = self.final_results / name
        path.write_text("result\n")
        set_mtime(path, mtime)
        return path

    def place(self, directory: Path, name: str, mtime: float = BASE_TIME + 200) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text("content\n")
        set_mtime(path, mtime)
        return path

    def config_dict(self, **overrides) -> Dict:
        cfg = {
            "data_directories": [str(self.data_dir)],
            "cases_file": str(self.cases_file),
            "final_results_directory": str(self.final_results),
            "expression_files_directory": str(self.expression_dir),
            "expression_distribution_directory": str(self.distribution_dir),
            "gene_scatter_graphs_directory": str(self.scatter_dir),
            "script_output_directory": str(self.script_dir),
            "local_script_filename": "ASENextSteps.cmd",
            "cluster_script_filename": "",
            "unix_script_filename": "ASENextStepsLinux",
            "cloud_script_filename": "",
            "download_script_filename": "ASEDownload.cmd",
            "access_token_file": "token.txt",
            "worker_machines": 1,
            "max_chars_per_line": 5000,
            "common_data_files": ["ase_correction.txt"],
        }
        cfg.update(overrides)
        return cfg

    def config(self, **overrides) -> SchedulerConfig:
        return SchedulerConfig.from_dict(self.config_dict(**overrides))

    def world(self, **overrides) -> WorldSnapshot:
        return WorldSnapshot.build(self.config(**overrides))


@pytest.fixture
def dataset(tmp_path) -> Dataset:
    """An empty dataset rooted in a temporary directory."""
    return Dataset(tmp_path)
