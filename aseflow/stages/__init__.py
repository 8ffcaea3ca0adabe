"""
Stage shapes, locators and the ordered stage catalog.
"""

from .catalog import build_stage_list
from .shapes import PerCaseStage, PerChromosomeDiseaseStage, PerDiseaseStage, SingleOutputStage
from .special_stages import DownloadStage, MD5ComputationStage

__all__ = [
    "build_stage_list",
    "PerCaseStage",
    "PerDiseaseStage",
    "PerChromosomeDiseaseStage",
    "SingleOutputStage",
    "DownloadStage",
    "MD5ComputationStage",
]
