"""
Scheduler infrastructure for aseflow.

This package provides the core abstractions of the scheduler:
- Artifact: Three-state result of a file lookup
- Stage: Abstract base class for all stages
- Batcher / ScriptTarget: Packing of ready work into script lines
- FreshnessViolation: Output older than, or lacking, one of its inputs

The world snapshot, run context, workspace and runner live in their own
modules (``world``, ``context``, ``workspace``, ``runner``) and are imported
from there.
"""

from .artifacts import Artifact, ArtifactState, DownloadableArtifact
from .batcher import Batcher, ScriptTarget, ScriptTargets
from .freshness import FreshnessViolation
from .stage import Stage, StageOutcome

__all__ = [
    "Artifact",
    "ArtifactState",
    "DownloadableArtifact",
    "Batcher",
    "ScriptTarget",
    "ScriptTargets",
    "FreshnessViolation",
    "Stage",
    "StageOutcome",
]
