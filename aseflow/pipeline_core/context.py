"""
RunContext - State accumulated while the stage list is evaluated.

The context carries the configuration, the world snapshot and the script
targets, and collects per-stage outcomes and the deduplicated download list.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from ..config import SchedulerConfig
from .batcher import ScriptTargets
from .stage import StageOutcome

if TYPE_CHECKING:
    from .workspace import ScriptWorkspace
    from .world import WorldSnapshot

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Container for the state of one scheduler run.

    Attributes
    ----------
    config : SchedulerConfig
        Run configuration
    world : WorldSnapshot
        File-system state taken before any stage is evaluated
    targets : ScriptTargets
        Script destinations the stages write to
    workspace : ScriptWorkspace
        Script paths and writing
    start_time : datetime
        Run start time
    stage_results : Dict[str, StageOutcome]
        Outcome of every evaluated stage, with downloads already deduplicated
    downloads : List[str]
        Remote file ids to download, in the order first requested
    """

    config: SchedulerConfig
    world: "WorldSnapshot"
    targets: ScriptTargets
    workspace: Optional["ScriptWorkspace"] = None
    start_time: datetime = field(default_factory=datetime.now)

    stage_results: Dict[str, StageOutcome] = field(default_factory=dict)
    stage_order: List[str] = field(default_factory=list)
    downloads: List[str] = field(default_factory=list)
    _requested: Set[str] = field(default_factory=set, init=False, repr=False)

    def record(self, stage_name: str, outcome: StageOutcome) -> StageOutcome:
        """Store a stage outcome, keeping only downloads no earlier stage asked for.

        Parameters
        ----------
        stage_name : str
            Name of the stage
        outcome : StageOutcome
            Outcome as reported by the stage

        Returns
        -------
        StageOutcome
            The stored outcome, whose ``downloads`` are the newly requested ids
        """
        new_downloads = []
        for file_id in outcome.downloads:
            if file_id not in self._requested:
                self._requested.add(file_id)
                new_downloads.append(file_id)
        recorded = StageOutcome(
            done=outcome.done,
            added=outcome.added,
            waiting=outcome.waiting,
            downloads=new_downloads,
            error=outcome.error,
        )
        self.downloads.extend(new_downloads)
        if stage_name not in self.stage_results:
            self.stage_order.append(stage_name)
        self.stage_results[stage_name] = recorded
        logger.debug(f"Recorded outcome of '{stage_name}': {recorded}")
        return recorded

    def get_result(self, stage_name: str) -> Optional[StageOutcome]:
        return self.stage_results.get(stage_name)

    def rows(self) -> List[Tuple[str, StageOutcome]]:
        return [(name, self.stage_results[name]) for name in self.stage_order]

    def totals(self) -> StageOutcome:
        """Sum of all recorded outcomes."""
        total = StageOutcome()
        for outcome in self.stage_results.values():
            total.done += outcome.done
            total.added += outcome.added
            total.waiting += outcome.waiting
        total.downloads = list(self.downloads)
        return total

    def download_bytes(self) -> int:
        return sum(self.world.download_size(file_id) for file_id in self.downloads)

    def failed_stages(self) -> List[str]:
        return [name for name in self.stage_order if self.stage_results[name].error]

    def get_execution_time(self) -> float:
        """Get the elapsed time in seconds since the run started."""
        return (datetime.now() - self.start_time).total_seconds()

    def __repr__(self) -> str:
        """Return string representation showing key state information."""
        return (
            f"RunContext("
            f"stages_evaluated={len(self.stage_results)}, "
            f"downloads={len(self.downloads)}, "
            f"execution_time={self.get_execution_time():.1f}s)"
        )
