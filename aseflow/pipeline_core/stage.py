"""
Stage - Abstract base class for all scheduler stages.

This module provides the unified Stage abstraction. A stage looks at the
world snapshot, classifies each of its units of work as done, waiting or
ready, and writes command lines for the ready ones into script targets.
Stages never run anything themselves.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List

from .freshness import FreshnessViolation

if TYPE_CHECKING:
    from .batcher import ScriptTargets
    from .world import WorldSnapshot

logger = logging.getLogger(__name__)


@dataclass
class StageOutcome:
    """Counts reported by one stage evaluation.

    ``downloads`` holds the remote file ids the stage needs, in the order
    first requested; duplicates across stages are removed by the runner.
    """

    done: int = 0
    added: int = 0
    waiting: int = 0
    downloads: List[str] = field(default_factory=list)
    error: str = ""

    def request_download(self, file_id: str) -> None:
        if file_id not in self.downloads:
            self.downloads.append(file_id)

    @classmethod
    def skipped(cls) -> "StageOutcome":
        """Outcome of a stage that could not be evaluated at all."""
        return cls(waiting=1)


class Stage(ABC):
    """Abstract base class for all scheduler stages.

    Evaluation is handled by __call__, which logs and times the call and
    delegates to ``evaluate``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique, human-readable identifier used in the report.

        Returns
        -------
        str
            The stage name
        """
        pass

    @property
    def needs_entities(self) -> bool:
        """Whether the stage can only be evaluated when cases are known.

        Returns
        -------
        bool
            True if the runner must skip this stage when there are no cases
        """
        return True

    @property
    def description(self) -> str:
        """Human-readable description for logging."""
        return f"Stage: {self.name}"

    def __call__(self, world: "WorldSnapshot", targets: "ScriptTargets") -> StageOutcome:
        """Evaluate the stage with logging and timing.

        Parameters
        ----------
        world : WorldSnapshot
            State of the file system at the start of the run
        targets : ScriptTargets
            Destinations for command lines

        Returns
        -------
        StageOutcome
            Done, added, waiting counts and requested downloads
        """
        logger.debug(f"Evaluating {self.description}")
        start_time = time.time()
        try:
            outcome = self.evaluate(world, targets)
        except Exception as e:
            elapsed = time.time() - start_time
            logger.error(f"Stage '{self.name}' failed after {elapsed:.1f}s: {e}")
            raise

        elapsed = time.time() - start_time
        logger.debug(
            f"Stage '{self.name}': {outcome.done} done, {outcome.added} added, "
            f"{outcome.waiting} waiting, {len(outcome.downloads)} downloads in {elapsed:.2f}s"
        )
        return outcome

    @abstractmethod
    def evaluate(self, world: "WorldSnapshot", targets: "ScriptTargets") -> StageOutcome:
        """Classify units of work and emit commands for the ready ones.

        Must not modify the file system.
        """
        pass

    def find_freshness_violations(self, world: "WorldSnapshot") -> List[FreshnessViolation]:
        """Return every done output that is older than, or lacks, one of its inputs.

        Override in subclasses; the default finds nothing.
        """
        return []

    def check_freshness(self, world: "WorldSnapshot") -> bool:
        """Log every freshness violation and return True when there are none."""
        violations = self.find_freshness_violations(world)
        for violation in violations:
            logger.warning(str(violation))
        return not violations

    def __repr__(self) -> str:
        """Return string representation of the stage."""
        return f"{self.__class__.__name__}(name='{self.name}')"
