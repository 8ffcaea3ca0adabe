"""
Dependency freshness verification.

For every unit a stage considers done, each output must be at least as new
as every input it was produced from. A missing input of a done unit is a
violation too, because the output can no longer be reproduced or trusted.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from .artifacts import Artifact

if TYPE_CHECKING:
    from .stage import Stage
    from .world import WorldSnapshot

logger = logging.getLogger(__name__)

STALE = "stale"
MISSING_INPUT = "missing input"


@dataclass(frozen=True)
class FreshnessViolation:
    """One output that is older than, or lacks, an input it depends on."""

    stage: str
    entity: str
    output: Optional[Path]
    input: Optional[Path]
    reason: str = STALE

    def __str__(self) -> str:
        if self.reason == MISSING_INPUT:
            return (
                f"{self.stage} [{self.entity}]: output {self.output} exists but its "
                f"input {self.input} is missing"
            )
        return (
            f"{self.stage} [{self.entity}]: output {self.output} is older than "
            f"its input {self.input}"
        )


def compare(
    stage: str, entity: str, output: Artifact, input_artifact: Artifact
) -> Optional[FreshnessViolation]:
    """Check one output against one input.

    Not-applicable inputs never produce a violation, and neither does an
    output that is not present.
    """
    if not output.is_present or input_artifact.is_not_applicable:
        return None
    if input_artifact.is_absent:
        return FreshnessViolation(stage, entity, output.path, input_artifact.path, MISSING_INPUT)
    if input_artifact.mtime > output.mtime:
        return FreshnessViolation(stage, entity, output.path, input_artifact.path, STALE)
    return None


def compare_all(
    stage: str, entity: str, outputs: Sequence[Artifact], inputs: Iterable[Artifact]
) -> List[FreshnessViolation]:
    """Check every present output against every input."""
    inputs = list(inputs)
    violations = []
    for output in outputs:
        for input_artifact in inputs:
            violation = compare(stage, entity, output, input_artifact)
            if violation is not None:
                violations.append(violation)
    return violations


def verify_stages(stages: Sequence["Stage"], world: "WorldSnapshot") -> List[FreshnessViolation]:
    """
    Run the freshness check of every eligible stage and log each violation.

    A stage that needs the case enumeration is skipped when there are no
    cases, exactly as it is skipped during evaluation.

    Returns
    -------
    list of FreshnessViolation
        All violations found, in stage order.
    """
    violations: List[FreshnessViolation] = []
    for stage in stages:
        if stage.needs_entities and not world.has_cases:
            logger.debug(f"Skipping freshness check of '{stage.name}': no cases")
            continue
        found = stage.find_freshness_violations(world)
        for violation in found:
            logger.warning(str(violation))
        violations.extend(found)

    if violations:
        logger.error(f"Freshness check found {len(violations)} out-of-date output(s)")
    else:
        logger.info("Freshness check passed")
    return violations
