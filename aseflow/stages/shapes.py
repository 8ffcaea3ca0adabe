"""
The four stage shapes.

Every concrete stage of the catalog is an instance of one of these classes,
configured with a name, an executable and its locators:

- ``PerCaseStage``: one unit per case, ready cases are batched onto lines.
- ``PerDiseaseStage``: one unit and one command per disease.
- ``PerChromosomeDiseaseStage``: one unit and one command per chromosome and disease.
- ``SingleOutputStage``: a single unit producing global outputs.
"""

import logging
import sys
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from ..manifest import Case
from ..pipeline_core.artifacts import Artifact
from ..pipeline_core.batcher import CLUSTER, LOCAL, Batcher, emit_single
from ..pipeline_core.freshness import FreshnessViolation, compare_all
from ..pipeline_core.stage import Stage, StageOutcome
from ..pipeline_core.world import EntityKind
from .locators import (
    CaseLocator,
    DownloadLocator,
    OneOffLocator,
    TokenFormatter,
    case_id_token,
)

if TYPE_CHECKING:
    from ..pipeline_core.batcher import ScriptTargets
    from ..pipeline_core.world import WorldSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TARGETS = (LOCAL, CLUSTER)


@dataclass
class Classification:
    """Units of one stage sorted by readiness."""

    done: List[Any] = field(default_factory=list)
    waiting: List[Any] = field(default_factory=list)
    ready: List[Any] = field(default_factory=list)
    downloads: List[str] = field(default_factory=list)


class PerCaseStage(Stage):
    """
    A stage with one unit of work per case.

    Parameters
    ----------
    name : str
        Name shown in the report.
    binary : str
        Executable; it receives the ready tokens (case ids by default).
    outputs : sequence of CaseLocator
        The case is done when any output is present and excluded when all
        outputs are not applicable.
    case_inputs : sequence of CaseLocator
        Per-case prerequisites; not-applicable inputs are ignored.
    downloadable_inputs : sequence of DownloadLocator
        Remote files the case needs on disk and verified.
    one_off_inputs : sequence of OneOffLocator
        Global prerequisites; when one is missing every remaining case waits.
    arguments : str
        Fixed arguments placed between the executable and the tokens.
    needs_common_data : bool
        When True every remaining case waits until common data is ready.
    token : TokenFormatter
        Renders a ready case for the command line.
    targets : sequence of str
        Script targets this stage writes to.
    desired_parallelism : int, optional
        Line count is rounded up to a multiple of this; defaults to the
        configured number of worker machines.
    max_items_per_line : int
        Cap on tokens per line.
    max_chars_per_line : int, optional
        Cap on line length; defaults to the configured value.
    """

    def __init__(
        self,
        name: str,
        binary: str,
        outputs: Sequence[CaseLocator],
        case_inputs: Sequence[CaseLocator] = (),
        downloadable_inputs: Sequence[DownloadLocator] = (),
        one_off_inputs: Sequence[OneOffLocator] = (),
        arguments: str = "",
        needs_common_data: bool = False,
        token: TokenFormatter = case_id_token,
        targets: Sequence[str] = DEFAULT_TARGETS,
        desired_parallelism: Optional[int] = None,
        max_items_per_line: int = sys.maxsize,
        max_chars_per_line: Optional[int] = None,
    ):
        super().__init__()
        if not outputs:
            raise ValueError(f"Stage '{name}' needs at least one output locator")
        self._name = name
        self.binary = binary
        self.outputs = list(outputs)
        self.case_inputs = list(case_inputs)
        self.downloadable_inputs = list(downloadable_inputs)
        self.one_off_inputs = list(one_off_inputs)
        self.arguments = arguments
        self.needs_common_data = needs_common_data
        self.token = token
        self.targets = tuple(targets)
        self.desired_parallelism = desired_parallelism
        self.max_items_per_line = max_items_per_line
        self.max_chars_per_line = max_chars_per_line

    @property
    def name(self) -> str:
        return self._name

    def classify(self, world: "WorldSnapshot") -> Classification:
        """Sort every applicable case into done, waiting or ready."""
        result = Classification()
        one_offs_missing = any(not loc(world).is_present for loc in self.one_off_inputs)
        common_data_missing = self.needs_common_data and not world.common_data_ready()

        for case in world.all_entities(EntityKind.CASE):
            outputs = [loc(world, case) for loc in self.outputs]
            if all(o.is_not_applicable for o in outputs):
                continue
            if any(o.is_present for o in outputs):
                result.done.append(case)
                continue
            if one_offs_missing or common_data_missing:
                result.waiting.append(case)
                continue

            waiting_for_download = False
            for loc in self.downloadable_inputs:
                artifact = loc(world, case)
                if artifact.needs_download:
                    if artifact.file_id not in result.downloads:
                        result.downloads.append(artifact.file_id)
                    waiting_for_download = True
                elif artifact.awaiting_verification:
                    waiting_for_download = True
            if waiting_for_download:
                result.waiting.append(case)
                continue

            if any(loc(world, case).is_absent for loc in self.case_inputs):
                result.waiting.append(case)
                continue

            result.ready.append(case)
        return result

    def _batcher(self, world: "WorldSnapshot") -> Batcher:
        config = world.config
        return Batcher(
            max_items_per_line=self.max_items_per_line,
            max_chars_per_line=self.max_chars_per_line or config.max_chars_per_line,
            desired_parallelism=self.desired_parallelism or config.worker_machines,
        )

    def evaluate(self, world: "WorldSnapshot", targets: "ScriptTargets") -> StageOutcome:
        classification = self.classify(world)
        if classification.ready:
            tokens = [self.token(world, case) for case in classification.ready]
            self._batcher(world).emit(
                tokens,
                targets.select(self.targets),
                self.binary,
                world.config.configuration_argument,
                self.arguments,
            )
        return StageOutcome(
            done=len(classification.done),
            added=len(classification.ready),
            waiting=len(classification.waiting),
            downloads=list(classification.downloads),
        )

    def find_freshness_violations(self, world: "WorldSnapshot") -> List[FreshnessViolation]:
        done = self.classify(world).done
        if not done:
            return []

        one_offs = [loc(world) for loc in self.one_off_inputs]
        violations = []
        for case in done:
            outputs = [loc(world, case) for loc in self.outputs]
            inputs = list(one_offs)
            inputs.extend(loc(world, case) for loc in self.case_inputs)
            # Downloaded inputs are compared only while on disk
            inputs.extend(a for a in (loc(world, case) for loc in self.downloadable_inputs) if a.is_present)
            violations.extend(compare_all(self.name, case.case_id, outputs, inputs))
        return violations


class _UnitStage(Stage):
    """Shared logic of the per-disease, per-chromosome-disease and single-output shapes.

    A unit is done only when every applicable output is present.
    """

    entity_kind: EntityKind = EntityKind.DISEASE

    def __init__(
        self,
        name: str,
        binary: str,
        outputs: Sequence,
        unit_inputs: Sequence = (),
        case_inputs: Sequence[CaseLocator] = (),
        one_off_inputs: Sequence[OneOffLocator] = (),
        arguments: str = "",
        needs_common_data: bool = False,
        targets: Sequence[str] = DEFAULT_TARGETS,
    ):
        super().__init__()
        if not outputs:
            raise ValueError(f"Stage '{name}' needs at least one output locator")
        self._name = name
        self.binary = binary
        self.outputs = list(outputs)
        self.unit_inputs = list(unit_inputs)
        self.case_inputs = list(case_inputs)
        self.one_off_inputs = list(one_off_inputs)
        self.arguments = arguments
        self.needs_common_data = needs_common_data
        self.targets = tuple(targets)

    @property
    def name(self) -> str:
        return self._name

    def units(self, world: "WorldSnapshot") -> list:
        return world.all_entities(self.entity_kind)

    def unit_outputs(self, world: "WorldSnapshot", unit) -> List[Artifact]:
        return [loc(world, unit) for loc in self.outputs]

    def unit_specific_inputs(self, world: "WorldSnapshot", unit) -> List[Artifact]:
        return [loc(world, unit) for loc in self.unit_inputs]

    @abstractmethod
    def unit_cases(self, world: "WorldSnapshot", unit) -> List[Case]:
        """Cases whose per-case inputs gate the unit."""
        pass

    @abstractmethod
    def unit_arguments(self, unit) -> str:
        """Arguments that identify the unit on its command line."""
        pass

    def unit_label(self, unit) -> str:
        return str(unit)

    def classify(self, world: "WorldSnapshot") -> Classification:
        result = Classification()
        one_offs_missing = any(not loc(world).is_present for loc in self.one_off_inputs)
        common_data_missing = self.needs_common_data and not world.common_data_ready()

        for unit in self.units(world):
            applicable = [o for o in self.unit_outputs(world, unit) if not o.is_not_applicable]
            if not applicable:
                continue
            if all(o.is_present for o in applicable):
                result.done.append(unit)
                continue
            if one_offs_missing or common_data_missing:
                result.waiting.append(unit)
                continue
            if any(not a.is_present and not a.is_not_applicable
                   for a in self.unit_specific_inputs(world, unit)):
                result.waiting.append(unit)
                continue
            if any(loc(world, case).is_absent
                   for case in self.unit_cases(world, unit) for loc in self.case_inputs):
                result.waiting.append(unit)
                continue
            result.ready.append(unit)
        return result

    def _render_arguments(self, unit) -> str:
        unit_arguments = self.unit_arguments(unit)
        return " ".join(a for a in (self.arguments, unit_arguments) if a)

    def evaluate(self, world: "WorldSnapshot", targets: "ScriptTargets") -> StageOutcome:
        classification = self.classify(world)
        selected = targets.select(self.targets)
        for unit in classification.ready:
            emit_single(
                selected,
                self.binary,
                world.config.configuration_argument,
                self._render_arguments(unit),
            )
        return StageOutcome(
            done=len(classification.done),
            added=len(classification.ready),
            waiting=len(classification.waiting),
        )

    def _extra_freshness_inputs(self, world: "WorldSnapshot") -> List[Artifact]:
        return []

    def find_freshness_violations(self, world: "WorldSnapshot") -> List[FreshnessViolation]:
        done = self.classify(world).done
        if not done:
            return []

        shared_inputs = [loc(world) for loc in self.one_off_inputs]
        shared_inputs.extend(self._extra_freshness_inputs(world))
        violations = []
        for unit in done:
            outputs = self.unit_outputs(world, unit)
            inputs = list(shared_inputs)
            inputs.extend(self.unit_specific_inputs(world, unit))
            for case in self.unit_cases(world, unit):
                inputs.extend(loc(world, case) for loc in self.case_inputs)
            violations.extend(compare_all(self.name, self.unit_label(unit), outputs, inputs))
        return violations


class PerDiseaseStage(_UnitStage):
    """One command per disease; the disease name is the last argument.

    ``outputs`` and ``unit_inputs`` are disease locators. Per-case inputs are
    checked for every case of the disease.
    """

    entity_kind = EntityKind.DISEASE

    def unit_cases(self, world: "WorldSnapshot", unit: str) -> List[Case]:
        return world.cases_for_disease(unit)

    def unit_arguments(self, unit: str) -> str:
        return unit


class PerChromosomeDiseaseStage(_UnitStage):
    """One command per (chromosome, disease) pair: ``<binary> <chromosome> <disease>``."""

    entity_kind = EntityKind.CHROMOSOME_DISEASE

    def unit_cases(self, world: "WorldSnapshot", unit) -> List[Case]:
        return world.cases_for_disease(unit[1])

    def unit_arguments(self, unit) -> str:
        return f"{unit[0]} {unit[1]}"

    def unit_label(self, unit) -> str:
        return f"{unit[0]}/{unit[1]}"


class SingleOutputStage(_UnitStage):
    """A single unit producing global outputs.

    ``outputs`` are one-off locators. Per-case inputs are checked for every
    case. When common data is required, the common data files are also
    inputs for the freshness check.

    Bootstrap stages that regenerate their output on demand pass
    ``verify_freshness=False``.
    """

    def __init__(self, *args, needs_entities: bool = True, verify_freshness: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self._needs_entities = needs_entities
        self.verify_freshness = verify_freshness

    @property
    def needs_entities(self) -> bool:
        return self._needs_entities

    def units(self, world: "WorldSnapshot") -> list:
        return [None]

    def unit_outputs(self, world: "WorldSnapshot", unit) -> List[Artifact]:
        return [loc(world) for loc in self.outputs]

    def unit_specific_inputs(self, world: "WorldSnapshot", unit) -> List[Artifact]:
        return [loc(world) for loc in self.unit_inputs]

    def unit_cases(self, world: "WorldSnapshot", unit) -> List[Case]:
        return world.list_cases()

    def unit_arguments(self, unit) -> str:
        return ""

    def unit_label(self, unit) -> str:
        return "all cases"

    def _extra_freshness_inputs(self, world: "WorldSnapshot") -> List[Artifact]:
        if self.needs_common_data:
            return world.common_data_artifacts()
        return []

    def find_freshness_violations(self, world: "WorldSnapshot") -> List[FreshnessViolation]:
        if not self.verify_freshness:
            return []
        # Nothing to compare until every output exists
        if not all(o.is_present for o in self.unit_outputs(world, None) if not o.is_not_applicable):
            return []
        return super().find_freshness_violations(world)

