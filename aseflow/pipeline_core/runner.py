"""
PipelineRunner - Evaluates the ordered stage list once and reports.

This module provides the PipelineRunner class that walks the hand-ordered
stage list in a single forward pass, isolates stage failures, collects the
per-stage counts, and writes the scripts. It also provides ``run_scheduler``,
which performs a complete run from a configuration.
"""

import logging
import random
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO

from ..config import SchedulerConfig
from .context import RunContext
from .error_handling import FreshnessCheckFailed, PipelineError, graceful_error_handling
from .freshness import verify_stages
from .stage import Stage, StageOutcome
from .workspace import ScriptWorkspace
from .world import WorldSnapshot, format_bytes

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ("# Done", "# Added", "# Waiting", "# Downloads")


def format_report(context: RunContext) -> str:
    """Render the per-stage counts as a fixed-width table with a totals row."""
    rows = context.rows()
    name_width = max([len("Stage Name"), len("Total")] + [len(name) for name, _ in rows])
    widths = [len(c) for c in REPORT_COLUMNS]

    def line(name: str, values: Sequence) -> str:
        cells = "  ".join(f"{str(v):>{w}}" for v, w in zip(values, widths))
        return f"{name:<{name_width}}  {cells}"

    out = [line("Stage Name", REPORT_COLUMNS)]
    out.append("-" * len(out[0]))
    for name, outcome in rows:
        out.append(line(name, (outcome.done, outcome.added, outcome.waiting, len(outcome.downloads))))
    out.append("-" * len(out[0]))
    totals = context.totals()
    out.append(line("Total", (totals.done, totals.added, totals.waiting, len(totals.downloads))))
    return "\n".join(out)


class PipelineRunner:
    """Evaluates every stage exactly once, in list order.

    The runner handles:
    - The optional freshness check, before any stage is evaluated
    - Skipping stages that need cases when none are known
    - Isolating a failing stage so later stages are still evaluated
    - Download deduplication across stages
    - Writing the scripts and printing the report

    Attributes
    ----------
    check_dependencies : bool
        Whether to run the freshness check first
    """

    def __init__(self, check_dependencies: bool = False, output: Optional[TextIO] = None):
        """Initialize the runner.

        Parameters
        ----------
        check_dependencies : bool
            Verify output freshness before evaluating stages and refuse to
            produce scripts when any violation is found
        output : TextIO, optional
            Stream for the report (default: stdout)
        """
        self.check_dependencies = check_dependencies
        self.output = output
        self._execution_times: Dict[str, float] = {}

    def run(self, stages: List[Stage], context: RunContext) -> RunContext:
        """Evaluate all stages.

        Parameters
        ----------
        stages : List[Stage]
            Stages in evaluation order
        context : RunContext
            Context holding the world snapshot and the script targets

        Returns
        -------
        RunContext
            The context with every stage outcome recorded

        Raises
        ------
        ValueError
            If two stages share a name
        FreshnessCheckFailed
            If the freshness check is enabled and finds violations
        """
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate stage names detected")

        world = context.world
        if self.check_dependencies:
            violations = verify_stages(stages, world)
            if violations:
                raise FreshnessCheckFailed(violations)

        logger.info(f"Evaluating {len(stages)} stages")
        for stage in stages:
            start = time.time()
            if stage.needs_entities and not world.has_cases:
                logger.info(f"Skipping stage '{stage.name}': no cases are known")
                outcome = StageOutcome.skipped()
            else:
                try:
                    with graceful_error_handling(stage.name):
                        outcome = stage(world, context.targets)
                except PipelineError as e:
                    logger.error(f"Stage '{stage.name}' reported as waiting after failure: {e}")
                    outcome = StageOutcome(waiting=1, error=str(e))
            context.record(stage.name, outcome)
            self._execution_times[stage.name] = time.time() - start

        failed = context.failed_stages()
        if failed:
            logger.warning(f"{len(failed)} stage(s) failed: {', '.join(failed)}")
        self._log_execution_summary()
        return context

    def write_scripts(self, context: RunContext, rng: Optional[random.Random] = None) -> List[Path]:
        """Write every command script and, when needed, the download script."""
        written = context.targets.write_all(rng)
        if context.workspace is not None:
            download_script = context.workspace.write_download_script(context.downloads)
            if download_script is not None:
                written.append(download_script)
        for path in written:
            logger.info(f"Wrote {path}")
        return written

    def report(self, context: RunContext) -> None:
        """Print the table and the download and timing summary."""
        out = self.output or sys.stdout
        print(format_report(context), file=out)
        print(
            f"{len(context.downloads)} file(s) to download, "
            f"{format_bytes(context.download_bytes())} in total",
            file=out,
        )
        print(f"Took {context.get_execution_time():.1f}s", file=out)

    def _log_execution_summary(self) -> None:
        """Log the slowest stages."""
        if not self._execution_times:
            return
        total_time = sum(self._execution_times.values())
        sorted_times = sorted(self._execution_times.items(), key=lambda x: x[1], reverse=True)
        logger.debug("Stage evaluation times:")
        for stage_name, elapsed in sorted_times[:5]:
            percentage = (elapsed / total_time) * 100 if total_time > 0 else 0
            logger.debug(f"{stage_name:40s} {elapsed:6.2f}s ({percentage:4.1f}%)")
        logger.debug(f"{'Total stage time:':40s} {total_time:6.2f}s")


def run_scheduler(
    config: SchedulerConfig,
    stages: Optional[List[Stage]] = None,
    check_dependencies: bool = False,
    output: Optional[TextIO] = None,
    rng: Optional[random.Random] = None,
) -> RunContext:
    """
    Perform one complete scheduler run.

    Stale scripts are removed first, so a failed run never leaves a script
    from an earlier run behind.

    Parameters
    ----------
    config : SchedulerConfig
        Run configuration
    stages : list of Stage, optional
        Stage list; defaults to the full catalog
    check_dependencies : bool
        Run the freshness check first
    output : TextIO, optional
        Stream for the report
    rng : random.Random, optional
        Source of randomness for shuffled targets

    Returns
    -------
    RunContext
        The completed run

    Raises
    ------
    FreshnessCheckFailed
        If the freshness check is enabled and fails; no scripts are written
    """
    if stages is None:
        from ..stages.catalog import build_stage_list

        stages = build_stage_list()

    workspace = ScriptWorkspace(config)
    workspace.prepare()

    world = WorldSnapshot.build(config)
    context = RunContext(
        config=config,
        world=world,
        targets=workspace.build_targets(),
        workspace=workspace,
    )

    runner = PipelineRunner(check_dependencies=check_dependencies, output=output)
    runner.run(stages, context)
    runner.write_scripts(context, rng)
    runner.report(context)
    return context
