"""Tests for PipelineRunner and complete scheduler runs."""

import io
import random

import pytest

from aseflow.file_types import DerivedFileType, Source
from aseflow.pipeline_core.batcher import LOCAL, ScriptTargets
from aseflow.pipeline_core.context import RunContext
from aseflow.pipeline_core.error_handling import FreshnessCheckFailed
from aseflow.pipeline_core.freshness import FreshnessViolation
from aseflow.pipeline_core.runner import PipelineRunner, format_report, run_scheduler
from aseflow.pipeline_core.stage import Stage, StageOutcome
from aseflow.stages.shapes import PerCaseStage
from aseflow.stages.locators import derived, downloaded


class ScriptedStage(Stage):
    """Stage returning a fixed outcome, optionally failing."""

    def __init__(self, name, outcome=None, error=None, needs_entities=True, violations=()):
        super().__init__()
        self._name = name
        self.outcome = outcome or StageOutcome()
        self.error = error
        self._needs_entities = needs_entities
        self.violations = list(violations)
        self.calls = 0

    @property
    def name(self):
        return self._name

    @property
    def needs_entities(self):
        return self._needs_entities

    def evaluate(self, world, targets):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return StageOutcome(
            self.outcome.done, self.outcome.added, self.outcome.waiting, list(self.outcome.downloads)
        )

    def find_freshness_violations(self, world):
        return list(self.violations)


@pytest.fixture
def context(dataset):
    dataset.add_case()
    dataset.write_manifest()
    return RunContext(config=dataset.config(), world=dataset.world(), targets=ScriptTargets([]))


class TestPipelineRunner:
    def test_downloads_are_deduplicated_across_stages(self, context):
        stages = [
            ScriptedStage("A", StageOutcome(downloads=["f1", "f2"])),
            ScriptedStage("B", StageOutcome(downloads=["f2", "f3"])),
            ScriptedStage("C", StageOutcome(downloads=["f3", "f1"])),
        ]
        PipelineRunner().run(stages, context)

        assert context.downloads == ["f1", "f2", "f3"]
        assert [len(context.get_result(n).downloads) for n in "ABC"] == [2, 1, 0]

    def test_failing_stage_is_isolated(self, context):
        later = ScriptedStage("Later", StageOutcome(done=2))
        stages = [ScriptedStage("Broken", error=RuntimeError("disk on fire")), later]

        PipelineRunner().run(stages, context)

        broken = context.get_result("Broken")
        assert broken.waiting == 1
        assert "disk on fire" in broken.error
        assert later.calls == 1
        assert context.get_result("Later").done == 2
        assert context.failed_stages() == ["Broken"]

    def test_stage_needing_cases_is_skipped(self, dataset):
        world = dataset.world()
        context = RunContext(config=dataset.config(), world=world, targets=ScriptTargets([]))
        needs_cases = ScriptedStage("Needs cases", StageOutcome(added=5))
        global_stage = ScriptedStage("Global", StageOutcome(added=1), needs_entities=False)

        PipelineRunner().run([needs_cases, global_stage], context)

        assert needs_cases.calls == 0
        assert context.get_result("Needs cases").waiting == 1
        assert context.get_result("Global").added == 1

    def test_duplicate_stage_names(self, context):
        with pytest.raises(ValueError, match="Duplicate"):
            PipelineRunner().run([ScriptedStage("A"), ScriptedStage("A")], context)

    def test_freshness_check_fails_closed(self, context):
        violation = FreshnessViolation("B", "c1", None, None)
        stages = [ScriptedStage("A"), ScriptedStage("B", violations=[violation])]

        with pytest.raises(FreshnessCheckFailed) as exc_info:
            PipelineRunner(check_dependencies=True).run(stages, context)

        assert exc_info.value.violations == [violation]
        assert all(stage.calls == 0 for stage in stages)

    def test_freshness_check_is_optional(self, context):
        violation = FreshnessViolation("A", "c1", None, None)
        stage = ScriptedStage("A", violations=[violation])
        PipelineRunner().run([stage], context)
        assert stage.calls == 1


def test_format_report(context):
    context.record("Download", StageOutcome(done=3, downloads=["f1", "f2"]))
    context.record("Allcount (tumor DNA)", StageOutcome(done=1, added=2, waiting=3))

    report = format_report(context).splitlines()

    assert report[0].split() == ["Stage", "Name", "#", "Done", "#", "Added", "#", "Waiting", "#", "Downloads"]
    assert set(report[1]) == {"-"}
    assert report[2].split() == ["Download", "3", "0", "0", "2"]
    assert report[3].split() == ["Allcount", "(tumor", "DNA)", "1", "2", "3", "0"]
    assert report[-1].split() == ["Total", "4", "2", "3", "2"]
    assert len({len(line) for line in report}) == 1


class TestRunScheduler:
    @pytest.fixture
    def three_cases(self, dataset):
        done, ready, missing = dataset.add_case(), dataset.add_case(), dataset.add_case()
        dataset.write_manifest()
        dataset.download(done, Source.TUMOR_DNA)
        dataset.derive(done, DerivedFileType.TUMOR_DNA_ALLCOUNT)
        dataset.download(ready, Source.TUMOR_DNA)
        return done, ready, missing

    def allcount_stages(self):
        return [
            PerCaseStage(
                "Allcount (tumor DNA)",
                "GenerateAllcount",
                outputs=[derived(DerivedFileType.TUMOR_DNA_ALLCOUNT)],
                downloadable_inputs=[downloaded(Source.TUMOR_DNA)],
                arguments="tumor_dna",
            ),
            ScriptedStage("Reporter", StageOutcome(done=1), needs_entities=False),
        ]

    def test_writes_scripts_and_report(self, dataset, three_cases):
        done, ready, missing = three_cases
        out = io.StringIO()

        context = run_scheduler(dataset.config(), self.allcount_stages(), output=out)

        result = context.get_result("Allcount (tumor DNA)")
        assert (result.done, result.added, result.waiting) == (1, 1, 1)
        assert context.downloads == [dataset.file_id(missing, Source.TUMOR_DNA)]
        local = (dataset.script_dir / "ASENextSteps.cmd").read_bytes()
        assert local == f"GenerateAllcount tumor_dna {ready}\r\n".encode()
        unix = (dataset.script_dir / "ASENextStepsLinux").read_text()
        assert unix == "#!/bin/bash\n"
        download = (dataset.script_dir / "ASEDownload.cmd").read_text()
        assert download.strip().endswith(dataset.file_id(missing, Source.TUMOR_DNA))
        report = out.getvalue()
        assert "Stage Name" in report
        assert "1 file(s) to download, 1000 B in total" in report

    def test_second_run_is_identical(self, dataset, three_cases):
        config = dataset.config(cluster_script_filename="cluster.cmd")
        names = ["ASENextSteps.cmd", "cluster.cmd", "ASENextStepsLinux", "ASEDownload.cmd"]

        first = run_scheduler(config, self.allcount_stages(), output=io.StringIO(), rng=random.Random(1))
        first_scripts = {n: (dataset.script_dir / n).read_bytes() for n in names}
        second = run_scheduler(config, self.allcount_stages(), output=io.StringIO(), rng=random.Random(1))
        second_scripts = {n: (dataset.script_dir / n).read_bytes() for n in names}

        assert first_scripts == second_scripts
        assert [(n, o.done, o.added, o.waiting) for n, o in first.rows()] == [
            (n, o.done, o.added, o.waiting) for n, o in second.rows()
        ]
        assert first.downloads == second.downloads

    def test_nothing_to_download_leaves_no_download_script(self, dataset, three_cases):
        done, ready, missing = three_cases
        dataset.download(missing, Source.TUMOR_DNA)
        run_scheduler(dataset.config(), self.allcount_stages(), output=io.StringIO())
        assert not (dataset.script_dir / "ASEDownload.cmd").exists()

    def test_failed_freshness_check_writes_no_scripts(self, dataset, three_cases):
        done, _, _ = three_cases
        # Allcount older than the downloaded file it was made from
        dataset.derive(done, DerivedFileType.TUMOR_DNA_ALLCOUNT, mtime=dataset.base_time - 100)
        dataset.script_dir.mkdir()
        (dataset.script_dir / "ASENextSteps.cmd").write_text("stale")

        with pytest.raises(FreshnessCheckFailed):
            run_scheduler(
                dataset.config(), self.allcount_stages(), check_dependencies=True, output=io.StringIO()
            )

        assert list(dataset.script_dir.iterdir()) == []

    def test_configuration_file_is_forwarded(self, dataset, three_cases, tmp_path):
        _, ready, _ = three_cases
        config_path = tmp_path / "run.json"
        config_path.write_text("{}")
        config = dataset.config()
        config.configuration_file = config_path

        context = run_scheduler(config, self.allcount_stages(), output=io.StringIO())

        assert context.targets[LOCAL].lines == [
            f"GenerateAllcount -configuration {config_path} tumor_dna {ready}"
        ]


def test_download_requested_by_three_stages(dataset):
    case_id = dataset.add_case()
    dataset.write_manifest()
    stages = [
        PerCaseStage(
            name, "Tool", outputs=[derived(file_type)],
            downloadable_inputs=[downloaded(Source.TUMOR_DNA)],
        )
        for name, file_type in [
            ("Allcount (tumor DNA)", DerivedFileType.TUMOR_DNA_ALLCOUNT),
            ("Count Mapped Bases (tumor DNA)", DerivedFileType.TUMOR_DNA_MAPPED_BASE_COUNT),
            ("Distance Between Mutations", DerivedFileType.MUTATION_DISTANCES),
        ]
    ]

    context = run_scheduler(dataset.config(), stages, output=io.StringIO())

    file_id = dataset.file_id(case_id, Source.TUMOR_DNA)
    assert context.downloads == [file_id]
    assert [len(o.downloads) for _, o in context.rows()] == [1, 0, 0]
    assert all(o.waiting == 1 for _, o in context.rows())
    assert (dataset.script_dir / "ASEDownload.cmd").read_text().count(file_id) == 1
    assert context.totals().downloads == [file_id]
