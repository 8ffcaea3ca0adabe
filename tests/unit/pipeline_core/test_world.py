"""Tests for the world snapshot."""

import logging

import pytest

from aseflow.file_types import CHROMOSOMES, DerivedFileType, Source
from aseflow.manifest import Case, SourceFile
from aseflow.pipeline_core.artifacts import ArtifactState
from aseflow.pipeline_core.world import EntityKind, WorldSnapshot, format_bytes
from aseflow.scanner import Inventory


@pytest.fixture
def two_cases(dataset):
    brca = dataset.add_case(project_id="TCGA-BRCA")
    luad = dataset.add_case(project_id="TCGA-LUAD", normal_rna=False)
    dataset.write_manifest()
    return brca, luad


class TestEntities:
    def test_cases_and_diseases(self, dataset, two_cases):
        brca, luad = two_cases
        world = dataset.world()

        assert world.has_cases
        assert [c.case_id for c in world.list_cases()] == [brca, luad]
        assert world.diseases == ["brca", "luad"]
        assert [c.case_id for c in world.cases_for_disease("luad")] == [luad]
        assert world.cases_for_disease("ov") == []

    def test_all_entities(self, dataset, two_cases):
        world = dataset.world()
        assert world.all_entities(EntityKind.DISEASE) == ["brca", "luad"]
        assert world.all_entities(EntityKind.CHROMOSOME) == list(CHROMOSOMES)
        pairs = world.all_entities(EntityKind.CHROMOSOME_DISEASE)
        assert len(pairs) == 48
        assert pairs[0] == ("chr1", "brca")

    def test_unusable_manifest(self, dataset, caplog):
        with caplog.at_level(logging.WARNING):
            world = dataset.world()
        assert not world.has_cases
        assert not world.cases_loaded
        assert not world.common_data_ready()
        assert "continuing with no cases" in caplog.text

    def test_unknown_case_directory(self, dataset, two_cases, caplog):
        (dataset.data_dir / "derived_files" / "stray-case").mkdir(parents=True)
        with caplog.at_level(logging.WARNING):
            dataset.world()
        assert "unknown case stray-case" in caplog.text


class TestCaseArtifacts:
    def test_derived_states(self, dataset, two_cases):
        brca, luad = two_cases
        vcf = dataset.derive(brca, DerivedFileType.VCF)
        world = dataset.world()
        case_b, case_l = world.list_cases()

        assert world.case_artifact(case_b, DerivedFileType.VCF).path == vcf
        assert world.has_artifact(case_b, DerivedFileType.VCF) is ArtifactState.PRESENT
        absent = world.case_artifact(case_l, DerivedFileType.VCF)
        assert absent.is_absent
        expected_name = DerivedFileType.VCF.filename(dataset.file_id(luad, Source.NORMAL_DNA))
        assert absent.path == dataset.data_dir / "derived_files" / luad / expected_name
        assert world.case_artifact(case_l, DerivedFileType.NORMAL_RNA_ALLCOUNT).is_not_applicable

    def test_downloadable_states(self, dataset, two_cases):
        brca, luad = two_cases
        dataset.download(brca, Source.TUMOR_DNA)
        dataset.download(brca, Source.NORMAL_DNA, verified=False)
        dataset.download(brca, Source.TUMOR_RNA, md5="0" * 32)
        dataset.download(brca, Source.NORMAL_RNA, partial=True)
        world = dataset.world()
        case_b, case_l = world.list_cases()

        verified = world.downloadable(case_b, Source.TUMOR_DNA)
        assert verified.is_present and verified.on_disk
        assert world.downloadable(case_b, Source.NORMAL_DNA).awaiting_verification
        assert world.downloadable(case_b, Source.TUMOR_RNA).awaiting_verification
        assert world.downloadable(case_b, Source.NORMAL_RNA).awaiting_verification
        missing = world.downloadable(case_l, Source.TUMOR_DNA)
        assert missing.needs_download
        assert missing.file_id == dataset.file_id(luad, Source.TUMOR_DNA)
        assert world.downloadable(case_l, Source.NORMAL_RNA).is_not_applicable
        assert world.has_artifact(case_l, Source.NORMAL_RNA) is ArtifactState.NOT_APPLICABLE

    def test_file_downloaded_and_verified(self, dataset, two_cases):
        brca, _ = two_cases
        dataset.download(brca, Source.TUMOR_DNA)
        file_id = dataset.file_id(brca, Source.TUMOR_DNA)
        world = dataset.world()

        assert world.file_downloaded_and_verified(file_id, dataset.md5_of(file_id).upper())
        assert world.file_downloaded_and_verified(file_id)
        assert not world.file_downloaded_and_verified(file_id, "f" * 32)
        assert not world.file_downloaded_and_verified("unknown")

    def test_derived_files_go_next_to_downloads(self, dataset, two_cases, tmp_path):
        brca, _ = two_cases
        second = tmp_path / "data2"
        (second / "downloaded_files" / dataset.file_id(brca, Source.TUMOR_DNA)).mkdir(parents=True)
        (second / "downloaded_files" / dataset.file_id(brca, Source.TUMOR_DNA) / "t.bam").write_text("x")
        world = dataset.world(data_directories=[str(dataset.data_dir), str(second)])

        path = world.expected_derived_path(world.list_cases()[0], DerivedFileType.VCF)
        assert path.parent == second / "derived_files" / brca

    def test_has_artifact_rejects_other_kinds(self, dataset, two_cases):
        world = dataset.world()
        with pytest.raises(TypeError):
            world.has_artifact(world.list_cases()[0], "vcf")

    def test_download_size(self, dataset, two_cases):
        brca, _ = two_cases
        world = dataset.world()
        assert world.download_size(dataset.file_id(brca, Source.TUMOR_DNA)) == 1000
        assert world.download_size("unknown") == 0

    def test_download_sizes_for_many_cases(self, dataset):
        cases = {}
        for i in range(3000):
            files = {source: SourceFile(f"{source.value}-{i}", size=i) for source in Source}
            cases[f"case-{i}"] = Case(f"case-{i}", "TCGA-BRCA", files)

        world = WorldSnapshot(dataset.config(), cases, Inventory())

        assert len(world.source_files) == 12000
        assert world.download_size("normal_rna-2999") == 2999
        total = sum(world.download_size(f"{s.value}-{i}") for s in Source for i in range(3000))
        assert total == 4 * sum(range(3000))


class TestGlobalFiles:
    def test_common_data(self, dataset, two_cases):
        assert not dataset.world().common_data_ready()
        dataset.final_result("ase_correction.txt")
        world = dataset.world()
        assert world.common_data_ready()
        assert [a.path.name for a in world.common_data_artifacts()] == ["ase_correction.txt"]

    def test_one_off_is_cached(self, dataset, two_cases):
        world = dataset.world()
        path = dataset.final_results / "maf_file_list.txt"
        assert world.one_off(path).is_absent
        dataset.final_result("maf_file_list.txt")
        assert world.one_off(path).is_absent

    def test_expression_files(self, dataset, two_cases, caplog):
        dataset.place(dataset.expression_dir, "expression_brca")
        dataset.place(dataset.expression_dir, "expression_ov")
        with caplog.at_level(logging.WARNING):
            world = dataset.world()

        assert world.expression_file("brca").is_present
        missing = world.expression_file("luad")
        assert missing.is_absent
        assert missing.path == dataset.expression_dir / "expression_luad"
        assert "unknown disease 'ov'" in caplog.text

    def test_expression_distribution_files(self, dataset, two_cases, caplog):
        dataset.place(dataset.distribution_dir, "expression_distribution_chr1_brca")
        dataset.place(dataset.distribution_dir, "expression_distribution_X_luad")
        dataset.place(dataset.distribution_dir, "expression_distribution_chr1")
        dataset.place(dataset.distribution_dir, "expression_distribution_chrM_brca")
        with caplog.at_level(logging.WARNING):
            world = dataset.world()

        assert world.expression_distribution_file("chr1", "brca").is_present
        assert world.expression_distribution_file("chrX", "luad").is_present
        assert world.expression_distribution_file("chr2", "brca").is_absent
        assert "Malformed" in caplog.text
        assert "unknown chromosome" in caplog.text


def test_format_bytes():
    assert format_bytes(512) == "512 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(3 * 1024 ** 3) == "3.0 GB"


def test_repr(dataset):
    dataset.add_case()
    dataset.write_manifest()
    assert "cases=1" in repr(WorldSnapshot.build(dataset.config()))
