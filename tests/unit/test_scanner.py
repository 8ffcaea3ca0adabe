"""Tests for the data directory scanner."""

import logging

from aseflow.file_types import DerivedFileType, Source
from aseflow.scanner import file_age_days, scan_data_directories


def test_downloaded_file_with_md5(dataset):
    case_id = dataset.add_case()
    path = dataset.download(case_id, Source.TUMOR_DNA)
    file_id = dataset.file_id(case_id, Source.TUMOR_DNA)

    inventory = scan_data_directories([dataset.data_dir])

    found = inventory.downloaded[file_id]
    assert found.path == path
    assert found.size == 16
    assert not found.partial
    assert found.stored_md5 == dataset.md5_of(file_id)
    assert found.md5_path == path.parent / f"{path.name}.md5"
    assert found.md5_mtime > found.mtime
    assert found.data_directory == dataset.data_dir


def test_partial_and_unverified_downloads(dataset):
    case_id = dataset.add_case()
    dataset.download(case_id, Source.TUMOR_DNA, partial=True)
    dataset.download(case_id, Source.NORMAL_DNA, verified=False)

    inventory = scan_data_directories([dataset.data_dir])

    partial = inventory.downloaded[dataset.file_id(case_id, Source.TUMOR_DNA)]
    unverified = inventory.downloaded[dataset.file_id(case_id, Source.NORMAL_DNA)]
    assert partial.partial
    assert unverified.md5_path is None
    assert unverified.stored_md5 == ""


def test_index_files_are_ignored(dataset):
    case_id = dataset.add_case()
    path = dataset.download(case_id, Source.TUMOR_DNA)
    (path.parent / "aaa.bai").write_text("index")

    inventory = scan_data_directories([dataset.data_dir])
    assert inventory.downloaded[dataset.file_id(case_id, Source.TUMOR_DNA)].path == path


def test_derived_files(dataset):
    case_id = dataset.add_case()
    vcf = dataset.derive(case_id, DerivedFileType.VCF)
    (vcf.parent / "notes.txt").write_text("not derived")

    inventory = scan_data_directories([dataset.data_dir])

    key = (case_id, dataset.file_id(case_id, Source.NORMAL_DNA), DerivedFileType.VCF)
    assert inventory.derived[key].path == vcf
    assert len(inventory.derived) == 1
    assert inventory.derived_case_ids == [case_id]


def test_missing_data_directory_is_reported(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        inventory = scan_data_directories([tmp_path / "absent"])
    assert inventory.downloaded == {}
    assert "does not exist" in caplog.text


def test_first_data_directory_wins(dataset, tmp_path, caplog):
    case_id = dataset.add_case()
    first = dataset.download(case_id, Source.TUMOR_DNA)
    second_root = tmp_path / "data2"
    duplicate_dir = second_root / "downloaded_files" / first.parent.name
    duplicate_dir.mkdir(parents=True)
    (duplicate_dir / first.name).write_bytes(b"y")

    with caplog.at_level(logging.WARNING):
        inventory = scan_data_directories([dataset.data_dir, second_root])

    assert inventory.downloaded[first.parent.name].path == first
    assert "downloaded twice" in caplog.text


def test_sizes_and_age(dataset):
    case_id = dataset.add_case()
    path = dataset.download(case_id, Source.TUMOR_DNA)
    dataset.download(case_id, Source.NORMAL_DNA)
    inventory = scan_data_directories([dataset.data_dir])

    assert sum(f.size for f in inventory.downloaded.values()) == 32
    assert file_age_days(path, dataset.base_time + 2 * 86400) == 2.0
