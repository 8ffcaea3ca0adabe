"""Tests for the script workspace."""

import os

from aseflow.pipeline_core.batcher import CLOUD, CLUSTER, LOCAL, UNIX
from aseflow.pipeline_core.workspace import ScriptWorkspace


def test_script_paths(dataset):
    workspace = ScriptWorkspace(dataset.config())
    assert workspace.local_script == dataset.script_dir / "ASENextSteps.cmd"
    assert workspace.cluster_script is None
    assert workspace.cloud_script is None
    assert [p.name for p in workspace.all_scripts()] == [
        "ASENextSteps.cmd",
        "ASENextStepsLinux",
        "ASEDownload.cmd",
    ]


def test_build_targets(dataset):
    config = dataset.config(
        cluster_script_filename="cluster.cmd",
        cluster_binaries_directory="\\\\share\\bin\\",
        cluster_scheduler="head1",
        binaries_directory="c:\\bin\\",
    )
    targets = ScriptWorkspace(config).build_targets()

    local, cluster, unix, cloud = targets[LOCAL], targets[CLUSTER], targets[UNIX], targets[CLOUD]
    assert local.line_terminator == "\r\n" and local.binaries_directory == "c:\\bin\\"
    assert cluster.shuffle and cluster.binaries_directory == "\\\\share\\bin\\"
    assert cluster.line_prefix.endswith("/scheduler:head1 ")
    assert unix.header == ("#!/bin/bash",) and unix.executable
    assert unix.line_terminator == "\n"
    assert not cloud.enabled


def test_prepare_removes_stale_scripts(dataset):
    workspace = ScriptWorkspace(dataset.config())
    dataset.script_dir.mkdir()
    stale = dataset.script_dir / "ASEDownload.cmd"
    stale.write_text("old")
    unrelated = dataset.script_dir / "notes.txt"
    unrelated.write_text("keep")

    workspace.prepare()

    assert not stale.exists()
    assert unrelated.exists()


def test_download_script(dataset):
    workspace = ScriptWorkspace(dataset.config(binaries_directory="c:\\bin\\"))
    assert workspace.write_download_script([]) is None

    path = workspace.write_download_script(["id1", "id2"])

    assert path == dataset.script_dir / "ASEDownload.cmd"
    assert path.read_bytes() == (
        b"c:\\bin\\gdc-client download --no-file-md5sum --token-file token.txt id1\r\n"
        b"c:\\bin\\gdc-client download --no-file-md5sum --token-file token.txt id2\r\n"
    )


def test_disabled_download_script(dataset):
    workspace = ScriptWorkspace(dataset.config(download_script_filename=""))
    assert workspace.write_download_script(["id1"]) is None
    assert not os.path.exists(dataset.script_dir / "ASEDownload.cmd")
