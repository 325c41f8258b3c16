import json
import os

import pytest

from netrain_formula.build import (
    RECEIPT_NAME,
    BuildInvoker,
    InstalledArtifact,
    is_installed,
    read_receipt,
    std_build_args,
)
from netrain_formula.exceptions import BuildError


def _staging_dirs(parent):
    return [p for p in parent.iterdir() if p.name.startswith(".netrain-staging-")]


class TestStdBuildArgs:

    def test_locked_path_install(self, tmp_path):
        assert std_build_args(tmp_path) == [
            "install", "--locked", "--root=" + str(tmp_path), "--path=.",
        ]

    def test_command_prefixes_build_tool(self, descriptor, tmp_path):
        invoker = BuildInvoker(descriptor, build_tool=("cargo",))
        assert invoker.command(tmp_path)[:2] == ["cargo", "install"]

    def test_empty_build_tool_rejected(self, descriptor):
        with pytest.raises(ValueError):
            BuildInvoker(descriptor, build_tool=())


class TestSuccessfulBuild:

    def test_installs_binary_and_receipt(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "cellar" / "netrain" / "0.2.0"
        artifact = BuildInvoker(descriptor, build_tool=fake_cargo()).invoke(source_dir, prefix)

        assert artifact.path == prefix.resolve() / "bin" / "netrain"
        assert artifact.path.is_file()
        assert os.access(artifact.path, os.X_OK)
        receipt = read_receipt(prefix)
        assert receipt["name"] == "netrain"
        assert receipt["version"] == "0.2.0"
        assert receipt["artifact"] == "bin/netrain"
        assert receipt["sha256"] == artifact.sha256
        assert is_installed(prefix, descriptor)

    def test_only_the_binary_is_staged(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        BuildInvoker(descriptor, build_tool=fake_cargo()).invoke(source_dir, prefix)
        assert sorted(p.name for p in prefix.iterdir()) == ["bin", RECEIPT_NAME]
        assert [p.name for p in (prefix / "bin").iterdir()] == ["netrain"]

    def test_staging_removed(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        BuildInvoker(descriptor, build_tool=fake_cargo()).invoke(source_dir, prefix)
        assert _staging_dirs(tmp_path) == []

    def test_reinstall_is_idempotent(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        invoker = BuildInvoker(descriptor, build_tool=fake_cargo())
        first = invoker.invoke(source_dir, prefix)
        second = invoker.invoke(source_dir, prefix)

        assert first.path == second.path
        assert first.sha256 == second.sha256
        assert len(list(prefix.glob("*.json"))) == 1
        assert [p.name for p in (prefix / "bin").iterdir()] == ["netrain"]

    def test_artifact_at_matches_install(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        installed = BuildInvoker(descriptor, build_tool=fake_cargo()).invoke(source_dir, prefix)
        assert InstalledArtifact.at(prefix, "netrain") == installed


class TestFailedBuild:

    def test_non_zero_exit_raises_with_output(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        with pytest.raises(BuildError) as info:
            BuildInvoker(descriptor, build_tool=fake_cargo("fail")).invoke(source_dir, prefix)
        assert info.value.returncode == 101
        assert "cannot find value `pcap`" in info.value.output
        assert not is_installed(prefix)
        assert not (prefix / "bin" / "netrain").exists()
        assert _staging_dirs(tmp_path) == []

    def test_previous_install_left_alone(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        good = BuildInvoker(descriptor, build_tool=fake_cargo()).invoke(source_dir, prefix)
        receipt_before = (prefix / RECEIPT_NAME).read_text(encoding="utf-8")

        with pytest.raises(BuildError):
            BuildInvoker(descriptor, build_tool=fake_cargo("fail")).invoke(source_dir, prefix)

        assert (prefix / RECEIPT_NAME).read_text(encoding="utf-8") == receipt_before
        assert InstalledArtifact.at(prefix, "netrain").sha256 == good.sha256

    def test_failed_copy_keeps_previous_registration(self, descriptor, fake_cargo, source_dir, tmp_path, monkeypatch):
        prefix = tmp_path / "prefix"
        invoker = BuildInvoker(descriptor, build_tool=fake_cargo())
        good = invoker.invoke(source_dir, prefix)
        receipt_before = (prefix / RECEIPT_NAME).read_text(encoding="utf-8")

        def _disk_full(src, dst, *args, **kwargs):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("netrain_formula.build.shutil.copy2", _disk_full)
        with pytest.raises(BuildError, match="could not stage"):
            invoker.invoke(source_dir, prefix)

        assert is_installed(prefix, descriptor)
        assert (prefix / RECEIPT_NAME).read_text(encoding="utf-8") == receipt_before
        assert InstalledArtifact.at(prefix, "netrain").sha256 == good.sha256
        assert [p.name for p in (prefix / "bin").iterdir()] == ["netrain"]

    def test_no_binary_produced(self, descriptor, fake_cargo, source_dir, tmp_path):
        prefix = tmp_path / "prefix"
        with pytest.raises(BuildError, match="produced no bin/netrain"):
            BuildInvoker(descriptor, build_tool=fake_cargo("no_binary")).invoke(source_dir, prefix)
        assert read_receipt(prefix) is None

    def test_missing_build_tool(self, descriptor, source_dir, tmp_path):
        invoker = BuildInvoker(descriptor, build_tool=("netrain-no-such-build-tool",))
        with pytest.raises(BuildError, match="not found"):
            invoker.invoke(source_dir, tmp_path / "prefix")

    def test_missing_source_dir(self, descriptor, fake_cargo, tmp_path):
        invoker = BuildInvoker(descriptor, build_tool=fake_cargo())
        with pytest.raises(BuildError, match="does not exist"):
            invoker.invoke(tmp_path / "nowhere", tmp_path / "prefix")

    def test_timeout(self, descriptor, fake_cargo, source_dir, tmp_path):
        invoker = BuildInvoker(descriptor, build_tool=fake_cargo("hang"), timeout_seconds=1.0)
        with pytest.raises(BuildError, match="timed out") as info:
            invoker.invoke(source_dir, tmp_path / "prefix")
        assert info.value.returncode is None
        assert _staging_dirs(tmp_path) == []


class TestReceipt:

    def test_no_receipt(self, tmp_path):
        assert read_receipt(tmp_path) is None
        assert not is_installed(tmp_path)

    def test_receipt_for_other_version(self, descriptor, tmp_path):
        (tmp_path / RECEIPT_NAME).write_text(
            json.dumps({"name": "netrain", "version": "0.1.0"}), encoding="utf-8"
        )
        assert is_installed(tmp_path)
        assert not is_installed(tmp_path, descriptor)

    def test_artifact_at_missing_binary(self, tmp_path):
        with pytest.raises(BuildError, match="no installed artifact"):
            InstalledArtifact.at(tmp_path, "netrain")
