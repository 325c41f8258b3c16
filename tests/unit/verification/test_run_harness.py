import json

import pytest

from netrain_formula.verification.run_harness import main, run_harness


def _run(argv):
    with pytest.raises(SystemExit) as info:
        main(argv)
    return info.value.code


def _records(runs_dir, kind):
    return [json.loads(p.read_text(encoding="utf-8")) for p in runs_dir.glob("*_" + kind + "_*.json")]


def _argv(prefix, runs_dir, *extra):
    return ["--prefix", str(prefix), "--runs-dir", str(runs_dir), "--grace-period", "0.5", *extra]


class TestPass:

    def test_exit_zero_and_pass_record(self, make_artifact, tmp_path, capsys):
        artifact = make_artifact()
        runs_dir = tmp_path / "runs"
        assert _run(_argv(artifact.prefix, runs_dir)) == 0

        records = _records(runs_dir, "PASS")
        assert len(records) == 1
        record = records[0]
        assert record["result"] == "PASS"
        assert record["package_name"] == "netrain"
        assert record["package_version"] == "0.2.0"
        assert record["artifact_sha256"] == artifact.sha256
        assert [o["passed"] for o in record["outcomes"]] == [True, True]
        assert _records(runs_dir, "FAIL") == []
        assert "HARNESS RESULT: PASS" in capsys.readouterr().out


class TestCheckFailures:

    def test_version_failure_exits_one(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        assert _run(_argv(make_artifact("no_banner").prefix, runs_dir)) == 1
        record = _records(runs_dir, "FAIL")[0]
        assert record["failure_type_id"] == "VERSION_CHECK_FAILED"
        assert record["check"] == "version"
        assert len(record["outcomes"]) == 2

    def test_strict_exit(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        prefix = make_artifact("version_exit1").prefix
        assert _run(_argv(prefix, runs_dir, "--strict-exit")) == 1

    def test_lifecycle_failure_exits_two(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        argv = ["--prefix", str(make_artifact("exit_early").prefix), "--runs-dir", str(runs_dir),
                "--grace-period", "2.0"]
        assert _run(argv) == 2
        record = _records(runs_dir, "FAIL")[0]
        assert record["failure_type_id"] == "PROCESS_LIFECYCLE_FAILED"
        assert record["check"] == "lifecycle"
        assert record["outcomes"][1]["final_state"] == "Reaped"


class TestContractViolations:

    def test_missing_artifact(self, tmp_path):
        runs_dir = tmp_path / "runs"
        assert _run(_argv(tmp_path / "empty-prefix", runs_dir)) == 3
        record = _records(runs_dir, "FAIL")[0]
        assert record["failure_type_id"] == "ARTIFACT_MISSING"
        assert record["package_name"] == "netrain"

    def test_invalid_descriptor(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"name": "netrain"}), encoding="utf-8")
        argv = _argv(make_artifact().prefix, runs_dir, "--descriptor", str(bad))
        assert _run(argv) == 3
        record = _records(runs_dir, "FAIL")[0]
        assert record["failure_type_id"] == "DESCRIPTOR_INVALID"
        assert record["package_name"] == ""

    def test_invalid_tunable(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        argv = _argv(make_artifact().prefix, runs_dir, "--reap-timeout", "-1")
        assert _run(argv) == 3
        assert _records(runs_dir, "FAIL")[0]["failure_type_id"] == "DESCRIPTOR_INVALID"

    def test_unwritable_runs_dir(self, make_artifact, tmp_path, capsys):
        runs_dir = tmp_path / "runs"
        runs_dir.write_text("not a directory", encoding="utf-8")
        assert _run(_argv(make_artifact().prefix, runs_dir)) == 3
        assert "CONTRACT_VIOLATION" in capsys.readouterr().err


class TestRunHarnessSubprocess:

    def test_pass_returns_zero(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        code = run_harness(str(make_artifact().prefix), str(runs_dir), grace_period_seconds=0.5)
        assert code == 0
        assert len(_records(runs_dir, "PASS")) == 1

    def test_documented_timings_forwarded(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        code = run_harness(
            str(make_artifact().prefix), str(runs_dir),
            grace_period_seconds=2.0, reap_timeout_seconds=1.0,
        )
        assert code == 0
        outcome = _records(runs_dir, "PASS")[0]["outcomes"][1]
        assert outcome["final_state"] == "Reaped"

    def test_lifecycle_failure_returns_two(self, make_artifact, tmp_path):
        runs_dir = tmp_path / "runs"
        code = run_harness(
            str(make_artifact("exit_early").prefix), str(runs_dir), grace_period_seconds=2.0,
        )
        assert code == 2
        assert _records(runs_dir, "FAIL")[0]["failure_type_id"] == "PROCESS_LIFECYCLE_FAILED"

    def test_strict_exit_forwarded(self, make_artifact, tmp_path):
        prefix = str(make_artifact("version_exit1").prefix)
        assert run_harness(prefix, str(tmp_path / "lenient"), grace_period_seconds=0.5) == 0
        code = run_harness(prefix, str(tmp_path / "strict"), grace_period_seconds=0.5, strict_exit=True)
        assert code == 1
