# netrain_formula/verification/run_harness.py
# Verification Harness -- Entry Point.
#
# Standard invocation:
#   python -m netrain_formula.verification.run_harness \
#       --prefix /usr/local/Cellar/netrain/0.2.0 \
#       --runs-dir runs
#
# EXIT CODES:
#   0  -- Both checks passed.
#   1  -- Version assertion failed.
#   2  -- Process lifecycle assertion failed (or wall-clock backstop expired).
#   3  -- Contract violation: bad arguments, invalid descriptor, missing artifact.
#   4  -- Internal harness error.
#
# Single-threaded. Spawns the artifact under test; no other subprocesses.
# A SIGALRM backstop of overall timeout + 5s raises inside the harness, so
# the demo process is still force-killed and reaped (Unix only).

import argparse
import json
import signal
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from netrain_formula.build import InstalledArtifact
from netrain_formula.descriptor import DEFAULT_DESCRIPTOR_PATH, load_descriptor
from netrain_formula.exceptions import FormulaError, ProcessLifecycleError
from netrain_formula.formula_version import FORMULA_VERSION, RECORD_FORMAT_VERSION

from .config import (
    DEFAULT_GRACE_PERIOD_SECONDS,
    DEFAULT_OVERALL_TIMEOUT_SECONDS,
    DEFAULT_REAP_TIMEOUT_SECONDS,
    DEFAULT_VERSION_TIMEOUT_SECONDS,
    HarnessConfig,
)
from .data_models.outcome import CheckName
from .failure_handler import FailureHandler
from .harness import VerificationHarness


# Extra seconds the SIGALRM backstop allows beyond overall_timeout_seconds.
_BACKSTOP_MARGIN_SECONDS: int = 5


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="NetRain formula verification harness",
        prog="python -m netrain_formula.verification.run_harness",
    )
    parser.add_argument(
        "--prefix",
        required=True,
        help="Install prefix containing bin/<name>.",
    )
    parser.add_argument(
        "--runs-dir",
        required=True,
        help="Directory for PASS/FAIL run records.",
    )
    parser.add_argument(
        "--descriptor",
        default=str(DEFAULT_DESCRIPTOR_PATH),
        help="Package descriptor JSON file. Defaults to the shipped netrain.json.",
    )
    parser.add_argument("--grace-period", type=float, default=DEFAULT_GRACE_PERIOD_SECONDS,
                        help="Seconds between spawning the demo process and signalling it.")
    parser.add_argument("--reap-timeout", type=float, default=DEFAULT_REAP_TIMEOUT_SECONDS,
                        help="Seconds allowed for the reap after SIGTERM.")
    parser.add_argument("--version-timeout", type=float, default=DEFAULT_VERSION_TIMEOUT_SECONDS,
                        help="Seconds allowed for the --version invocation.")
    parser.add_argument("--overall-timeout", type=float, default=DEFAULT_OVERALL_TIMEOUT_SECONDS,
                        help="Budget for both checks together.")
    parser.add_argument(
        "--strict-exit",
        action="store_true",
        default=False,
        help="Fail the version check when --version exits non-zero.",
    )
    return parser.parse_args(argv)


def _install_backstop(seconds: int) -> None:
    """Install a SIGALRM wall-clock backstop. Unix only."""
    try:
        def _timeout_handler(signum, frame):
            raise ProcessLifecycleError(
                f"ProcessLifecycleError: wall-clock backstop of {seconds}s expired; "
                f"harness aborted."
            )
        signal.signal(signal.SIGALRM, _timeout_handler)
        signal.alarm(seconds)
    except AttributeError:
        # Windows has no SIGALRM; the harness deadline still bounds every wait.
        pass


def _cancel_backstop() -> None:
    try:
        signal.alarm(0)
    except AttributeError:
        pass


def main(argv: Optional[List[str]] = None) -> None:
    """
    Load descriptor, locate artifact, run both checks, write the run record.

    On pass: prints summary and exits 0.
    On any failure: FailureHandler writes a FAIL record and exits non-zero.
    """
    args     = _parse_args(argv)
    run_id   = "RUN-" + datetime.now(timezone.utc).strftime("%Y%m%d") + "-" + str(uuid.uuid4())[:8].upper()
    runs_dir = Path(args.runs_dir)

    # Runs directory must be writable before anything is spawned.
    try:
        runs_dir.mkdir(parents=True, exist_ok=True)
        test_file = runs_dir / f".write_test_{run_id}"
        test_file.touch()
        test_file.unlink()
    except OSError as exc:
        sys.stderr.write(
            f"CONTRACT_VIOLATION: Cannot write to runs directory {runs_dir}: {exc}\n"
        )
        sys.exit(3)

    fh = FailureHandler(runs_dir=runs_dir, run_id=run_id)

    # -----------------------------------------------------------------------
    # STAGE 1: DESCRIPTOR, ARTIFACT, CONFIG
    # -----------------------------------------------------------------------
    try:
        descriptor = load_descriptor(Path(args.descriptor))
    except FormulaError as exc:
        fh.handle_from_exception(exc)

    fh.package_name    = descriptor.name
    fh.package_version = descriptor.version

    try:
        artifact = InstalledArtifact.at(Path(args.prefix), descriptor.name)
    except FormulaError as exc:
        fh.handle_from_exception(exc)

    try:
        config = HarnessConfig(
            grace_period_seconds=args.grace_period,
            reap_timeout_seconds=args.reap_timeout,
            version_timeout_seconds=args.version_timeout,
            overall_timeout_seconds=args.overall_timeout,
            allow_nonzero_exit=not args.strict_exit,
        )
    except FormulaError as exc:
        fh.handle_from_exception(exc)

    # -----------------------------------------------------------------------
    # STAGE 2: CHECKS
    # -----------------------------------------------------------------------
    _install_backstop(int(config.overall_timeout_seconds) + _BACKSTOP_MARGIN_SECONDS)
    try:
        report = VerificationHarness(descriptor, artifact, config).run()
    except ProcessLifecycleError as exc:
        _cancel_backstop()
        fh.handle("HARNESS_TIMEOUT", str(exc), check=CheckName.LIFECYCLE.value)
    except Exception as exc:
        _cancel_backstop()
        fh.handle("HARNESS_INTERNAL_ERROR", f"Harness raised {type(exc).__name__}: {exc}")
    _cancel_backstop()

    if not report.passed:
        failures = report.failures()
        first    = failures[0]
        failure_type = (
            "VERSION_CHECK_FAILED" if first.check is CheckName.VERSION
            else "PROCESS_LIFECYCLE_FAILED"
        )
        detail = "; ".join(f"{o.check.value}: {o.message}" for o in failures)
        fh.handle(
            failure_type_id=failure_type,
            detail=detail,
            check=first.check.value,
            outcomes=report.to_dict()["outcomes"],
        )

    # -----------------------------------------------------------------------
    # PASS: Write pass record and exit 0.
    # -----------------------------------------------------------------------
    ts = _now_iso()
    pass_record = {
        "result":                "PASS",
        "run_id":                run_id,
        "formula_version":       FORMULA_VERSION,
        "record_format_version": RECORD_FORMAT_VERSION,
        "package_name":          descriptor.name,
        "package_version":       descriptor.version,
        "artifact_path":         str(artifact.path),
        "artifact_sha256":       artifact.sha256,
        "outcomes":              report.to_dict()["outcomes"],
        "timestamp_iso":         ts,
    }

    ts_compact = ts.replace(":", "").replace("-", "")[:15]
    pass_filepath = runs_dir / f"{run_id}_PASS_{ts_compact}.json"
    try:
        with open(pass_filepath, "w", encoding="utf-8") as f:
            json.dump(pass_record, f, indent=4)
    except OSError as exc:
        fh.handle("HARNESS_INTERNAL_ERROR", f"Failed to write pass record: {exc}")

    print(
        f"HARNESS RESULT: PASS\n"
        f"Run ID:          {run_id}\n"
        f"Package:         {descriptor.name} {descriptor.version}\n"
        f"Artifact:        {artifact.path}\n"
        f"{report.summary()}\n"
        f"Pass record:     {pass_filepath}\n"
        f"Timestamp:       {ts}"
    )

    sys.exit(0)


def run_harness(
    prefix:                  str,
    runs_dir:                str,
    descriptor:              Optional[str] = None,
    grace_period_seconds:    Optional[float] = None,
    reap_timeout_seconds:    Optional[float] = None,
    version_timeout_seconds: Optional[float] = None,
    overall_timeout_seconds: Optional[float] = None,
    strict_exit:             bool = False,
) -> int:
    """
    Programmatic entry point.

    Runs the harness in a child interpreter exactly as if invoked via
    `python -m netrain_formula.verification.run_harness`, preserving the
    exit-code contract, and returns the exit code. Tunables left as None
    use the command-line defaults.
    """
    import subprocess

    cmd = [
        sys.executable,
        "-m", "netrain_formula.verification.run_harness",
        "--prefix",   str(prefix),
        "--runs-dir", str(runs_dir),
    ]
    if descriptor is not None:
        cmd += ["--descriptor", str(descriptor)]
    tunables = (
        ("--grace-period",    grace_period_seconds),
        ("--reap-timeout",    reap_timeout_seconds),
        ("--version-timeout", version_timeout_seconds),
        ("--overall-timeout", overall_timeout_seconds),
    )
    for flag, value in tunables:
        if value is not None:
            cmd += [flag, repr(float(value))]
    if strict_exit:
        cmd.append("--strict-exit")
    proc = subprocess.run(cmd)
    return proc.returncode


if __name__ == "__main__":
    main()
