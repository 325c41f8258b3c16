# netrain_formula/verification/checks.py
# The two harness checks against an installed artifact.
#
#   run_version_check    -- `<bin> --version` output contains "NetRain v<version>".
#   run_lifecycle_check  -- `<bin> --demo` spawns, survives the grace period,
#                           accepts SIGTERM and is reaped within the bound.
#
# Each check returns a passing TestOutcome or raises its VerificationError
# subclass. A demo process is reaped before run_lifecycle_check returns or
# raises, on every path.

from __future__ import annotations

import subprocess
import time
from datetime import datetime
from typing import Callable, Optional

from netrain_formula.build import InstalledArtifact
from netrain_formula.descriptor import PackageDescriptor
from netrain_formula.event_log import EventLog
from netrain_formula.exceptions import ProcessLifecycleError, VersionCheckError

from .config import HarnessConfig
from .data_models.outcome import CheckName, TestOutcome
from .process_handle import SignalKind, spawn


class Deadline:
    """Monotonic budget shared by every wait in one harness run."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._seconds = seconds
        self._end = clock() + seconds

    @property
    def seconds(self) -> float:
        return self._seconds

    def remaining(self) -> float:
        return max(0.0, self._end - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def clip(self, seconds: float) -> float:
        return min(seconds, self.remaining())


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


# =============================================================================
# CHECK A -- VERSION ASSERTION
# =============================================================================

def run_version_check(
    descriptor: PackageDescriptor,
    artifact:   InstalledArtifact,
    config:     HarnessConfig,
    deadline:   Optional[Deadline] = None,
) -> TestOutcome:
    """
    Run `<bin> --version` and look for the version banner in its combined
    stdout and stderr.

    The substring match is evaluated independently of the exit status.
    With allow_nonzero_exit=False a non-zero status fails the check as well.

    Raises VersionCheckError.
    """
    deadline = deadline if deadline is not None else Deadline(config.overall_timeout_seconds)
    expected = descriptor.version_banner
    argv     = [str(artifact.path), config.version_flag]
    timeout  = deadline.clip(config.version_timeout_seconds)
    if timeout <= 0:
        raise VersionCheckError(
            "VersionCheckError: overall timeout expired before " + " ".join(argv) + " could run"
        )

    # subprocess.run() kills and reaps the child itself when the timeout expires.
    try:
        proc = subprocess.run(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        output = _decode(exc.output)
        raise VersionCheckError(
            "VersionCheckError: " + " ".join(argv) + " did not exit within "
            + repr(timeout) + "s",
            diagnostic=output,
        ) from exc
    except OSError as exc:
        raise VersionCheckError(
            "VersionCheckError: could not run " + " ".join(argv) + ": " + str(exc)
        ) from exc

    output = _decode(proc.stdout)
    if expected not in output:
        raise VersionCheckError(
            "VersionCheckError: expected '" + expected + "' in " + config.version_flag
            + " output (exit status " + str(proc.returncode) + ")",
            diagnostic=output,
        )
    if proc.returncode != 0 and not config.allow_nonzero_exit:
        raise VersionCheckError(
            "VersionCheckError: " + " ".join(argv) + " exited with status "
            + str(proc.returncode) + " and non-zero exit is not allowed",
            diagnostic=output,
        )

    return TestOutcome(
        check=CheckName.VERSION,
        passed=True,
        message="found '" + expected + "' (exit status " + str(proc.returncode) + ")",
        captured_output=output,
    )


# =============================================================================
# CHECK B -- PROCESS LIFECYCLE ASSERTION
# =============================================================================

def run_lifecycle_check(
    descriptor: PackageDescriptor,
    artifact:   InstalledArtifact,
    config:     HarnessConfig,
    deadline:   Optional[Deadline] = None,
    history:    Optional[EventLog] = None,
    clock:      Optional[Callable[[], datetime]] = None,
    sleep:      Callable[[float], None] = time.sleep,
) -> TestOutcome:
    """
    Spawned -> (grace period) -> Running -> SIGTERM -> SignaledForTermination
    -> bounded reap -> Reaped.

    Exiting before the signal, or surviving it past the reap bound, is a
    failure. The handle is force-killed and reaped before any error leaves
    this function.

    Raises ProcessLifecycleError (ReapTimeoutError for an expired reap).
    """
    deadline = deadline if deadline is not None else Deadline(config.overall_timeout_seconds)
    history  = history if history is not None else EventLog()

    handle = spawn(artifact.path, [config.demo_flag], history=history, clock=clock)
    with handle:
        sleep(deadline.clip(config.grace_period_seconds))
        if deadline.expired:
            raise ProcessLifecycleError(
                "ProcessLifecycleError: overall timeout of " + repr(deadline.seconds)
                + "s expired during the grace period",
                diagnostic=history.render(),
                state=handle.state.value,
            )

        if not handle.confirm_running():
            raise ProcessLifecycleError(
                "ProcessLifecycleError: " + descriptor.name + " " + config.demo_flag
                + " exited on its own before the termination signal ("
                + handle.exit_status.describe() + ")",
                diagnostic=history.render(),
                state=handle.state.value,
            )

        handle.signal(SignalKind.TERMINATE)

        reap_budget = deadline.clip(config.reap_timeout_seconds)
        if reap_budget <= 0:
            raise ProcessLifecycleError(
                "ProcessLifecycleError: overall timeout of " + repr(deadline.seconds)
                + "s expired before the reap",
                diagnostic=history.render(),
                state=handle.state.value,
            )
        status = handle.wait(timeout=reap_budget)

    return TestOutcome(
        check=CheckName.LIFECYCLE,
        passed=True,
        message="pid " + str(handle.pid) + " " + status.describe() + " after "
                + SignalKind.TERMINATE.value,
        final_state=handle.state.value,
        events=history.events(),
    )
