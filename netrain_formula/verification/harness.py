# netrain_formula/verification/harness.py
# VerificationHarness -- runs both checks against one installed artifact.
#
# Pipeline sequence:
#   1. Version assertion     (run_version_check)
#   2. Lifecycle assertion   (run_lifecycle_check)
#
# Single-threaded. Checks run sequentially and both always run; a failure in
# one is recorded as its TestOutcome and does not skip the other. Both share
# one Deadline of overall_timeout_seconds. Errors that are not
# VerificationErrors propagate unchanged.

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional

from netrain_formula.build import InstalledArtifact
from netrain_formula.descriptor import PackageDescriptor
from netrain_formula.event_log import EventLog
from netrain_formula.exceptions import ProcessLifecycleError, VersionCheckError

from .checks import Deadline, run_lifecycle_check, run_version_check
from .config import HarnessConfig
from .data_models.outcome import CheckName, HarnessReport, TestOutcome


class VerificationHarness:
    """
    Exercises an InstalledArtifact.

    Args:
        descriptor:  Package whose version the artifact must report.
        artifact:    Installed binary under test.
        config:      Tunables; defaults to HarnessConfig().
        clock:       Timestamp source for the event history.
        sleep:       Grace-period sleep; replaced in tests.
    """

    def __init__(
        self,
        descriptor: PackageDescriptor,
        artifact:   InstalledArtifact,
        config:     Optional[HarnessConfig] = None,
        clock:      Optional[Callable[[], datetime]] = None,
        sleep:      Optional[Callable[[float], None]] = None,
    ) -> None:
        self._descriptor = descriptor
        self._artifact   = artifact
        self._config     = config if config is not None else HarnessConfig()
        self._clock      = clock
        self._sleep      = sleep if sleep is not None else time.sleep

    @property
    def config(self) -> HarnessConfig:
        return self._config

    def check_version(self, deadline: Optional[Deadline] = None) -> TestOutcome:
        try:
            return run_version_check(self._descriptor, self._artifact, self._config, deadline)
        except VersionCheckError as exc:
            return TestOutcome.failure(CheckName.VERSION, exc)

    def check_lifecycle(self, deadline: Optional[Deadline] = None) -> TestOutcome:
        history = EventLog()
        try:
            return run_lifecycle_check(
                self._descriptor,
                self._artifact,
                self._config,
                deadline=deadline,
                history=history,
                clock=self._clock,
                sleep=self._sleep,
            )
        except ProcessLifecycleError as exc:
            return TestOutcome.failure(CheckName.LIFECYCLE, exc, events=history.events())

    def run(self) -> HarnessReport:
        """Run both checks under one overall deadline and return the report."""
        deadline = Deadline(self._config.overall_timeout_seconds)
        return HarnessReport(outcomes=(
            self.check_version(deadline),
            self.check_lifecycle(deadline),
        ))
