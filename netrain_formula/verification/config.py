# netrain_formula/verification/config.py
# HarnessConfig -- tunables for the verification harness.
#
# Every blocking wait in the harness is bounded by one of these values.
# Durations must be finite and strictly positive; violations raise
# HarnessConfigError with the field name and value.

from __future__ import annotations

import math
from dataclasses import dataclass

from netrain_formula.exceptions import HarnessConfigError


DEFAULT_GRACE_PERIOD_SECONDS:    float = 2.0
DEFAULT_REAP_TIMEOUT_SECONDS:    float = 3.0
DEFAULT_VERSION_TIMEOUT_SECONDS: float = 10.0
DEFAULT_OVERALL_TIMEOUT_SECONDS: float = 30.0

_DURATION_FIELDS = (
    "grace_period_seconds",
    "reap_timeout_seconds",
    "version_timeout_seconds",
    "overall_timeout_seconds",
)


@dataclass(frozen=True)
class HarnessConfig:
    """
    Fields
    ------
    grace_period_seconds    : Wait between spawning the demo process and
                              signalling it.
    reap_timeout_seconds    : Bound on the reap after SIGTERM.
    version_timeout_seconds : Bound on the --version invocation.
    overall_timeout_seconds : Budget for both checks together; every wait is
                              clipped to what remains.
    allow_nonzero_exit      : Accept a non-zero status from --version. The
                              binary may warn about missing privileges and
                              exit 1 while still printing its version.
    version_flag            : Flag that prints the version banner.
    demo_flag               : Flag that starts the unprivileged demo mode.
    """
    grace_period_seconds:    float = DEFAULT_GRACE_PERIOD_SECONDS
    reap_timeout_seconds:    float = DEFAULT_REAP_TIMEOUT_SECONDS
    version_timeout_seconds: float = DEFAULT_VERSION_TIMEOUT_SECONDS
    overall_timeout_seconds: float = DEFAULT_OVERALL_TIMEOUT_SECONDS
    allow_nonzero_exit:      bool = True
    version_flag:            str = "--version"
    demo_flag:               str = "--demo"

    def __post_init__(self) -> None:
        for name in _DURATION_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise HarnessConfigError(name, value, "must be a number")
            if not math.isfinite(value):
                raise HarnessConfigError(name, value, "must be finite")
            if value <= 0:
                raise HarnessConfigError(name, value, "must be > 0")
        if not isinstance(self.allow_nonzero_exit, bool):
            raise HarnessConfigError(
                "allow_nonzero_exit", self.allow_nonzero_exit, "must be a bool"
            )
        for name in ("version_flag", "demo_flag"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.startswith("-"):
                raise HarnessConfigError(name, value, "must be a flag starting with '-'")
