# netrain_formula/verification/__init__.py
# Verification harness for an installed NetRain binary.
#
# ENTRY POINT:
#   python -m netrain_formula.verification.run_harness --prefix [path]
#       --runs-dir [path]

from .checks import Deadline, run_lifecycle_check, run_version_check
from .config import HarnessConfig
from .data_models.outcome import CheckName, HarnessReport, TestOutcome
from .failure_handler import FailureHandler
from .harness import VerificationHarness
from .process_handle import ExitStatus, ProcessHandle, ProcessState, SignalKind, spawn

__all__ = [
    # Configuration
    "HarnessConfig",
    # Process handle
    "ExitStatus",
    "ProcessHandle",
    "ProcessState",
    "SignalKind",
    "spawn",
    # Checks
    "Deadline",
    "run_lifecycle_check",
    "run_version_check",
    # Results
    "CheckName",
    "HarnessReport",
    "TestOutcome",
    # Orchestration
    "FailureHandler",
    "VerificationHarness",
]
