# netrain_formula/verification/data_models/failure_record.py
# FailureRecord data class and failure type registry.

from dataclasses import dataclass, field
from typing import Any, Dict, List


# ---------------------------------------------------------------------------
# FAILURE TYPE REGISTRY
# ---------------------------------------------------------------------------
# Exit code mapping:
#   Code 1 -- version assertion failed
#   Code 2 -- process lifecycle assertion failed
#   Code 3 -- contract violation (arguments, descriptor, missing artifact)
#   Code 4 -- internal harness errors

FAILURE_TYPES = {
    # Exit Code 1
    "VERSION_CHECK_FAILED":      1,
    # Exit Code 2
    "PROCESS_LIFECYCLE_FAILED":  2,
    "HARNESS_TIMEOUT":           2,
    # Exit Code 3
    "CONTRACT_VIOLATION":        3,
    "DESCRIPTOR_INVALID":        3,
    "ARTIFACT_MISSING":          3,
    # Exit Code 4
    "HARNESS_INTERNAL_ERROR":    4,
}


@dataclass
class FailureRecord:
    """
    Failure record written to the runs directory on any hard failure.

    Written once as JSON; never modified afterwards.

    Fields:
      failure_type_id  -- Key from FAILURE_TYPES.
      exit_code        -- Integer exit code (1-4).
      check            -- Failing check ("version", "lifecycle") or empty.
      detected_at_iso  -- UTC ISO-8601 timestamp of failure detection.
      run_id           -- Run identifier for this harness invocation.
      formula_version  -- FORMULA_VERSION at time of failure.
      package_name     -- Descriptor name, empty if the descriptor did not load.
      package_version  -- Descriptor version, empty if the descriptor did not load.
      detail           -- Human-readable failure description.
      outcomes         -- Serialized TestOutcomes, empty before the checks ran.
    """
    failure_type_id:  str
    exit_code:        int
    check:            str
    detected_at_iso:  str
    run_id:           str
    formula_version:  str
    package_name:     str
    package_version:  str
    detail:           str
    outcomes:         List[Dict[str, Any]] = field(default_factory=list)
