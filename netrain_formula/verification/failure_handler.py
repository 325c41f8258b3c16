# netrain_formula/verification/failure_handler.py
# FailureHandler -- hard failure policy for the harness entry point.
#
# On failure: build a FailureRecord, write it to the runs directory, print a
# summary, and exit non-zero. No retry. sys.exit is the last operation.
# If writing the record itself fails, the failure is reported on stderr and
# the process exits 4.

import json
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from netrain_formula.exceptions import (
    BuildError,
    DescriptorError,
    FormulaError,
    ProcessLifecycleError,
    VersionCheckError,
)
from netrain_formula.formula_version import FORMULA_VERSION

from .data_models.failure_record import FailureRecord, FAILURE_TYPES


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Most specific class first.
_EXCEPTION_FAILURE_TYPES = (
    (VersionCheckError,     "VERSION_CHECK_FAILED"),
    (ProcessLifecycleError, "PROCESS_LIFECYCLE_FAILED"),
    (DescriptorError,       "DESCRIPTOR_INVALID"),
    (BuildError,            "ARTIFACT_MISSING"),
)


class FailureHandler:
    """
    Writes the failure record and terminates the harness process.

    package_name and package_version start empty and are filled in by the
    entry point once the descriptor has loaded.
    """

    def __init__(
        self,
        runs_dir: Path,
        run_id:   str,
    ):
        self._runs_dir        = runs_dir
        self._run_id          = run_id
        self.package_name:    str = ""
        self.package_version: str = ""

    def handle(
        self,
        failure_type_id: str,
        detail:          str,
        check:           str = "",
        outcomes:        Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """Execute the hard failure policy. This method does not return."""
        exit_code   = FAILURE_TYPES.get(failure_type_id, 4)
        detected_at = _now_iso()

        record = FailureRecord(
            failure_type_id=failure_type_id,
            exit_code=exit_code,
            check=check,
            detected_at_iso=detected_at,
            run_id=self._run_id,
            formula_version=FORMULA_VERSION,
            package_name=self.package_name,
            package_version=self.package_version,
            detail=detail,
            outcomes=list(outcomes or []),
        )

        try:
            self._runs_dir.mkdir(parents=True, exist_ok=True)
            ts_compact = detected_at.replace(":", "").replace("-", "").replace("+", "Z")[:15]
            filepath   = self._runs_dir / f"{self._run_id}_FAIL_{ts_compact}.json"

            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(asdict(record), f, indent=4)

            print(
                f"HARNESS RESULT: FAIL\n"
                f"Failure type:   {failure_type_id}\n"
                f"Exit code:      {exit_code}\n"
                f"Check:          {check or '(not applicable)'}\n"
                f"Detail:         {detail[:200]}\n"
                f"Record written: {filepath}"
            )

        except Exception as exc:
            sys.stderr.write(
                f"HARNESS_INTERNAL_ERROR: FailureHandler failed to write record: {exc}\n"
                f"Original failure: {failure_type_id} -- {detail}\n"
            )
            sys.exit(4)

        sys.exit(exit_code)

    def handle_from_exception(self, exc: Exception) -> None:
        """Map an exception to its failure type and invoke handle()."""
        failure_type_id = "HARNESS_INTERNAL_ERROR"
        for exc_type, type_id in _EXCEPTION_FAILURE_TYPES:
            if isinstance(exc, exc_type):
                failure_type_id = type_id
                break
        check = getattr(exc, "check", "") if isinstance(exc, FormulaError) else ""
        self.handle(
            failure_type_id=failure_type_id,
            detail=str(exc),
            check=check,
        )
