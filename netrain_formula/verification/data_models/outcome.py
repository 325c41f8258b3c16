# netrain_formula/verification/data_models/outcome.py
# TestOutcome and HarnessReport -- results of the two harness checks.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from netrain_formula.event_log import Event, STATE_CHANGE
from netrain_formula.exceptions import VerificationError


class CheckName(str, Enum):
    VERSION   = "version"
    LIFECYCLE = "lifecycle"


def final_state_of(events: Tuple[Event, ...]) -> str:
    """State reached by the last STATE_CHANGE event, or empty string."""
    for event in reversed(events):
        if event.type == STATE_CHANGE:
            return str(event.data.get("to", ""))
    return ""


@dataclass(frozen=True)
class TestOutcome:
    """
    Result of one check.

    Fields
    ------
    check           : Which check produced this outcome.
    passed          : True on success.
    message         : One-line diagnostic.
    captured_output : Combined output of the --version run; empty for the
                      lifecycle check, whose output is not inspected.
    final_state     : Last ProcessState value of the demo process, or
                      empty string when no process was involved.
    events          : Event history of the demo process.
    error           : The VerificationError behind a failure, or None.
    """
    __test__ = False

    check:           CheckName
    passed:          bool
    message:         str
    captured_output: str = ""
    final_state:     str = ""
    events:          Tuple[Event, ...] = ()
    error:           Optional[VerificationError] = field(default=None, compare=False)

    @classmethod
    def failure(
        cls,
        check: CheckName,
        error: VerificationError,
        events: Tuple[Event, ...] = (),
        captured_output: str = "",
    ) -> "TestOutcome":
        return cls(
            check=check,
            passed=False,
            message=error.message,
            captured_output=captured_output or (error.diagnostic if check is CheckName.VERSION else ""),
            final_state=final_state_of(events),
            events=events,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check":           self.check.value,
            "passed":          self.passed,
            "message":         self.message,
            "captured_output": self.captured_output,
            "final_state":     self.final_state,
            "events":          [event.describe() for event in self.events],
        }


@dataclass(frozen=True)
class HarnessReport:
    """Ordered outcomes of one harness run."""
    outcomes: Tuple[TestOutcome, ...]

    @property
    def passed(self) -> bool:
        return all(outcome.passed for outcome in self.outcomes)

    def failures(self) -> List[TestOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.passed]

    def outcome(self, check: CheckName) -> TestOutcome:
        for outcome in self.outcomes:
            if outcome.check is check:
                return outcome
        raise KeyError(check.value)

    def raise_for_failure(self) -> None:
        """Raise the error of the first failed check, if any."""
        for outcome in self.failures():
            if outcome.error is not None:
                raise outcome.error

    def summary(self) -> str:
        lines = []
        for outcome in self.outcomes:
            status = "PASS" if outcome.passed else "FAIL"
            lines.append("{:<10} {}  {}".format(outcome.check.value, status, outcome.message))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed":   self.passed,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
