# netrain_formula/verification/process_handle.py
# ProcessHandle -- one spawned process under test, from spawn to reap.
#
# State machine:
#
#   SPAWNED --> RUNNING --> SIGNALED_FOR_TERMINATION --> REAPED
#      |           |
#      +-----------+------> REAPED   (early exit, or forced cleanup)
#
# REAPED is terminal. Any other transition raises ProcessLifecycleError.
#
# Every blocking wait takes an explicit, finite timeout. close() (and the
# context manager) force-kills and reaps a handle that is not yet REAPED,
# so a handle never outlives its owner.
#
# On POSIX the child leads its own session, and signals go to the whole
# process group. A launcher script that does not exec its payload therefore
# cannot leave the payload running after the launcher is reaped.

from __future__ import annotations

import math
import os
import signal as _signal
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from netrain_formula.event_log import EventLog, FORCED_KILL, SIGNAL_SENT, SPAWN_FAILED
from netrain_formula.exceptions import ProcessLifecycleError, ReapTimeoutError


# Bound for the reap that follows a forced kill in close().
KILL_REAP_TIMEOUT_SECONDS: float = 5.0

# Process groups need setsid() and killpg(); elsewhere only the child is signalled.
_PROCESS_GROUPS: bool = hasattr(os, "killpg")

_POSIX_SIGNALS = {
    "TERMINATE": "SIGTERM",
    "INTERRUPT": "SIGINT",
    "KILL":      "SIGKILL",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# SECTION 1 -- ENUMERATIONS
# =============================================================================

class ProcessState(str, Enum):
    SPAWNED                  = "Spawned"
    RUNNING                  = "Running"
    SIGNALED_FOR_TERMINATION = "SignaledForTermination"
    REAPED                   = "Reaped"


_TRANSITIONS: Dict[ProcessState, FrozenSet[ProcessState]] = {
    ProcessState.SPAWNED:                  frozenset({ProcessState.RUNNING, ProcessState.REAPED}),
    ProcessState.RUNNING:                  frozenset({ProcessState.SIGNALED_FOR_TERMINATION,
                                                      ProcessState.REAPED}),
    ProcessState.SIGNALED_FOR_TERMINATION: frozenset({ProcessState.REAPED}),
    ProcessState.REAPED:                   frozenset(),
}


class SignalKind(str, Enum):
    """
    Signals the harness may send.

    TERMINATE -- polite shutdown request (SIGTERM on POSIX).
    INTERRUPT -- keyboard interrupt (SIGINT).
    KILL      -- uncatchable kill (SIGKILL on POSIX).
    """
    TERMINATE = "TERMINATE"
    INTERRUPT = "INTERRUPT"
    KILL      = "KILL"


# =============================================================================
# SECTION 2 -- ExitStatus
# =============================================================================

@dataclass(frozen=True)
class ExitStatus:
    """
    Collected exit status of a reaped process.

    returncode     -- raw Popen returncode; negative when ended by a signal.
    signal_number  -- signal that ended the process, or None.
    """
    returncode:    int
    signal_number: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitStatus":
        if returncode < 0:
            return cls(returncode=returncode, signal_number=-returncode)
        return cls(returncode=returncode)

    def describe(self) -> str:
        if self.signal_number is not None:
            try:
                name = _signal.Signals(self.signal_number).name
            except ValueError:
                name = "signal " + str(self.signal_number)
            return "terminated by " + name
        return "exited with status " + str(self.returncode)


# =============================================================================
# SECTION 3 -- ProcessHandle
# =============================================================================

def _check_timeout(timeout: float) -> float:
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValueError("timeout must be a number; got " + repr(timeout))
    if not math.isfinite(timeout) or timeout < 0:
        raise ValueError("timeout must be finite and >= 0; got " + repr(timeout))
    return float(timeout)


class ProcessHandle:
    """
    Exclusive owner of one child process.

    Construct through spawn(). Attributes are read-only views; state only
    moves through the methods below.
    """

    def __init__(
        self,
        proc:    subprocess.Popen,
        command: List[str],
        history: EventLog,
        clock:   Callable[[], datetime],
        group:   bool = False,
    ) -> None:
        self._proc        = proc
        self._command     = command
        self._history     = history
        self._clock       = clock
        self._group       = group
        self._group_swept = not group
        self._state       = ProcessState.SPAWNED
        self._exit_status: Optional[ExitStatus] = None
        self._signaled    = False
        self._forced      = False
        self._history.log_state_change(None, ProcessState.SPAWNED, self._clock())

    # -----------------------------------------------------------------------
    # Read-only views
    # -----------------------------------------------------------------------

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def exit_status(self) -> Optional[ExitStatus]:
        return self._exit_status

    @property
    def history(self) -> EventLog:
        return self._history

    @property
    def command(self) -> List[str]:
        return list(self._command)

    @property
    def exited_early(self) -> bool:
        """True if the process was reaped without being signalled or killed."""
        return self._state is ProcessState.REAPED and not self._signaled and not self._forced

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    def _transition(self, new_state: ProcessState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise self._error(
                "ProcessLifecycleError: illegal transition "
                + self._state.value + " -> " + new_state.value
                + " for pid " + str(self.pid)
            )
        old_state, self._state = self._state, new_state
        self._history.log_state_change(old_state, new_state, self._clock())

    def _record_exit(self, returncode: int) -> ExitStatus:
        self._exit_status = ExitStatus.from_returncode(returncode)
        self._transition(ProcessState.REAPED)
        return self._exit_status

    def _error(self, message: str) -> ProcessLifecycleError:
        return ProcessLifecycleError(
            message, diagnostic=self._history.render(), state=self._state.value
        )

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def poll(self) -> Optional[ExitStatus]:
        """Non-blocking reap. Returns the exit status if the process has exited."""
        if self._state is ProcessState.REAPED:
            return self._exit_status
        returncode = self._proc.poll()
        if returncode is None:
            return None
        return self._record_exit(returncode)

    def confirm_running(self) -> bool:
        """
        Move SPAWNED -> RUNNING if the process is still alive.

        Returns False (and reaps) if it already exited on its own.
        """
        if self._state is not ProcessState.SPAWNED:
            raise self._error(
                "ProcessLifecycleError: confirm_running() requires state Spawned; "
                "state is " + self._state.value
            )
        if self.poll() is not None:
            return False
        self._transition(ProcessState.RUNNING)
        return True

    def _exited_before(self, kind: SignalKind) -> ProcessLifecycleError:
        return self._error(
            "ProcessLifecycleError: pid " + str(self.pid)
            + " exited before " + kind.value + " could be delivered ("
            + self._exit_status.describe() + ")"
        )

    def _send(self, kind: SignalKind) -> None:
        # Like Popen.send_signal(), sends nothing once the process has exited.
        if self._group:
            if self._proc.poll() is None:
                os.killpg(self.pid, getattr(_signal, _POSIX_SIGNALS[kind.value]))
        elif kind is SignalKind.TERMINATE:
            self._proc.terminate()
        elif kind is SignalKind.KILL:
            self._proc.kill()
        else:
            self._proc.send_signal(_signal.SIGINT)

    def signal(self, kind: SignalKind) -> None:
        """
        Deliver a signal to a RUNNING (or already signalled) process, and to
        its whole process group where the platform has one.

        Raises ProcessLifecycleError if the process is not running, exited
        before delivery, or the OS refuses the signal.
        """
        if self._state not in (ProcessState.RUNNING, ProcessState.SIGNALED_FOR_TERMINATION):
            raise self._error(
                "ProcessLifecycleError: cannot signal pid " + str(self.pid)
                + " in state " + self._state.value
            )
        if self.poll() is not None:
            raise self._exited_before(kind)
        try:
            self._send(kind)
        except OSError as exc:
            raise self._error(
                "ProcessLifecycleError: could not deliver " + kind.value
                + " to pid " + str(self.pid) + ": " + str(exc)
            ) from exc
        # An exit between the poll above and the send leaves nothing delivered.
        if self._proc.returncode is not None:
            self.poll()
            raise self._exited_before(kind)
        self._signaled = True
        self._history.log_event(SIGNAL_SENT, {"pid": self.pid, "signal": kind.value}, self._clock())
        if self._state is ProcessState.RUNNING:
            self._transition(ProcessState.SIGNALED_FOR_TERMINATION)

    def wait(self, *, timeout: float) -> ExitStatus:
        """
        Block until the process is reaped, at most `timeout` seconds.

        Raises ReapTimeoutError (a TimeoutError) when the bound expires;
        the state is left unchanged.
        """
        timeout = _check_timeout(timeout)
        if self._state is ProcessState.REAPED:
            return self._exit_status
        try:
            returncode = self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise ReapTimeoutError(
                self.pid, timeout, state=self._state.value, diagnostic=self._history.render()
            ) from exc
        return self._record_exit(returncode)

    def _sweep_group(self) -> None:
        """SIGKILL whatever is left in the process group once the leader is reaped."""
        if self._group_swept:
            return
        self._group_swept = True
        try:
            os.killpg(self.pid, 0)
        except (ProcessLookupError, PermissionError):
            return
        self._history.log_event(FORCED_KILL, {"pgid": self.pid, "state": self._state.value},
                                self._clock())
        try:
            os.killpg(self.pid, _signal.SIGKILL)
        except ProcessLookupError:
            pass

    def close(self, kill_timeout: float = KILL_REAP_TIMEOUT_SECONDS) -> None:
        """
        Release the handle: force-kill and reap if not yet REAPED, then kill
        any process left in its group.

        Raises ProcessLifecycleError if the process survives SIGKILL for
        kill_timeout seconds.
        """
        if self._state is not ProcessState.REAPED and self.poll() is None:
            self._forced = True
            self._history.log_event(FORCED_KILL, {"pid": self.pid, "state": self._state.value},
                                    self._clock())
            try:
                self._send(SignalKind.KILL)
            except ProcessLookupError:
                # Already gone; the wait below collects it.
                pass
            self.wait(timeout=kill_timeout)
        self._sweep_group()

    def __enter__(self) -> "ProcessHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            "ProcessHandle(pid=" + repr(self.pid)
            + ", state=" + repr(self._state.value)
            + ", command=" + repr(self._command) + ")"
        )


# =============================================================================
# SECTION 4 -- spawn
# =============================================================================

def spawn(
    command: str,
    args:    Sequence[str] = (),
    *,
    history: Optional[EventLog] = None,
    clock:   Optional[Callable[[], datetime]] = None,
) -> ProcessHandle:
    """
    Start `command args...` detached from the harness's stdio, as the leader
    of a new session on POSIX.

    Raises ProcessLifecycleError if the process cannot be started. The
    failure is also recorded in `history` when one is supplied.
    """
    history = history if history is not None else EventLog()
    clock   = clock if clock is not None else _utc_now
    argv    = [str(command), *[str(a) for a in args]]
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=_PROCESS_GROUPS,
        )
    except (OSError, ValueError) as exc:
        history.log_event(SPAWN_FAILED, {"command": argv[0], "error": str(exc)}, clock())
        raise ProcessLifecycleError(
            "ProcessLifecycleError: could not spawn " + " ".join(argv) + ": " + str(exc),
            diagnostic=history.render(),
            state="",
        ) from exc
    return ProcessHandle(proc, argv, history, clock, group=_PROCESS_GROUPS)
