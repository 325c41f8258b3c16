# =============================================================================
# netrain-formula -- EXCEPTION HIERARCHY
# File:   netrain_formula/exceptions.py
# =============================================================================
#
# SCOPE
# -----
# Defines every exception raised by the formula: descriptor validation,
# build, and verification failures. All exceptions are pure value objects:
# no side effects, no I/O, no references to live processes.
#
# EXCEPTION HIERARCHY
# -------------------
#   FormulaError(Exception)                       -- base; never raised directly
#     DescriptorError(FormulaError)               -- invalid descriptor field
#       HarnessConfigError(DescriptorError)       -- invalid harness tunable
#     BuildError(FormulaError)                    -- fatal; aborts install
#       ChecksumMismatchError(BuildError)         -- source archive digest mismatch
#     VerificationError(FormulaError)             -- base for test failures
#       VersionCheckError(VerificationError)      -- version text not found
#       ProcessLifecycleError(VerificationError)  -- spawn / signal / reap failure
#         ReapTimeoutError(ProcessLifecycleError, TimeoutError)
#
# MESSAGE CONTRACT
# ----------------
# Every message is deterministic (derived only from constructor arguments),
# ASCII-safe, and non-empty.
# =============================================================================

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class FormulaError(Exception):
    """
    Base class for all formula exceptions.

    Never raised directly. Use a concrete subclass.

    Attributes:
        message:     Human-readable description. Always non-empty.
        field_name:  Offending field, or empty string when not applicable.
        value:       Offending value, or None.
    """

    def __init__(
        self,
        message:    str,
        field_name: str = "",
        value:      Any = None,
    ) -> None:
        if not isinstance(message, str) or not message:
            raise ValueError(
                "FormulaError: message must be a non-empty string"
            )
        if not isinstance(field_name, str):
            raise ValueError(
                "FormulaError: field_name must be a string"
            )
        super().__init__(message)
        self.message:    str = message
        self.field_name: str = field_name
        self.value:      Any = value

    def __repr__(self) -> str:
        return (
            self.__class__.__name__
            + "(field_name=" + repr(self.field_name)
            + ", value=" + repr(self.value)
            + ", message=" + repr(self.message)
            + ")"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FormulaError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.field_name == other.field_name
            and self.value == other.value
            and self.message == other.message
        )

    __hash__ = Exception.__hash__


# =============================================================================
# DESCRIPTOR / CONFIGURATION
# =============================================================================

class DescriptorError(FormulaError):
    """
    Raised when a PackageDescriptor field (or a descriptor file) is invalid.

    Message format:
        "DescriptorError: field '<field_name>' <constraint>; got <value!r>"
    """

    def __init__(self, field_name: str, value: Any, constraint: str) -> None:
        if not field_name:
            raise ValueError(
                self.__class__.__name__ + ": field_name must be non-empty"
            )
        message = (
            self.__class__.__name__ + ": field '" + field_name + "' "
            + constraint + "; got " + repr(value)
        )
        super().__init__(message, field_name=field_name, value=value)
        self.constraint: str = constraint


class HarnessConfigError(DescriptorError):
    """Raised when a HarnessConfig tunable is out of range."""


# =============================================================================
# BUILD
# =============================================================================

class BuildError(FormulaError):
    """
    Raised when the build cannot produce an installed artifact.

    Fatal: the install is aborted and nothing is registered.

    Attributes:
        returncode:  Exit status of the build tool, or None when the tool
                     never ran to completion (missing, timed out).
        output:      Combined stdout/stderr of the build tool, possibly empty.
    """

    def __init__(
        self,
        message:    str,
        returncode: Optional[int] = None,
        output:     str = "",
    ) -> None:
        super().__init__(message, field_name="", value=returncode)
        self.returncode: Optional[int] = returncode
        self.output:     str = output


class ChecksumMismatchError(BuildError):
    """
    Raised when a source archive's SHA-256 differs from the descriptor's.

    Message format:
        "ChecksumMismatchError: <archive> has sha256 <actual>, expected <expected>"
    """

    def __init__(self, archive: str, expected: str, actual: str) -> None:
        message = (
            "ChecksumMismatchError: " + archive
            + " has sha256 " + actual
            + ", expected " + expected
        )
        super().__init__(message)
        self.archive:  str = archive
        self.expected: str = expected
        self.actual:   str = actual


# =============================================================================
# VERIFICATION
# =============================================================================

class VerificationError(FormulaError):
    """
    Base class for test-phase failures.

    Attributes:
        check:       Name of the failing check ("version" or "lifecycle").
        diagnostic:  Captured output text or process state history.
    """

    check_name: str = ""

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(message, field_name="", value=None)
        self.check:      str = self.check_name
        self.diagnostic: str = diagnostic


class VersionCheckError(VerificationError):
    """
    Raised when the version output lacks the expected "NetRain v<version>"
    text, or when a disallowed non-zero exit status is observed.
    """

    check_name = "version"


class ProcessLifecycleError(VerificationError):
    """
    Raised when the demo process cannot be spawned, signalled, or reaped,
    or when it leaves the expected state sequence.

    Attributes:
        state:  Value of the handle's ProcessState when the failure was
                detected, or empty string if no handle existed.
    """

    check_name = "lifecycle"

    def __init__(self, message: str, diagnostic: str = "", state: str = "") -> None:
        super().__init__(message, diagnostic=diagnostic)
        self.state: str = state


class ReapTimeoutError(ProcessLifecycleError, TimeoutError):
    """Raised when a bounded wait for process exit expires."""

    def __init__(
        self,
        pid:        int,
        timeout:    float,
        state:      str = "",
        diagnostic: str = "",
    ) -> None:
        message = (
            "ReapTimeoutError: process " + str(pid)
            + " was not reaped within " + repr(timeout) + "s"
        )
        super().__init__(message, diagnostic=diagnostic, state=state)
        self.pid:     int = pid
        self.timeout: float = timeout
