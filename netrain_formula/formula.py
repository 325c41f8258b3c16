# =============================================================================
# netrain-formula -- FORMULA OPERATIONS
# File:   netrain_formula/formula.py
# =============================================================================
#
# The four operations a host package manager drives, each a plain function
# of an explicit PackageDescriptor:
#
#   install_package  -- optional archive checksum, then BuildInvoker.
#   verify_package   -- VerificationHarness against the installed artifact.
#   package_caveats  -- post-install message.
#   audit_package    -- publication checks on the descriptor.
#
# No module-level mutable state.
# =============================================================================

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

from .build import DEFAULT_BUILD_TOOL, BuildInvoker, InstalledArtifact
from .caveats import caveats_for
from .descriptor import PackageDescriptor, audit_descriptor, verify_source_archive
from .verification.config import HarnessConfig
from .verification.data_models.outcome import HarnessReport
from .verification.harness import VerificationHarness


def install_package(
    descriptor:      PackageDescriptor,
    source_dir:      Path,
    prefix:          Path,
    archive:         Optional[Path] = None,
    build_tool:      Sequence[str] = DEFAULT_BUILD_TOOL,
    timeout_seconds: Optional[float] = None,
) -> InstalledArtifact:
    """
    Build and install one package.

    When `archive` is given its SHA-256 is checked first; a mismatch raises
    ChecksumMismatchError before the build tool runs.
    """
    if archive is not None:
        verify_source_archive(descriptor, Path(archive))
    invoker = BuildInvoker(descriptor, build_tool=build_tool, timeout_seconds=timeout_seconds)
    return invoker.invoke(Path(source_dir), Path(prefix))


def verify_package(
    descriptor: PackageDescriptor,
    prefix:     Path,
    config:     Optional[HarnessConfig] = None,
    raise_on_failure: bool = True,
) -> HarnessReport:
    """
    Run the test phase against <prefix>/bin/<name>.

    Raises BuildError if nothing is installed there, and the first failing
    check's VerificationError unless raise_on_failure is False.
    """
    artifact = InstalledArtifact.at(Path(prefix), descriptor.name)
    report = VerificationHarness(descriptor, artifact, config).run()
    if raise_on_failure:
        report.raise_for_failure()
    return report


def package_caveats(descriptor: PackageDescriptor) -> str:
    return caveats_for(descriptor)


def audit_package(descriptor: PackageDescriptor, require_checksum: bool = True) -> List[str]:
    """Problems that block publication; empty when the descriptor is ready."""
    problems = audit_descriptor(descriptor)
    if not require_checksum:
        problems = [p for p in problems if not p.startswith("sha256:")]
    return problems
