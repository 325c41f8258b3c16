# =============================================================================
# netrain-formula -- BUILD INVOKER
# File:   netrain_formula/build.py
# =============================================================================
#
# PURPOSE
# -------
# Runs the external build tool and stages a single binary under
# <prefix>/bin/<name>.
#
# STAGING AND REGISTRATION
# ------------------------
#   1. The build tool installs into a private staging root created next to
#      the prefix. The prefix is not touched while the tool runs.
#   2. On success the binary is copied into <prefix>/bin under a temporary
#      name and moved into place with os.replace().
#   3. INSTALL_RECEIPT.json is written last. The receipt is the only
#      registration marker; a prefix without one is not installed.
#   4. The staging root is removed on every exit path.
#
# A failed build raises BuildError before step 2, so a previous install in
# the same prefix is left as it was.
# =============================================================================

from __future__ import annotations

import json
import os
import shutil
import stat
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .descriptor import PackageDescriptor, sha256_of_file
from .exceptions import BuildError
from .formula_version import RECORD_FORMAT_VERSION


RECEIPT_NAME: str = "INSTALL_RECEIPT.json"
DEFAULT_BUILD_TOOL: tuple = ("cargo",)

# Build output kept on BuildError.
_OUTPUT_TAIL_CHARS: int = 4000


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class InstalledArtifact:
    """
    The installed binary.

    Fields:
        path    -- absolute path of <prefix>/bin/<name>.
        prefix  -- absolute install prefix.
        sha256  -- digest of the installed binary.
    """
    path:   Path
    prefix: Path
    sha256: str

    @classmethod
    def at(cls, prefix: Path, name: str) -> "InstalledArtifact":
        """Describe an already-installed binary, e.g. for a standalone test run."""
        prefix = Path(prefix).resolve()
        path = prefix / "bin" / name
        if not path.is_file():
            raise BuildError("BuildError: no installed artifact at " + str(path))
        return cls(path=path, prefix=prefix, sha256=sha256_of_file(path))


def std_build_args(root: Path) -> List[str]:
    """Standard `cargo install` arguments for a locked, path-based install."""
    return ["install", "--locked", "--root=" + str(root), "--path=."]


def read_receipt(prefix: Path) -> Optional[Dict[str, Any]]:
    """Return the decoded install receipt, or None if the prefix is not registered."""
    receipt = Path(prefix) / RECEIPT_NAME
    if not receipt.is_file():
        return None
    with open(receipt, "r", encoding="utf-8") as f:
        return json.load(f)


def is_installed(prefix: Path, descriptor: Optional[PackageDescriptor] = None) -> bool:
    """True if the prefix carries a receipt (for the descriptor's name and version, if given)."""
    receipt = read_receipt(prefix)
    if receipt is None:
        return False
    if descriptor is None:
        return True
    return receipt.get("name") == descriptor.name and receipt.get("version") == descriptor.version


class BuildInvoker:
    """
    Invokes `<build-tool> install <standard-args>` for one descriptor.

    Args:
        descriptor:       Package being built.
        build_tool:       Command prefix for the build tool. The first
                          element is resolved on PATH.
        timeout_seconds:  Optional bound on the build; None waits for the
                          tool to finish.
    """

    def __init__(
        self,
        descriptor:      PackageDescriptor,
        build_tool:      Sequence[str] = DEFAULT_BUILD_TOOL,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        if not build_tool:
            raise ValueError("BuildInvoker: build_tool must not be empty")
        self._descriptor = descriptor
        self._build_tool = tuple(build_tool)
        self._timeout    = timeout_seconds

    def command(self, staging_root: Path) -> List[str]:
        return [*self._build_tool, *std_build_args(staging_root)]

    def invoke(self, source_dir: Path, prefix: Path) -> InstalledArtifact:
        """
        Build from source_dir and install into prefix.

        Raises BuildError if the tool is missing, exits non-zero, times out,
        or does not produce bin/<name>.
        """
        name       = self._descriptor.name
        source_dir = Path(source_dir).resolve()
        prefix     = Path(prefix).resolve()

        if not source_dir.is_dir():
            raise BuildError("BuildError: source directory " + str(source_dir) + " does not exist")
        if shutil.which(self._build_tool[0]) is None:
            raise BuildError("BuildError: build tool '" + self._build_tool[0] + "' not found")

        prefix.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix="." + name + "-staging-", dir=str(prefix.parent)))
        try:
            self._run_build(source_dir, staging)
            built = staging / "bin" / name
            if not built.is_file():
                raise BuildError(
                    "BuildError: build succeeded but produced no bin/" + name
                )
            return self._register(built, prefix)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _run_build(self, source_dir: Path, staging: Path) -> None:
        cmd = self.command(staging)
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(source_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            output = exc.output or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            raise BuildError(
                "BuildError: build timed out after " + repr(self._timeout) + "s",
                returncode=None,
                output=output[-_OUTPUT_TAIL_CHARS:],
            ) from exc
        except OSError as exc:
            raise BuildError(
                "BuildError: could not start build tool: " + str(exc)
            ) from exc

        if proc.returncode != 0:
            raise BuildError(
                "BuildError: '" + " ".join(cmd) + "' exited with status " + str(proc.returncode),
                returncode=proc.returncode,
                output=(proc.stdout or "")[-_OUTPUT_TAIL_CHARS:],
            )

    def _register(self, built: Path, prefix: Path) -> InstalledArtifact:
        name    = self._descriptor.name
        bin_dir = prefix / "bin"
        target  = bin_dir / name
        partial = bin_dir / ("." + name + ".partial")
        receipt = prefix / RECEIPT_NAME

        bin_dir.mkdir(parents=True, exist_ok=True)
        # A failed copy leaves the previous binary and receipt in place.
        try:
            shutil.copy2(built, partial)
            mode = os.stat(partial).st_mode
            os.chmod(partial, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            os.replace(partial, target)
        except OSError as exc:
            if partial.exists():
                partial.unlink()
            raise BuildError("BuildError: could not stage " + str(target) + ": " + str(exc)) from exc

        digest = sha256_of_file(target)
        record = {
            "name":                  name,
            "version":               self._descriptor.version,
            "artifact":              "bin/" + name,
            "sha256":                digest,
            "record_format_version": RECORD_FORMAT_VERSION,
            "installed_at_iso":      _now_iso(),
        }
        receipt_partial = prefix / (RECEIPT_NAME + ".partial")
        with open(receipt_partial, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=4)
        os.replace(receipt_partial, receipt)

        return InstalledArtifact(path=target, prefix=prefix, sha256=digest)
