# =============================================================================
# netrain-formula -- PACKAGE DESCRIPTOR
# File:   netrain_formula/descriptor.py
# =============================================================================
#
# SCOPE
# -----
# The PackageDescriptor value passed explicitly into build, install and test.
# Loading from the JSON descriptor file, source archive checksum
# verification, and the strict audit used by the CI gate.
#
# VALIDATION PHILOSOPHY
# ---------------------
# Validation is fail-fast, in this fixed order:
#
#   V1  Type     -- every text field is a str (sha256 may be None).
#   V2  Content  -- name is a non-empty lowercase ASCII token, version
#                   non-empty, URLs use http(s) or git schemes.
#   V3  Checksum -- sha256 is None or 64 lowercase hex characters.
#
# Violations raise DescriptorError(field_name, value, constraint).
# No field is coerced silently.
# =============================================================================

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, fields as dataclass_fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ChecksumMismatchError, DescriptorError


DEFAULT_DESCRIPTOR_PATH: Path = Path(__file__).parent / "descriptors" / "netrain.json"

_NAME_RE   = re.compile(r"^[a-z0-9][a-z0-9+_.-]*$")
_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")
_URL_PREFIXES = ("https://", "http://", "git://", "ssh://")

# Read size for archive hashing.
_CHUNK_SIZE: int = 1 << 16


# =============================================================================
# SECTION 1 -- PackageDescriptor
# =============================================================================

@dataclass(frozen=True)
class PackageDescriptor:
    """
    Immutable package metadata consumed by the host package manager and
    passed into every formula operation.

    Fields:
        name         -- binary and package name (e.g. "netrain").
        version      -- release version string (e.g. "0.2.0").
        desc         -- one-line description.
        homepage     -- project homepage URL.
        url          -- source archive URL.
        sha256       -- archive checksum, or None while unpublished.
        license      -- SPDX license identifier.
        head_url     -- VCS URL for head builds, or empty string.
        head_branch  -- VCS branch for head builds, or empty string.
    """
    name:        str
    version:     str
    desc:        str = ""
    homepage:    str = ""
    url:         str = ""
    sha256:      Optional[str] = None
    license:     str = ""
    head_url:    str = ""
    head_branch: str = ""

    def __post_init__(self) -> None:
        # V1: types.
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if f.name == "sha256" and value is None:
                continue
            if not isinstance(value, str):
                raise DescriptorError(f.name, value, "must be a string")

        # V2: content.
        if not self.name.isascii() or not _NAME_RE.match(self.name):
            raise DescriptorError(
                "name", self.name, "must be a non-empty lowercase ASCII token"
            )
        if not self.version or self.version != self.version.strip():
            raise DescriptorError(
                "version", self.version, "must be non-empty without surrounding whitespace"
            )
        for url_field in ("homepage", "url", "head_url"):
            value = getattr(self, url_field)
            if value and not value.startswith(_URL_PREFIXES):
                raise DescriptorError(
                    url_field, value, "must be an http(s), git or ssh URL"
                )
        if self.head_branch and not self.head_url:
            raise DescriptorError(
                "head_branch", self.head_branch, "requires head_url to be set"
            )

        # V3: checksum.
        if self.sha256 is not None and not _SHA256_RE.match(self.sha256):
            raise DescriptorError(
                "sha256", self.sha256, "must be 64 lowercase hex characters or null"
            )

    @property
    def version_banner(self) -> str:
        """Text the binary prints for --version, e.g. "NetRain v0.2.0"."""
        return "NetRain v" + self.version

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclass_fields(self)}


# =============================================================================
# SECTION 2 -- LOADING
# =============================================================================

def descriptor_from_dict(data: Dict[str, Any]) -> PackageDescriptor:
    """
    Build a PackageDescriptor from a decoded JSON object.

    Unknown keys are rejected so that typos do not silently drop metadata.
    """
    if not isinstance(data, dict):
        raise DescriptorError("descriptor", data, "must be a JSON object")
    known = {f.name for f in dataclass_fields(PackageDescriptor)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise DescriptorError(unknown[0], data[unknown[0]], "is not a descriptor field")
    for required in ("name", "version"):
        if required not in data:
            raise DescriptorError(required, None, "is required")
    return PackageDescriptor(**data)


def load_descriptor(path: Path) -> PackageDescriptor:
    """Load and validate a descriptor JSON file."""
    path = Path(path)
    if not path.exists():
        raise DescriptorError("path", str(path), "must point to an existing descriptor file")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise DescriptorError(
            "path", str(path), "could not be read as JSON (" + str(exc) + ")"
        ) from exc
    return descriptor_from_dict(data)


def default_descriptor() -> PackageDescriptor:
    """The shipped NetRain descriptor."""
    return load_descriptor(DEFAULT_DESCRIPTOR_PATH)


# =============================================================================
# SECTION 3 -- CHECKSUM
# =============================================================================

def sha256_of_file(path: Path) -> str:
    """Return the lowercase hex SHA-256 digest of a file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_source_archive(descriptor: PackageDescriptor, archive: Path) -> str:
    """
    Verify a downloaded source archive against the descriptor checksum.

    Returns the computed digest on success.

    Raises:
        DescriptorError        -- the descriptor declares no checksum.
        ChecksumMismatchError  -- the digest differs.
    """
    if descriptor.sha256 is None:
        raise DescriptorError(
            "sha256", None, "must be set before a source archive can be verified"
        )
    actual = sha256_of_file(Path(archive))
    if actual != descriptor.sha256:
        raise ChecksumMismatchError(str(archive), descriptor.sha256, actual)
    return actual


# =============================================================================
# SECTION 4 -- AUDIT
# =============================================================================

def audit_descriptor(descriptor: PackageDescriptor) -> List[str]:
    """
    Strict publication checks on top of construction-time validation.

    Returns a list of problems; an empty list means the descriptor is
    ready to publish.
    """
    problems: List[str] = []
    if descriptor.sha256 is None:
        problems.append("sha256: checksum is not set")
    for required in ("desc", "homepage", "url", "license"):
        if not getattr(descriptor, required):
            problems.append(required + ": must not be empty")
    if descriptor.url and descriptor.version not in descriptor.url:
        problems.append(
            "url: does not mention version " + descriptor.version
        )
    if descriptor.desc and descriptor.desc.endswith("."):
        problems.append("desc: must not end with a period")
    return problems
