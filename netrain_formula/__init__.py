# netrain_formula/__init__.py
# Package-manager formula for the NetRain network monitor.
# Canonical import source for descriptor, build, caveats and verification.

from netrain_formula.exceptions import (
    FormulaError,
    DescriptorError,
    HarnessConfigError,
    BuildError,
    ChecksumMismatchError,
    VerificationError,
    VersionCheckError,
    ProcessLifecycleError,
    ReapTimeoutError,
)
from netrain_formula.formula_version import FORMULA_VERSION
from netrain_formula.event_log import EventLog, Event, EventFilter
from netrain_formula.descriptor import (
    PackageDescriptor,
    default_descriptor,
    load_descriptor,
    verify_source_archive,
)
from netrain_formula.dependencies import BuildDependency, DependencyRole, dependencies
from netrain_formula.caveats import render_caveats
from netrain_formula.build import BuildInvoker, InstalledArtifact
from netrain_formula.formula import (
    audit_package,
    install_package,
    package_caveats,
    verify_package,
)

__version__ = FORMULA_VERSION
