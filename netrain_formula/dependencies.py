# netrain_formula/dependencies.py
# Dependency declaration for the host resolver.
#
# Pure metadata: a frozenset of (name, role) pairs. No ordering, no
# resolution (owned by the host package manager), no side effects.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Tuple


class DependencyRole(str, Enum):
    """
    When a dependency is needed.

    BUILD   -- only while compiling the artifact.
    RUNTIME -- linked or loaded by the installed binary.
    """
    BUILD   = "build"
    RUNTIME = "runtime"


@dataclass(frozen=True)
class BuildDependency:
    name: str
    role: DependencyRole

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("BuildDependency: name must be a non-empty string")
        if not isinstance(self.role, DependencyRole):
            raise ValueError(
                "BuildDependency: role must be a DependencyRole; got " + repr(self.role)
            )


# The Rust toolchain compiles NetRain; libpcap is loaded at runtime for capture.
NETRAIN_DEPENDENCIES: FrozenSet[BuildDependency] = frozenset({
    BuildDependency("rust",    DependencyRole.BUILD),
    BuildDependency("libpcap", DependencyRole.RUNTIME),
})


def dependencies() -> FrozenSet[BuildDependency]:
    return NETRAIN_DEPENDENCIES


def build_dependencies() -> FrozenSet[BuildDependency]:
    return frozenset(d for d in NETRAIN_DEPENDENCIES if d.role is DependencyRole.BUILD)


def runtime_dependencies() -> FrozenSet[BuildDependency]:
    return frozenset(d for d in NETRAIN_DEPENDENCIES if d.role is DependencyRole.RUNTIME)


def resolver_pairs() -> List[Tuple[str, str]]:
    """(name, role) pairs sorted by name, for display and resolver input."""
    return sorted((d.name, d.role.value) for d in NETRAIN_DEPENDENCIES)
