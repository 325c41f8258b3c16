# netrain_formula/cli.py
# Command line for the NetRain formula.
#
#   python -m netrain_formula info
#   python -m netrain_formula deps
#   python -m netrain_formula caveats
#   python -m netrain_formula install --source-dir DIR --prefix DIR [--archive FILE]
#   python -m netrain_formula test --prefix DIR [tunables]
#   python -m netrain_formula audit [--allow-missing-checksum]
#
# Exit codes: 0 success, 1 operation failed, 2 usage error (argparse).

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .build import DEFAULT_BUILD_TOOL
from .dependencies import resolver_pairs
from .descriptor import DEFAULT_DESCRIPTOR_PATH, load_descriptor
from .exceptions import BuildError, DescriptorError
from .formula import audit_package, install_package, package_caveats, verify_package
from .verification.config import (
    DEFAULT_GRACE_PERIOD_SECONDS,
    DEFAULT_OVERALL_TIMEOUT_SECONDS,
    DEFAULT_REAP_TIMEOUT_SECONDS,
    DEFAULT_VERSION_TIMEOUT_SECONDS,
    HarnessConfig,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m netrain_formula",
        description="Build, install and verify the NetRain network monitor.",
    )
    parser.add_argument(
        "--descriptor",
        default=str(DEFAULT_DESCRIPTOR_PATH),
        help="Package descriptor JSON file.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Print package metadata.")
    sub.add_parser("deps", help="Print (name, role) dependency pairs.")
    sub.add_parser("caveats", help="Print the post-install caveats.")

    install = sub.add_parser("install", help="Build and install into a prefix.")
    install.add_argument("--source-dir", required=True, help="Unpacked source tree.")
    install.add_argument("--prefix", required=True, help="Install prefix.")
    install.add_argument("--archive", default=None,
                         help="Source archive to verify against the descriptor checksum.")
    install.add_argument("--build-tool", default=DEFAULT_BUILD_TOOL[0],
                         help="Build tool executable (default: cargo).")
    install.add_argument("--timeout", type=float, default=None,
                         help="Bound on the build in seconds.")

    test = sub.add_parser("test", help="Run the verification harness.")
    test.add_argument("--prefix", required=True, help="Install prefix containing bin/<name>.")
    test.add_argument("--grace-period", type=float, default=DEFAULT_GRACE_PERIOD_SECONDS)
    test.add_argument("--reap-timeout", type=float, default=DEFAULT_REAP_TIMEOUT_SECONDS)
    test.add_argument("--version-timeout", type=float, default=DEFAULT_VERSION_TIMEOUT_SECONDS)
    test.add_argument("--overall-timeout", type=float, default=DEFAULT_OVERALL_TIMEOUT_SECONDS)
    test.add_argument("--strict-exit", action="store_true", default=False,
                      help="Fail the version check when --version exits non-zero.")

    audit = sub.add_parser("audit", help="Check the descriptor is ready to publish.")
    audit.add_argument("--allow-missing-checksum", action="store_true", default=False)

    return parser


def _cmd_info(descriptor) -> int:
    for key, value in descriptor.to_dict().items():
        print(f"{key + ':':<13}{'' if value is None else value}")
    return 0


def _cmd_deps(descriptor) -> int:
    for name, role in resolver_pairs():
        print(f"{name}\t{role}")
    return 0


def _cmd_caveats(descriptor) -> int:
    sys.stdout.write(package_caveats(descriptor))
    return 0


def _cmd_install(descriptor, args) -> int:
    try:
        artifact = install_package(
            descriptor,
            Path(args.source_dir),
            Path(args.prefix),
            archive=Path(args.archive) if args.archive else None,
            build_tool=(args.build_tool,),
            timeout_seconds=args.timeout,
        )
    except (BuildError, DescriptorError) as exc:
        print(f"INSTALL FAILED: {exc}", file=sys.stderr)
        output = getattr(exc, "output", "")
        if output:
            sys.stderr.write(output if output.endswith("\n") else output + "\n")
        return 1
    print(f"Installed {descriptor.name} {descriptor.version} -> {artifact.path}")
    sys.stdout.write(package_caveats(descriptor))
    return 0


def _cmd_test(descriptor, args) -> int:
    try:
        config = HarnessConfig(
            grace_period_seconds=args.grace_period,
            reap_timeout_seconds=args.reap_timeout,
            version_timeout_seconds=args.version_timeout,
            overall_timeout_seconds=args.overall_timeout,
            allow_nonzero_exit=not args.strict_exit,
        )
        report = verify_package(descriptor, Path(args.prefix), config, raise_on_failure=False)
    except (BuildError, DescriptorError) as exc:
        print(f"TEST FAILED: {exc}", file=sys.stderr)
        return 1

    print(report.summary())
    if report.passed:
        return 0
    for outcome in report.failures():
        diagnostic = outcome.captured_output or "\n".join(e.describe() for e in outcome.events)
        print(f"--- {outcome.check.value} diagnostic ---", file=sys.stderr)
        print(diagnostic or "(none)", file=sys.stderr)
    return 1


def _cmd_audit(descriptor, args) -> int:
    problems = audit_package(descriptor, require_checksum=not args.allow_missing_checksum)
    if not problems:
        print(f"{descriptor.name}: audit passed")
        return 0
    for problem in problems:
        print(f"{descriptor.name}: {problem}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        descriptor = load_descriptor(Path(args.descriptor))
    except DescriptorError as exc:
        print(f"DESCRIPTOR INVALID: {exc}", file=sys.stderr)
        return 1

    if args.command == "info":
        return _cmd_info(descriptor)
    if args.command == "deps":
        return _cmd_deps(descriptor)
    if args.command == "caveats":
        return _cmd_caveats(descriptor)
    if args.command == "install":
        return _cmd_install(descriptor, args)
    if args.command == "test":
        return _cmd_test(descriptor, args)
    return _cmd_audit(descriptor, args)
