# tests/conftest.py
# Shared fixtures: a descriptor, a fake NetRain executable, and a fake build
# tool. The fakes are Python scripts run through a /bin/sh wrapper. The
# netrain wrapper exec's the current interpreter unless a test asks for a
# launcher that keeps the body as a grandchild.

import os
import stat
import sys
import textwrap
import time
from pathlib import Path

import pytest

from netrain_formula.build import InstalledArtifact
from netrain_formula.descriptor import PackageDescriptor
from netrain_formula.verification.config import HarnessConfig


# Behaviour switches understood by the fake binary:
#   normal        -- prints the banner, exit 0; demo loops until SIGTERM.
#   version_exit1 -- prints the banner plus a privilege warning, exit 1.
#   no_banner     -- --version prints unrelated text.
#   hang_version  -- --version never returns.
#   exit_early    -- --demo exits on its own immediately.
#   ignore_term   -- --demo ignores SIGTERM.
_FAKE_NETRAIN = textwrap.dedent('''\
    import os
    import signal
    import sys
    import time

    VERSION = {version!r}
    MODE = {mode!r}
    PID_FILE = {pid_file!r}

    args = sys.argv[1:]
    if "--version" in args:
        if MODE == "hang_version":
            time.sleep(120)
        if MODE == "no_banner":
            print("netrain: unknown build")
            sys.exit(0)
        print("NetRain v" + VERSION)
        if MODE == "version_exit1":
            print("warning: packet capture requires root privileges", file=sys.stderr)
            sys.exit(1)
        sys.exit(0)

    if "--demo" in args:
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))
        if MODE == "exit_early":
            sys.exit(3)
        if MODE == "ignore_term":
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
        while True:
            time.sleep(0.05)

    print("usage: netrain [--demo] [--version]", file=sys.stderr)
    sys.exit(2)
''')

# Mimics `cargo install --locked --root=<root> --path=.` for the fake binary.
_FAKE_CARGO = textwrap.dedent('''\
    import os
    import stat
    import sys
    import time

    MODE = {mode!r}
    PAYLOAD = {payload!r}

    args = sys.argv[1:]
    assert args[0] == "install", args
    assert "--locked" in args, args
    assert "--path=." in args, args
    root = [a for a in args if a.startswith("--root=")][0][len("--root="):]

    print("   Compiling netrain v0.2.0 (" + os.getcwd() + ")")
    if MODE == "fail":
        print("error[E0425]: cannot find value `pcap` in this scope")
        sys.exit(101)
    if MODE == "hang":
        time.sleep(120)
    if MODE == "no_binary":
        sys.exit(0)

    bin_dir = os.path.join(root, "bin")
    os.makedirs(bin_dir, exist_ok=True)
    target = os.path.join(bin_dir, "netrain")
    with open(target, "w") as f:
        f.write(PAYLOAD)
    os.chmod(target, os.stat(target).st_mode | stat.S_IXUSR)
    with open(os.path.join(root, ".crates.toml"), "w") as f:
        f.write("[v1]\\n")
    print("  Installing " + target)
''')


DEMO_PID_FILE = "netrain_demo.pid"


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def write_fake_netrain(
    bin_dir: Path,
    version: str = "0.2.0",
    mode: str = "normal",
    exec_wrapper: bool = True,
) -> Path:
    """
    Write bin_dir/netrain (sh wrapper) and its Python body. Returns the wrapper path.

    With exec_wrapper=False the wrapper runs the body as its own child, the
    way a launcher script that forgets `exec` would. The body writes its pid
    to bin_dir/netrain_demo.pid when started with --demo.
    """
    bin_dir.mkdir(parents=True, exist_ok=True)
    body = bin_dir / "netrain_impl.py"
    body.write_text(
        _FAKE_NETRAIN.format(version=version, mode=mode, pid_file=str(bin_dir / DEMO_PID_FILE)),
        encoding="utf-8",
    )
    wrapper = bin_dir / "netrain"
    wrapper.write_text(
        "#!/bin/sh\n{}\"{}\" \"{}\" \"$@\"\n{}".format(
            "exec " if exec_wrapper else "",
            sys.executable,
            body,
            "" if exec_wrapper else "exit $?\n",
        ),
        encoding="utf-8",
    )
    _make_executable(wrapper)
    return wrapper


def write_fake_cargo(directory: Path, mode: str = "ok", payload: str = "#!/bin/sh\necho 'NetRain v0.2.0'\n") -> tuple:
    """Write a fake cargo script; returns the build_tool tuple for BuildInvoker."""
    directory.mkdir(parents=True, exist_ok=True)
    script = directory / "fake_cargo.py"
    script.write_text(_FAKE_CARGO.format(mode=mode, payload=payload), encoding="utf-8")
    return (sys.executable, str(script))


@pytest.fixture
def descriptor() -> PackageDescriptor:
    return PackageDescriptor(
        name="netrain",
        version="0.2.0",
        desc="Matrix-style network packet monitor with threat detection",
        homepage="https://github.com/marcuspat/netrain",
        url="https://github.com/marcuspat/netrain/archive/v0.2.0.tar.gz",
        sha256=None,
        license="MIT",
        head_url="https://github.com/marcuspat/netrain.git",
        head_branch="main",
    )


@pytest.fixture
def make_artifact(tmp_path):
    """Factory: install a fake netrain under tmp_path/<mode>/bin and describe it."""
    def _make(mode: str = "normal", version: str = "0.2.0", exec_wrapper: bool = True) -> InstalledArtifact:
        prefix = tmp_path / ("prefix-" + mode + "-" + version + ("" if exec_wrapper else "-noexec"))
        write_fake_netrain(prefix / "bin", version=version, mode=mode, exec_wrapper=exec_wrapper)
        return InstalledArtifact.at(prefix, "netrain")
    return _make


@pytest.fixture
def fast_config() -> HarnessConfig:
    """Short but safe bounds for a fake binary started through /bin/sh."""
    return HarnessConfig(
        grace_period_seconds=0.5,
        reap_timeout_seconds=3.0,
        version_timeout_seconds=10.0,
        overall_timeout_seconds=30.0,
    )


def pid_is_reaped(pid: int) -> bool:
    """True if `pid` is no longer a child of this process (no zombie left)."""
    try:
        os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        return True
    return False


def pid_is_alive(pid: int) -> bool:
    """True if `pid` exists and is not a zombie waiting for its new parent."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    try:
        stat_line = Path("/proc/{}/stat".format(pid)).read_text()
    except FileNotFoundError:
        return not Path("/proc").is_dir()
    return stat_line.rsplit(")", 1)[1].split()[0] != "Z"


def wait_until_gone(pid: int, timeout: float = 5.0) -> bool:
    """Poll until `pid` is gone; False if it is still alive after `timeout`."""
    deadline = time.monotonic() + timeout
    while pid_is_alive(pid):
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.05)
    return True


def demo_pid(bin_dir: Path, timeout: float = 5.0) -> int:
    """Pid the fake body in bin_dir recorded when started with --demo."""
    pid_file = Path(bin_dir) / DEMO_PID_FILE
    deadline = time.monotonic() + timeout
    while True:
        text = pid_file.read_text(encoding="utf-8") if pid_file.exists() else ""
        if text:
            return int(text)
        if time.monotonic() >= deadline:
            raise AssertionError("no demo pid written to " + str(pid_file))
        time.sleep(0.05)


@pytest.fixture
def fake_netrain():
    """The write_fake_netrain helper, as a fixture."""
    return write_fake_netrain


@pytest.fixture
def fake_cargo(tmp_path):
    """Factory: fake cargo in tmp_path/tools for the given mode."""
    def _make(mode: str = "ok", payload: str = "#!/bin/sh\necho 'NetRain v0.2.0'\n") -> tuple:
        return write_fake_cargo(tmp_path / "tools", mode=mode, payload=payload)
    return _make


@pytest.fixture
def source_dir(tmp_path) -> Path:
    src = tmp_path / "netrain-0.2.0"
    src.mkdir()
    (src / "Cargo.toml").write_text('[package]\nname = "netrain"\nversion = "0.2.0"\n', encoding="utf-8")
    return src


@pytest.fixture
def reaped():
    """The pid_is_reaped helper, as a fixture."""
    return pid_is_reaped


@pytest.fixture
def gone():
    """The wait_until_gone helper, as a fixture."""
    return wait_until_gone


@pytest.fixture
def demo_pid_of():
    """The demo_pid helper, as a fixture."""
    return demo_pid
