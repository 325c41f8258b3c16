# netrain_formula/caveats.py
# Post-install caveats message.
# Pure formatting: no I/O, no failure modes.

from __future__ import annotations

from .descriptor import PackageDescriptor


def render_caveats(
    name:              str,
    privilege_command: str = "sudo",
    demo_flag:         str = "--demo",
) -> str:
    """
    Render the caveats shown after install.

    The first block names the privileged invocation needed for live capture,
    the second the demo-mode invocation that needs no privilege.
    """
    return (
        "NetRain requires root privileges to capture network packets:\n"
        f"  {privilege_command} {name}\n"
        "\n"
        "To run in demo mode without root privileges:\n"
        f"  {name} {demo_flag}\n"
    )


def caveats_for(descriptor: PackageDescriptor) -> str:
    return render_caveats(descriptor.name)
