"""
Remote access built on resolved locations: gcloud ssh/scp command lines,
fan-out to role groups, and browser URLs for AEM hosts.
"""

import platform
import subprocess
import webbrowser
from collections.abc import Sequence

from ..errors import NoAddress, NotFound
from ..logger import logger
from ..resolver import Resolver
from ..schemas.compute import InstanceRecord
from ..schemas.resolution import ResolvedLocation


def ssh_command(
    location: ResolvedLocation,
    flags: Sequence[str] = ("--tunnel-through-iap",),
    command: str | None = None,
) -> list[str]:
    cmd = [
        "gcloud",
        "compute",
        "ssh",
        location.instance,
        f"--project={location.project_id}",
        f"--zone={location.zone}",
        *flags,
    ]
    if command:
        cmd.append(f"--command={command}")
    return cmd


def scp_command(
    location: ResolvedLocation,
    direction: str,
    source: str,
    dest: str | None = None,
    flags: Sequence[str] = ("--tunnel-through-iap",),
) -> list[str]:
    """direction is upload (local -> instance) or download."""
    if direction in ("upload", "up", "put"):
        src, dst = source, f"{location.instance}:{dest or '/tmp/'}"
    elif direction in ("download", "down", "get"):
        src, dst = f"{location.instance}:{source}", dest or "."
    else:
        raise ValueError(f"Invalid direction: {direction} (use upload or download)")
    return [
        "gcloud",
        "compute",
        "scp",
        src,
        dst,
        f"--project={location.project_id}",
        f"--zone={location.zone}",
        *flags,
    ]


def pick_ip(record: InstanceRecord, ip_type: str = "external") -> str:
    ip = record.internal_ip if ip_type == "internal" else record.external_ip
    if not ip:
        raise NoAddress(record.name, ip_type)
    return ip


def host_url(record: InstanceRecord, path: str = "/") -> str:
    """https URL on the external IP, falling back to the internal one."""
    ip = record.external_ip or record.internal_ip
    if not ip:
        raise NoAddress(record.name)
    if not path.startswith("/"):
        path = f"/{path}"
    return f"https://{ip}{path}"


def open_url(url: str) -> bool:
    logger.debug(f"Opening {url}")
    return webbrowser.open(url)


def run(cmd: list[str]) -> int:
    """Runs a gcloud command attached to the current terminal."""
    logger.debug(" ".join(cmd))
    return subprocess.run(cmd).returncode


def fan_out_commands(
    resolver: Resolver,
    project_id: str,
    names: Sequence[str],
    flags: Sequence[str] = ("--tunnel-through-iap",),
) -> list[list[str]]:
    commands = []
    for name in names:
        try:
            location = resolver.lookup(project_id, name)
        except NotFound as e:
            logger.warning(str(e))
            continue
        commands.append(ssh_command(location, flags))
    return commands


def open_terminal_tabs(commands: Sequence[list[str]]) -> bool:
    """
    Opens one Terminal tab per command on macOS. Returns False elsewhere so
    the caller can print the commands instead.
    """
    if platform.system() != "Darwin":
        return False
    for cmd in commands:
        script = f'tell application "Terminal" to do script "{" ".join(cmd)}"'
        subprocess.run(["osascript", "-e", script], check=False)
    return True


def run_on_many(
    resolver: Resolver,
    project_id: str,
    names: Sequence[str],
    command: str,
    flags: Sequence[str] = ("--tunnel-through-iap",),
) -> dict[str, int]:
    """
    Runs command on each host in turn. A failing host is recorded with its
    exit code and the remaining hosts still run.
    """
    codes: dict[str, int] = {}
    for name in names:
        try:
            location = resolver.lookup(project_id, name)
        except NotFound as e:
            logger.warning(str(e))
            continue
        codes[name] = run(ssh_command(location, flags, command))
    return codes
