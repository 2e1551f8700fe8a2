import argparse
import sys
from importlib.metadata import version

from rich.console import Console

from .core import ToolConfig
from .errors import GcpToolError, OperationCancelled
from .logger import set_verbose
from .modes import commands
from .modes.commands import Context


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gcptool",
        description="gcptool: Compute Engine operator console across GCP projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Most commands auto-detect the project, just use the instance name.

Examples:
  gcptool ssh qiddiya-dev-author1mecentral2
  gcptool aem qiddiya-prod-author1mecentral2
  gcptool ip qiddiya-dev-author1mecentral2 internal
  gcptool cmd qiddiya-dev-author1mecentral2 'uptime'
  gcptool cmd adbe-gcp0766 qiddiya-dev-author1mecentral2 'uptime'
  gcptool ssh adbe-gcp0766 web-1 us-central1-a
  gcptool ssha adbe-gcp0766
  gcptool start adbe-gcp0766 web-1 web-2 --force
  gcptool search author
""",
    )
    try:
        ver = version("gcptool")
    except Exception:
        ver = "unknown"
    parser.add_argument("--version", action="version", version=f"gcptool v{ver}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug logging"
    )
    parser.add_argument(
        "--no-input",
        action="store_true",
        help="Never prompt to disambiguate; take the first match",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def add(name: str, handler, help_text: str, aliases=()) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text, aliases=list(aliases))
        p.set_defaults(handler=handler, command=name)
        return p

    # LIST
    p = add("projects", commands.cmd_projects, "List accessible projects")
    p.add_argument("--refresh", action="store_true", help="Bypass the cache")

    p = add("instances", commands.cmd_instances, "List instances", aliases=["vms"])
    p.add_argument("filter", nargs="?", help="Case-insensitive name filter")
    p.add_argument("--refresh", action="store_true", help="Bypass the cache")

    p = add("search", commands.cmd_search, "Search instances by name", aliases=["find"])
    p.add_argument("pattern")

    add("status", commands.cmd_status, "Quick status of all projects")

    p = add("snapshots", commands.cmd_snapshots, "List snapshots matching a filter")
    p.add_argument("filter")

    p = add("disks", commands.cmd_disks, "List disks matching a filter")
    p.add_argument("filter")

    # LOOKUP
    p = add("ip", commands.cmd_ip, "Print an instance IP")
    p.add_argument("target", help="Instance, or project when an instance follows")
    p.add_argument("rest", nargs="*", help="[instance] [external|internal]")

    p = add("info", commands.cmd_info, "Describe an instance")
    p.add_argument("target")
    p.add_argument("instance", nargs="?")

    # SSH / REMOTE
    p = add("ssh", commands.cmd_ssh, "SSH to an instance")
    p.add_argument("target")
    p.add_argument("instance", nargs="?")
    p.add_argument("zone_arg", nargs="?", metavar="zone", help="Override the zone")
    p.add_argument("--zone", help="Override the resolved zone")

    for name, text in (
        ("ssha", "SSH to all Authors"),
        ("sshp", "SSH to all Publishers"),
        ("sshd", "SSH to all Dispatchers"),
        ("sshpd", "SSH to all Publishers & Dispatchers"),
        ("sshaem", "SSH to all AEM hosts (Authors + Publishers)"),
    ):
        p = add(name, commands.cmd_ssh_role, text)
        p.add_argument("project")

    p = add("sshx", commands.cmd_sshx, "SSH to all RUNNING hosts matching a filter")
    p.add_argument("project")
    p.add_argument("filter", nargs="?")

    p = add("cmd", commands.cmd_cmd, "Run a command on an instance")
    p.add_argument("target", help="Instance, or project when an instance follows")
    p.add_argument("rest", nargs="+", metavar="[instance] command")
    p.add_argument("--project", dest="project", help="Project of the instance")

    p = add("cmdx", commands.cmd_cmdx, "Run a command on all matching RUNNING hosts")
    p.add_argument("project")
    p.add_argument("filter")
    p.add_argument("remote", metavar="command")

    p = add("scp", commands.cmd_scp, "Upload or download files", aliases=["cp"])
    p.add_argument(
        "direction", choices=["upload", "up", "put", "download", "down", "get"]
    )
    p.add_argument("project")
    p.add_argument("instance")
    p.add_argument("source")
    p.add_argument("dest", nargs="?")

    # BROWSER
    p = add("url", commands.cmd_url, "Open https://<ip>/<path> in a browser")
    p.add_argument("target")
    p.add_argument("rest", nargs="*", help="[instance] [/path]")

    for name, text in (
        ("aem", "Open AEM login"),
        ("crx", "Open CRX/DE"),
        ("console", "Open Felix Console"),
    ):
        p = add(name, commands.cmd_aem, f"{text} (author/publish only)")
        p.add_argument("target")

    # MANAGE
    for name, handler, text in (
        ("start", commands.cmd_start, "Start instance(s) in parallel"),
        ("stop", commands.cmd_stop, "Stop instance(s) in parallel"),
    ):
        p = add(name, handler, text)
        p.add_argument("project")
        p.add_argument("instances", nargs="+")
        p.add_argument(
            "-f", "-y", "--force", "--yes", dest="force", action="store_true",
            help="Skip the confirmation prompt",
        )

    p = add(
        "snapshot", commands.cmd_snapshot, "Create a disk snapshot", aliases=["snap"]
    )
    p.add_argument("project")
    p.add_argument("disk")
    p.add_argument("zone", nargs="?")
    p.add_argument("name", nargs="?", help="Default: <disk>-snap-<UTC timestamp>")

    # CACHE
    add("cache", commands.cmd_cache_update, "Refresh the whole cache")
    p = add(
        "cache-clear", commands.cmd_cache_clear, "Clear the cache", aliases=["clear"]
    )
    p.add_argument("project", nargs="?", help="Only this project's instances")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    set_verbose(args.verbose)

    if not getattr(args, "handler", None):
        parser.print_help()
        sys.exit(1)

    # Tables and prompts on stdout, diagnostics on stderr
    log_console = Console(stderr=True)
    out_console = Console()

    # cmd [project] <instance> <command>, or --project <project>
    if args.command == "cmd":
        *words, args.remote = args.rest
        if len(words) > 1 or (words and args.project):
            parser.error("cmd takes at most a project and an instance")
        if args.project:
            args.instance, args.target = args.target, args.project
        else:
            args.instance = words[0] if words else None
    if args.command == "ssh":
        args.zone = args.zone or args.zone_arg

    try:
        ctx = Context(
            config=ToolConfig.from_env(),
            log_console=log_console,
            out_console=out_console,
            interactive=not args.no_input and sys.stdin.isatty(),
        )
        code = args.handler(ctx, args)
    except KeyboardInterrupt:
        log_console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        sys.exit(130)
    except OperationCancelled:
        log_console.print("[yellow]→ Cancelled[/yellow]")
        sys.exit(0)
    except GcpToolError as e:
        log_console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if isinstance(code, int) and code != 0:
        sys.exit(code)


if __name__ == "__main__":
    main()
