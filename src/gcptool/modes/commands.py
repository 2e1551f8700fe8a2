import argparse
from dataclasses import dataclass, field

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from ..cache import CacheStore
from ..core import (
    AEM_CONSOLE_PATH,
    AEM_CRX_PATH,
    AEM_LOGIN_PATH,
    ROLE_AUTHOR,
    ROLE_DISPATCHER,
    ROLE_PUBLISH,
    STATUS_RUNNING,
    STATUS_TERMINATED,
    ToolConfig,
    instances_cache_key,
)
from ..errors import (
    ConfirmationRequired,
    InvalidSelection,
    NotFound,
    OperationCancelled,
)
from ..inventory import InventoryFetcher
from ..resolver import Resolution, Resolver
from ..schemas.compute import InstanceRecord
from ..schemas.operations import Outcome, PlannedAction
from ..schemas.resolution import Candidate, ResolvedLocation
from . import remote
from .lifecycle import LifecycleController
from .snapshot import SnapshotOrchestrator

ROLE_GROUPS = {
    "ssha": (ROLE_AUTHOR,),
    "sshp": (ROLE_PUBLISH,),
    "sshd": (ROLE_DISPATCHER,),
    "sshpd": (ROLE_PUBLISH, ROLE_DISPATCHER),
    "sshaem": (ROLE_AUTHOR, ROLE_PUBLISH),
}

AEM_PATHS = {
    "aem": AEM_LOGIN_PATH,
    "crx": AEM_CRX_PATH,
    "console": AEM_CONSOLE_PATH,
}


def _status_style(status: str) -> str:
    if status == STATUS_RUNNING:
        return "green"
    if status == STATUS_TERMINATED:
        return "red"
    return "yellow"


def _role_count(records: list[InstanceRecord], role: str) -> str:
    return str(sum(1 for r in records if role in r.name.lower()))


@dataclass
class Context:
    """Wires the core components together for one CLI invocation."""

    config: ToolConfig
    log_console: Console
    out_console: Console
    interactive: bool = True
    cache: CacheStore = field(init=False)
    fetcher: InventoryFetcher = field(init=False)
    resolver: Resolver = field(init=False)

    def __post_init__(self) -> None:
        self.cache = CacheStore(self.config.cache_dir, ttl=self.config.cache_ttl)
        self.fetcher = InventoryFetcher(self.cache)
        self.resolver = Resolver(self.cache, self.fetcher)

    def lifecycle(self) -> LifecycleController:
        return LifecycleController(
            self.resolver,
            self.fetcher,
            self.cache,
            confirm=self.confirm_batch,
            settle_delay=self.config.settle_delay,
            max_workers=self.config.max_workers,
        )

    def snapshots(self) -> SnapshotOrchestrator:
        return SnapshotOrchestrator(self.fetcher, self.resolver)

    def ask(self, question: str) -> bool:
        """Yes/no prompt; a closed stdin counts as no."""
        try:
            return Confirm.ask(question, console=self.out_console)
        except EOFError:
            return False

    def confirm_batch(
        self, verb: str, project_id: str, plan: list[PlannedAction]
    ) -> bool:
        if not self.interactive:
            raise ConfirmationRequired(verb)
        console = self.out_console
        console.print(f"[cyan]Project:[/cyan] {project_id}")
        console.print(f"[cyan]Instances to {verb.upper()}:[/cyan]")
        for item in plan:
            line = f"{item.instance} [dim]({item.zone or 'zone unknown'})[/dim]"
            if verb == "stop":
                ip = item.external_ip or "no external IP"
                console.print(f"  [red]■[/red] {line} - {ip}")
            else:
                console.print(f"  [green]▶[/green] {line}")
        if verb == "stop":
            console.print(
                "[bold red]WARNING: This will STOP the instance(s)! "
                "Services will become unavailable.[/bold red]"
            )
        return self.ask(f"Are you sure you want to {verb.upper()} these instances?")

    def choose(self, query: str, found: Resolution) -> ResolvedLocation:
        """Turns a resolution into a location, asking the operator if needed."""
        if isinstance(found, ResolvedLocation):
            return found
        self.print_candidates(f"Multiple instances match '{query}'", found)
        try:
            choice = Prompt.ask(f"Select [1-{len(found)}]", console=self.out_console)
        except EOFError:
            raise InvalidSelection("", len(found)) from None
        return self.resolver.choose_from(found, choice)

    def print_candidates(self, title: str, candidates: list[Candidate]) -> None:
        table = Table(title=title)
        table.add_column("#", justify="right")
        table.add_column("Project", style="cyan")
        table.add_column("Name", style="bold")
        table.add_column("Zone", style="dim")
        table.add_column("Status")
        table.add_column("External IP")
        for i, c in enumerate(candidates, start=1):
            style = _status_style(c.status)
            table.add_row(
                str(i),
                c.project_id,
                c.name,
                c.zone,
                f"[{style}]{c.status}[/{style}]",
                c.external_ip or "-",
            )
        self.log_console.print(table)

    def locate(self, target: str, instance: str | None = None) -> ResolvedLocation:
        found = self.resolver.resolve(target, instance, interactive=self.interactive)
        return self.choose(target, found)


# LIST


def cmd_projects(ctx: Context, args: argparse.Namespace) -> None:
    table = Table(title="GCP Projects")
    table.add_column("Project ID", style="cyan")
    table.add_column("Name")
    table.add_column("State")
    for p in ctx.resolver.projects(refresh=args.refresh):
        table.add_row(p.project_id, p.display_name, p.state)
    ctx.out_console.print(table)


def cmd_instances(ctx: Context, args: argparse.Namespace) -> None:
    needle = (args.filter or "").lower()
    for project in ctx.resolver.projects():
        pid = project.project_id
        records = [
            r
            for r in ctx.resolver.instances(pid, refresh=args.refresh)
            if needle in r.name.lower()
        ]
        if not records:
            continue
        table = Table(title=f"[{pid}]", title_justify="left")
        table.add_column("Name", style="bold")
        table.add_column("Zone")
        table.add_column("Status")
        table.add_column("External IP")
        table.add_column("Internal IP")
        table.add_column("Type", style="dim")
        for r in records:
            style = _status_style(r.status)
            table.add_row(
                r.name,
                r.zone,
                f"[{style}]{r.status}[/{style}]",
                r.external_ip or "-",
                r.internal_ip or "-",
                r.machine_type,
            )
        ctx.out_console.print(table)
    ctx.log_console.print(
        f"[dim]Cached for {int(ctx.config.cache_ttl)}s. Use --refresh to update.[/dim]"
    )


def cmd_search(ctx: Context, args: argparse.Namespace) -> None:
    matches = ctx.resolver.search(args.pattern)
    if not matches:
        raise NotFound(args.pattern)
    ctx.print_candidates(f"Searching for: {args.pattern}", matches)


def cmd_status(ctx: Context, args: argparse.Namespace) -> None:
    table = Table(title="Quick Status - All Projects")
    table.add_column("Project", style="cyan")
    table.add_column("Running", style="green", justify="right")
    table.add_column("Stopped", style="red", justify="right")
    table.add_column("Authors", justify="right")
    table.add_column("Publishers", justify="right")
    table.add_column("Dispatchers", justify="right")
    for project in ctx.resolver.projects():
        records = ctx.resolver.instances(project.project_id)
        if not records:
            continue
        running = [r for r in records if r.status == STATUS_RUNNING]
        table.add_row(
            project.project_id,
            str(len(running)),
            str(sum(1 for r in records if r.status == STATUS_TERMINATED)),
            _role_count(running, ROLE_AUTHOR),
            _role_count(running, ROLE_PUBLISH),
            _role_count(running, ROLE_DISPATCHER),
        )
    ctx.out_console.print(table)


def cmd_snapshots(ctx: Context, args: argparse.Namespace) -> None:
    found = ctx.snapshots().find_snapshots(args.filter)
    for pid, snaps in found.items():
        table = Table(title=f"[{pid}]", title_justify="left")
        table.add_column("Snapshot", style="bold")
        table.add_column("Size GB", justify="right")
        table.add_column("Status")
        table.add_column("Created")
        table.add_column("Source Disk")
        for s in snaps:
            ts = s.creation_timestamp
            created = ts.strftime("%Y-%m-%d") if ts else "-"
            table.add_row(
                s.name, str(s.disk_size_gb), s.status, created, s.source_disk
            )
        ctx.out_console.print(table)
    if not found:
        ctx.log_console.print(f"[yellow]No snapshots matching '{args.filter}'[/yellow]")


def cmd_disks(ctx: Context, args: argparse.Namespace) -> None:
    found = ctx.snapshots().find_disks(args.filter)
    for pid, disks in found.items():
        table = Table(title=f"[{pid}]", title_justify="left")
        table.add_column("Disk", style="bold")
        table.add_column("Zone")
        table.add_column("Size GB", justify="right")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Attached To")
        for d in disks:
            table.add_row(
                d.name,
                d.zone,
                str(d.size_gb),
                d.type,
                d.status,
                ", ".join(d.users) or "-",
            )
        ctx.out_console.print(table)
    if not found:
        ctx.log_console.print(f"[yellow]No disks matching '{args.filter}'[/yellow]")


# LOOKUP


def cmd_ip(ctx: Context, args: argparse.Namespace) -> None:
    # ip <instance> [external|internal]  or  ip <project> <instance> [type]
    rest = list(args.rest)
    instance = None
    if rest and rest[0] not in ("external", "internal"):
        instance = rest.pop(0)
    ip_type = rest[0] if rest else "external"

    location = ctx.locate(args.target, instance)
    record = ctx.resolver.record_for(location)
    if record is None:
        raise NotFound(location.instance)
    ctx.out_console.print(remote.pick_ip(record, ip_type))


def cmd_info(ctx: Context, args: argparse.Namespace) -> None:
    location = ctx.locate(args.target, args.instance)
    record = ctx.fetcher.describe_instance(
        location.project_id, location.zone, location.instance
    )
    table = Table(title=f"Instance Info: {record.name}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Project", record.project_id)
    table.add_row("Zone", record.zone)
    style = _status_style(record.status)
    table.add_row("Status", f"[{style}]{record.status}[/{style}]")
    table.add_row("Machine Type", record.machine_type)
    table.add_row("Internal IP", record.internal_ip or "-")
    table.add_row("External IP", record.external_ip or "-")
    ctx.out_console.print(table)


# SSH / REMOTE


def cmd_ssh(ctx: Context, args: argparse.Namespace) -> int:
    location = ctx.locate(args.target, args.instance)
    if args.zone:
        location = location.model_copy(update={"zone": args.zone})
    ctx.log_console.print(
        f"[yellow]→ Connecting to {location.instance} in "
        f"{location.project_id} ({location.zone})...[/yellow]"
    )
    return remote.run(remote.ssh_command(location, ctx.config.ssh_flags))


def _ssh_many(ctx: Context, project_id: str, names: list[str]) -> None:
    if not names:
        raise NotFound(project_id, f"No matching instances found in {project_id}")
    ctx.out_console.print("Will open SSH to:")
    for name in names:
        ctx.out_console.print(f"  - {name}")
    if ctx.interactive and not ctx.ask("Are you sure?"):
        raise OperationCancelled("ssh fan-out cancelled")
    commands = remote.fan_out_commands(
        ctx.resolver, project_id, names, ctx.config.ssh_flags
    )
    if remote.open_terminal_tabs(commands):
        ctx.log_console.print(f"[green]✓ Opened {len(commands)} SSH sessions[/green]")
        return
    ctx.log_console.print(
        "[yellow]→ Run these commands in separate terminals:[/yellow]"
    )
    for cmd in commands:
        ctx.out_console.print(" ".join(cmd), markup=False)


def cmd_ssh_role(ctx: Context, args: argparse.Namespace) -> None:
    names: list[str] = []
    for role in ROLE_GROUPS[args.command]:
        names.extend(ctx.resolver.find_by_role(args.project, role))
    _ssh_many(ctx, args.project, names)


def cmd_sshx(ctx: Context, args: argparse.Namespace) -> None:
    names = ctx.resolver.find_by_role(
        args.project, args.filter or "", running_only=True
    )
    _ssh_many(ctx, args.project, names)


def cmd_cmd(ctx: Context, args: argparse.Namespace) -> int:
    location = ctx.locate(args.target, args.instance)
    ctx.log_console.print(
        f"[yellow]→ Running on {location.instance}: {args.remote}[/yellow]"
    )
    return remote.run(remote.ssh_command(location, ctx.config.ssh_flags, args.remote))


def cmd_cmdx(ctx: Context, args: argparse.Namespace) -> None:
    names = ctx.resolver.find_by_role(args.project, args.filter, running_only=True)
    if not names:
        raise NotFound(
            args.filter, f"No running instances matching '{args.filter}'"
        )
    codes = remote.run_on_many(
        ctx.resolver, args.project, names, args.remote, ctx.config.ssh_flags
    )
    for name, code in codes.items():
        if code != 0:
            ctx.log_console.print(f"[red]✗ Failed on {name}[/red]")


def cmd_scp(ctx: Context, args: argparse.Namespace) -> int:
    location = ctx.resolver.lookup(args.project, args.instance)
    cmd = remote.scp_command(
        location, args.direction, args.source, args.dest, ctx.config.ssh_flags
    )
    return remote.run(cmd)


# BROWSER


def _open(ctx: Context, location: ResolvedLocation, path: str) -> None:
    record = ctx.resolver.record_for(location)
    if record is None:
        raise NotFound(location.instance)
    url = remote.host_url(record, path)
    ctx.log_console.print(f"[yellow]→ Opening: {url}[/yellow]")
    if not remote.open_url(url):
        ctx.out_console.print(f"Open manually: {url}", markup=False)


def cmd_url(ctx: Context, args: argparse.Namespace) -> None:
    # url <instance> [/path]  or  url <project> <instance> [/path]
    rest = list(args.rest)
    instance = None
    if rest and not rest[0].startswith("/"):
        instance = rest.pop(0)
    path = rest[0] if rest else "/"
    _open(ctx, ctx.locate(args.target, instance), path)


def cmd_aem(ctx: Context, args: argparse.Namespace) -> None:
    found = ctx.resolver.resolve_aem(args.target, interactive=ctx.interactive)
    _open(ctx, ctx.choose(args.target, found), AEM_PATHS[args.command])


# MANAGE


def cmd_start(ctx: Context, args: argparse.Namespace) -> None:
    results = ctx.lifecycle().start_many(args.project, args.instances, force=args.force)
    for r in results:
        if r.outcome is Outcome.DISPATCHED:
            ip = (
                f"[bold]{r.external_ip}[/bold]"
                if r.external_ip
                else "[dim]no IP yet[/dim]"
            )
            ctx.out_console.print(f"  [green]✓[/green] {r.instance}: {ip}")
        else:
            ctx.log_console.print(f"[red]✗ {r.instance}: {r.error}[/red]")


def cmd_stop(ctx: Context, args: argparse.Namespace) -> None:
    results = ctx.lifecycle().stop_many(args.project, args.instances, force=args.force)
    for r in results:
        if r.outcome is Outcome.DISPATCHED:
            ctx.out_console.print(f"  [green]✓[/green] stop sent to {r.instance}")
        else:
            ctx.log_console.print(f"[red]✗ {r.instance}: {r.error}[/red]")


def cmd_snapshot(ctx: Context, args: argparse.Namespace) -> None:
    result = ctx.snapshots().snapshot(args.project, args.disk, args.zone, args.name)
    ctx.out_console.print(
        f"[green]✓ Snapshot created: {result.snapshot_name}[/green] "
        f"[dim]({result.disk} in {result.zone})[/dim]"
    )


# CACHE


def cmd_cache_update(ctx: Context, args: argparse.Namespace) -> None:
    with ctx.log_console.status("Refreshing projects and instances..."):
        failures = ctx.fetcher.refresh_all()
    for pid, error in failures.items():
        ctx.log_console.print(f"[red]✗ {pid}: {error}[/red]")
    ctx.out_console.print("[green]✓ Cache updated[/green]")


def cmd_cache_clear(ctx: Context, args: argparse.Namespace) -> None:
    if args.project:
        ctx.cache.invalidate(instances_cache_key(args.project))
    else:
        ctx.cache.invalidate_all()
    ctx.out_console.print("[green]✓ Cache cleared[/green]")
