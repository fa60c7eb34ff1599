"""Command-line interface for registry_tracker.

Provides operator commands for refreshing packages, recomputing their
dependency counts and running the background scheduler.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, AsyncIterator, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from registry_tracker.adapters import AdapterRegistry
from registry_tracker.aggregator import DependencyGraphAggregator
from registry_tracker.cache import ExpiringCache
from registry_tracker.config import DEFAULT_CONFIG_PATH, Config, load_config
from registry_tracker.exceptions import RegistryTrackerError
from registry_tracker.jobs import JobKind, JobQueue
from registry_tracker.licenses import normalize_licenses
from registry_tracker.linking import RepositoryLinker
from registry_tracker.models import Package, SyncOutcome
from registry_tracker.permissions import RegistryPermissionReconciler
from registry_tracker.resolvers import GitHubResolver
from registry_tracker.scheduler import StaleScheduler
from registry_tracker.status import StatusResolver
from registry_tracker.store import PackageStore
from registry_tracker.sync import SyncOrchestrator

app = typer.Typer(
    name="registry-tracker",
    help="Package registry metadata aggregation and lifecycle tracking.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("registry_tracker")

ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the TOML configuration file"),
]
GitHubTokenOption = Annotated[
    Optional[str],
    typer.Option(
        "--github-token",
        envvar="GITHUB_TOKEN",
        help="GitHub API token for higher rate limits",
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


def _setup_logging(verbose: bool, level: str = "WARNING") -> None:
    """Configure logging level based on verbosity flag."""
    logging.getLogger("registry_tracker").setLevel(logging.DEBUG if verbose else level)
    # Suppress verbose loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def _load(config_path: Path, verbose: bool) -> Config:
    config = load_config(config_path)
    _setup_logging(verbose, config.logging.level)
    return config


@dataclass
class Services:
    """Components wired together for one CLI invocation."""

    store: PackageStore
    adapters: AdapterRegistry
    status_resolver: StatusResolver
    aggregator: DependencyGraphAggregator
    queue: JobQueue
    orchestrator: SyncOrchestrator
    linker: RepositoryLinker
    reconciler: RegistryPermissionReconciler


@asynccontextmanager
async def _services(config: Config, github_token: Optional[str]) -> AsyncIterator[Services]:
    """Open the store and build every component from the configuration.

    Raises:
        UnknownEcosystemError: If a configured ecosystem has no adapter.
    """
    async with PackageStore(config.database.path) as store:
        adapters = AdapterRegistry.build(
            config.sync.ecosystems,
            store,
            timeout=config.http.timeout,
            user_agent=config.http.user_agent,
        )
        status_resolver = StatusResolver(
            store, adapters, timeout=config.http.timeout, user_agent=config.http.user_agent
        )
        aggregator = DependencyGraphAggregator(store)
        queue = JobQueue(workers=config.sync.workers)
        orchestrator = SyncOrchestrator(
            store,
            adapters,
            status_resolver,
            aggregator,
            queue=queue,
            update_timeout=config.sync.update_timeout,
        )
        linker = RepositoryLinker(
            store,
            [
                GitHubResolver(
                    github_token=github_token or config.github.token,
                    timeout=config.http.timeout,
                    user_agent=config.http.user_agent,
                )
            ],
        )
        queue.register(JobKind.REFRESH_METADATA, orchestrator.sync)
        queue.register(JobKind.RESOLVE_REPOSITORY, linker.link)
        try:
            yield Services(
                store=store,
                adapters=adapters,
                status_resolver=status_resolver,
                aggregator=aggregator,
                queue=queue,
                orchestrator=orchestrator,
                linker=linker,
                reconciler=RegistryPermissionReconciler(store, adapters),
            )
        finally:
            await queue.stop()
            await linker.close()
            await status_resolver.close()
            await adapters.close()


def _run(coro) -> None:
    """Run a command coroutine, turning surfaced errors into exit code 1."""
    try:
        asyncio.run(coro)
    except RegistryTrackerError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _print_package(package: Package, fields: dict[str, Any]) -> None:
    table = Table(title=escape(f"{package.ecosystem}/{package.name}"), show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in fields.items():
        if isinstance(value, list):
            value = ", ".join(value)
        table.add_row(key, escape("" if value is None else str(value)))
    console.print(table)


@app.command()
def normalize(
    license_text: Annotated[str, typer.Argument(help="Free-text license declaration")],
) -> None:
    """Normalize a license declaration to SPDX identifiers."""
    for identifier in normalize_licenses(license_text):
        console.print(escape(identifier))


@app.command()
def sync(
    ecosystem: Annotated[str, typer.Argument(help="Package ecosystem, e.g. PyPI")],
    name: Annotated[str, typer.Argument(help="Package name")],
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    github_token: GitHubTokenOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Run one refresh cycle for a package, tracking it if it is new."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with _services(cfg, github_token) as services:
            adapter = services.adapters.get(ecosystem)
            package = await services.store.get_or_create_package(adapter.ecosystem, name)
            result = await services.orchestrator.sync(package.id)

        if result.outcome is SyncOutcome.SYNCED:
            console.print(f"[green]Synced[/green] {escape(name)}")
        elif result.outcome is SyncOutcome.REMOVED:
            console.print(f"[yellow]Removed[/yellow] {escape(name)} no longer exists on its registry")
        else:
            console.print(f"[yellow]Synced with registry failure:[/yellow] {escape(result.error or '')}")

    _run(run())


@app.command()
def recompute(
    ecosystem: Annotated[str, typer.Argument(help="Package ecosystem")],
    name: Annotated[str, typer.Argument(help="Package name")],
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    verbose: VerboseOption = False,
) -> None:
    """Recompute the dependent counts of a package."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with PackageStore(cfg.database.path) as store:
            package = await store.find_package(ecosystem, name)
            counts = await DependencyGraphAggregator(store).recompute(package.id)
        console.print(f"Dependent packages: [bold]{counts.dependents_count}[/bold]")
        console.print(f"Dependent repositories: [bold]{counts.dependent_repos_count}[/bold]")

    _run(run())


@app.command("check-status")
def check_status(
    ecosystem: Annotated[str, typer.Argument(help="Package ecosystem")],
    name: Annotated[str, typer.Argument(help="Package name")],
    reset: Annotated[
        bool,
        typer.Option("--reset", help="Clear the status if the package still exists"),
    ] = False,
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    verbose: VerboseOption = False,
) -> None:
    """Probe the registry to see whether a package still exists."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with _services(cfg, None) as services:
            package = await services.store.find_package(ecosystem, name)
            status = await services.status_resolver.check_status(package, reset_if_healthy=reset)
        console.print(f"Status: [bold]{status.value if status else 'Active'}[/bold]")

    _run(run())


@app.command()
def show(
    ecosystem: Annotated[str, typer.Argument(help="Package ecosystem")],
    name: Annotated[str, typer.Argument(help="Package name")],
    version: Annotated[
        Optional[str],
        typer.Option("--version", help="Version number, or 'latest'"),
    ] = None,
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    verbose: VerboseOption = False,
) -> None:
    """Show the tracked metadata of a package."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with PackageStore(cfg.database.path) as store:
            package = await store.find_package(ecosystem, name)
            found = await store.find_version(package, version) if version else None
            async with AdapterRegistry.build(cfg.sync.ecosystems, store) as adapters:
                fields = adapters.get(package.ecosystem).api_dict(package)
        _print_package(package, fields)
        if found is not None:
            published = found.published_at.isoformat() if found.published_at else "unknown"
            console.print(f"Version [bold]{escape(found.number)}[/bold] published {published}")

    _run(run())


@app.command()
def link(
    ecosystem: Annotated[str, typer.Argument(help="Package ecosystem")],
    name: Annotated[str, typer.Argument(help="Package name")],
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    github_token: GitHubTokenOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Resolve and link the source repository of a package."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with _services(cfg, github_token) as services:
            package = await services.store.find_package(ecosystem, name)
            repository = await services.linker.link(package.id)
        if repository is None:
            console.print("[yellow]No repository linked[/yellow]")
        else:
            console.print(f"[green]Linked[/green] {escape(repository.full_name)}")

    _run(run())


@app.command()
def owners(
    ecosystem: Annotated[str, typer.Argument(help="Package ecosystem")],
    name: Annotated[str, typer.Argument(help="Package name")],
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    verbose: VerboseOption = False,
) -> None:
    """Reconcile local owner permissions with the registry's owner list."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with _services(cfg, None) as services:
            package = await services.store.find_package(ecosystem, name)
            changes = await services.reconciler.reconcile(package.id)
        console.print(f"Added [bold]{len(changes.added)}[/bold], removed [bold]{len(changes.removed)}[/bold]")

    _run(run())


@app.command()
def count(
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    verbose: VerboseOption = False,
) -> None:
    """Show the number of tracked packages."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with PackageStore(cfg.database.path) as store:
            total = await store.total(ExpiringCache())
        console.print(f"Tracking [bold]{total}[/bold] packages")

    _run(run())


@app.command("rebuild-fan-in")
def rebuild_fan_in(
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    verbose: VerboseOption = False,
) -> None:
    """Rebuild the dependent-repository table used for popular packages."""

    async def run() -> None:
        cfg = _load(config, verbose)
        async with PackageStore(cfg.database.path) as store:
            rows = await store.rebuild_dependent_repositories()
        console.print(f"[green]Rebuilt[/green] {rows} dependent repository links")

    _run(run())


@app.command()
def run(
    config: ConfigOption = Path(DEFAULT_CONFIG_PATH),
    github_token: GitHubTokenOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Refresh stale packages in the background until interrupted."""

    async def serve() -> None:
        cfg = _load(config, verbose)
        async with _services(cfg, github_token) as services:
            scheduler = StaleScheduler(
                services.store,
                services.queue,
                stale_after=timedelta(hours=cfg.sync.stale_after_hours),
                batch_size=cfg.sync.batch_size,
                interval=timedelta(minutes=cfg.sync.interval_minutes),
            )
            services.queue.start()
            await scheduler.start()
            console.print(
                f"Serving [bold]{', '.join(services.adapters.ecosystems)}[/bold], press Ctrl+C to stop"
            )
            try:
                await asyncio.Event().wait()
            finally:
                await scheduler.stop()

    try:
        _run(serve())
    except KeyboardInterrupt:
        console.print("Stopped")


if __name__ == "__main__":
    app()
