# Cirrus CLI entry point
"""cirrus CLI — reconcile declared compute resources from the terminal.

FILE arguments are JSON lists of ``{"kind": ..., "fields": {...}}`` entries,
applied in file order and destroyed in reverse order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

import click

from ..config import settings


@dataclass
class Runtime:
    registry: Any
    store: Any
    compute: Any

    def controller(self, kind_name: str):
        from ..services.lifecycle import ResourceController

        return ResourceController(self.registry.get(kind_name), self.compute, store=self.store)


def _runtime(ctx: click.Context) -> Runtime:
    """Registry, state store and compute context, built from settings unless supplied."""
    obj = ctx.ensure_object(dict)
    if "runtime" in obj:
        return obj["runtime"]

    from ..common import init_logging
    from ..providers.gcp.context import ComputeContext
    from ..services.registry import default_registry
    from ..services.state_store import SqlStateStore

    registry = obj.get("registry") or default_registry()
    session = obj.get("session")
    if session is None:
        from ..db import SessionLocal, init_db

        init_db()
        session = SessionLocal()
        ctx.call_on_close(session.close)
    compute = obj.get("compute")
    if compute is None:
        init_logging("cirrus")
        compute = ComputeContext.from_settings(settings)

    runtime = Runtime(registry=registry, store=SqlStateStore(session, registry), compute=compute)
    obj["runtime"] = runtime
    return runtime


def _load_entries(path: str) -> list[dict[str, Any]]:
    with open(path) as f:
        try:
            entries = json.load(f)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"{path} is not valid JSON: {e}")
    if not isinstance(entries, list):
        raise click.ClickException(f"{path} must hold a list of resources")
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or "kind" not in entry or not isinstance(entry.get("fields"), dict):
            raise click.ClickException(f"Entry {i} in {path} needs a 'kind' and a 'fields' object")
    return entries


def _declare(runtime: Runtime, entries: list[dict[str, Any]]) -> list:
    import pydantic

    resources, problems = [], []
    for entry in entries:
        try:
            resources.append(runtime.registry.declare(entry["kind"], entry["fields"]))
        except KeyError as e:
            problems.append(str(e.args[0]))
        except pydantic.ValidationError as e:
            name = entry["fields"].get("name", "?")
            for err in e.errors():
                loc = ".".join(str(p) for p in err["loc"])
                problems.append(f"{entry['kind']} '{name}': {loc}: {err['msg']}")
    if problems:
        from ..common import print_error

        for problem in problems:
            print_error(problem)
        raise click.ClickException(f"{len(problems)} configuration error(s)")
    return resources


@click.group()
@click.version_option(version=settings.app_version, prog_name="cirrus")
@click.pass_context
def cli(ctx: click.Context):
    """Cirrus — declarative Google Compute Engine resources."""
    ctx.ensure_object(dict)


@cli.command()
@click.pass_context
def kinds(ctx: click.Context):
    """List the registered resource kinds."""
    from rich.table import Table

    from ..common import console
    from ..services.registry import default_registry

    registry = ctx.obj.get("registry") or default_registry()
    table = Table(title="Resource Kinds")
    table.add_column("Kind", style="cyan")
    table.add_column("Scope")
    table.add_column("Updatable fields")
    table.add_column("Description")
    for name in registry.kinds:
        kind = registry.get(name)
        table.add_row(
            name,
            kind.scope.key,
            ", ".join(sorted(kind.model.updatable_fields())) or "-",
            kind.description,
        )
    console.print(table)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx: click.Context, file: str):
    """Check FILE without calling the API."""
    from ..common import print_error, print_success

    runtime = _runtime(ctx)
    resources = _declare(runtime, _load_entries(file))
    failed = 0
    for resource in resources:
        errors = runtime.controller(resource.kind).validate(resource.model)
        if errors:
            failed += 1
            for error in errors:
                print_error(f"{resource}: {error}")
        else:
            print_success(f"{resource} is valid")
    if failed:
        raise click.ClickException(f"{failed} invalid resource(s)")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def refresh(ctx: click.Context, file: str):
    """Re-read the remote state of every resource in FILE."""
    from ..common import print_info, print_success, print_warning
    from ..errors import CirrusError

    runtime = _runtime(ctx)
    for resource in _declare(runtime, _load_entries(file)):
        stored = runtime.store.load(resource.kind, resource.name)
        if stored is not None:
            resource = stored
        try:
            found = runtime.controller(resource.kind).refresh(resource)
        except CirrusError as e:
            raise click.ClickException(f"Refresh of {resource} failed: {e}")
        if found:
            print_success(f"{resource} is present")
            link = getattr(resource.model, "self_link", None)
            if link:
                print_info(link)
        else:
            print_warning(f"{resource} does not exist")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def apply(ctx: click.Context, file: str):
    """Create or update every resource in FILE, in file order."""
    from ..common import print_detail, print_step, print_success
    from ..errors import CirrusError
    from ..providers.base import LifecycleState
    from ..services.changeset import diff_fields

    runtime = _runtime(ctx)
    for resource in _declare(runtime, _load_entries(file)):
        controller = runtime.controller(resource.kind)
        stored = runtime.store.load(resource.kind, resource.name)
        try:
            if stored is not None and stored.state is LifecycleState.TAINTED:
                print_step(f"Refreshing tainted {stored}")
                if not controller.refresh(stored):
                    stored = None

            if stored is None or stored.state is LifecycleState.ABSENT:
                print_step(f"Creating {resource}")
                controller.create(resource)
                print_success(f"Created {resource}")
                continue

            changed = diff_fields(stored.model, resource.model)
            if not changed:
                print_detail(f"{resource} is up to date")
                continue
            print_step(f"Updating {resource}: {', '.join(sorted(changed))}")
            if controller.update(resource, stored.model, changed):
                print_success(f"Updated {resource}")
            else:
                print_detail(f"{resource}: nothing to change in place")
        except CirrusError as e:
            raise click.ClickException(f"{resource}: {e}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def destroy(ctx: click.Context, file: str, yes: bool):
    """Delete every resource in FILE, in reverse file order."""
    from ..common import print_step, print_success
    from ..errors import CirrusError

    runtime = _runtime(ctx)
    resources = _declare(runtime, _load_entries(file))
    if not yes:
        click.confirm(f"Delete {len(resources)} resource(s)?", abort=True)
    for resource in reversed(resources):
        stored = runtime.store.load(resource.kind, resource.name)
        if stored is not None:
            resource = stored
        print_step(f"Deleting {resource}")
        try:
            runtime.controller(resource.kind).delete(resource)
        except CirrusError as e:
            raise click.ClickException(f"{resource}: {e}")
        print_success(f"Deleted {resource}")


@cli.command()
@click.option("--kind", "kind_name", default=None, help="Only show resources of this kind")
@click.pass_context
def state(ctx: click.Context, kind_name: Optional[str]):
    """List checkpointed resources."""
    from rich.table import Table

    from ..common import console

    runtime = _runtime(ctx)
    items = runtime.store.list(kind_name)
    if not items:
        console.print("[dim]No resources checkpointed.[/dim]")
        return
    table = Table(title="State")
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Location")
    table.add_column("State")
    for r in items:
        style = "green" if r.state.value == "present" else "red" if r.state.value == "tainted" else "yellow"
        table.add_row(r.kind, r.name, r.location or "global", f"[{style}]{r.state.value}[/{style}]")
    console.print(table)


if __name__ == "__main__":
    cli()
