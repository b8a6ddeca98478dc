"""CLI: init, status, user, child, access, check, token, stats, export."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kidtrack.auth.facade import PermissionFacade
from kidtrack.auth.jwt import (
    TokenExpiredError,
    TokenInvalidError,
    create_token,
    jwt_secret,
    user_from_token,
)
from kidtrack.auth.permissions import PermissionContext, is_allowed
from kidtrack.auth.roles import Capabilities, Role, default_capabilities_for
from kidtrack.config import Config
from kidtrack.core.access import AccessRelationStore, store_call
from kidtrack.core.audit import AuditTrail
from kidtrack.core.children import ChildService
from kidtrack.core.logs import EXPORT_FORMATS, LogService
from kidtrack.errors import KidtrackError
from kidtrack.events.bus import EventBus
from kidtrack.models.profile import Profile
from kidtrack.storage.sqlite_store import SQLiteStore


@dataclass
class Services:
    store: SQLiteStore
    access: AccessRelationStore
    children: ChildService
    logs: LogService


@asynccontextmanager
async def open_services(config: Config) -> AsyncIterator[Services]:
    """Open the store and wire the services the way every command needs them."""
    store = SQLiteStore(config.db_path, wal_mode=config.wal_mode)
    await store.initialize()
    bus = EventBus()
    AuditTrail(store, bus).attach()
    access = AccessRelationStore(
        store,
        bus,
        max_retries=config.store_max_retries,
        retry_delay=config.store_retry_delay,
    )
    try:
        yield Services(
            store=store,
            access=access,
            children=ChildService(store, access, bus),
            logs=LogService(
                store,
                access,
                bus,
                page_size_default=config.page_size_default,
                page_size_max=config.page_size_max,
            ),
        )
    finally:
        await store.close()


async def _acting_user(store: SQLiteStore, as_user: str | None, token: str | None) -> Profile:
    if token:
        return user_from_token(token, jwt_secret())
    if not as_user:
        raise click.UsageError("Pass --as USER_ID or --token TOKEN")
    data = await store_call("get profile", lambda: store.get_profile(as_user))
    if not data:
        click.echo(f"Error: No user {as_user}", err=True)
        sys.exit(1)
    return Profile(**data)


def acting_user_options(f):
    f = click.option("--token", default=None, help="JWT token of the acting user")(f)
    f = click.option("--as", "as_user", default=None, help="Acting user ID")(f)
    return f


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except (KidtrackError, TokenExpiredError, TokenInvalidError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _require_db(config: Config) -> None:
    if not config.db_path.exists():
        click.echo(
            f"Error: No database at {config.db_path}. Run 'kidtrack init' first.", err=True
        )
        sys.exit(1)


@click.group()
@click.version_option(package_name="kidtrack")
@click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Data directory (default: $KIDTRACK_HOME or ~/.kidtrack)",
)
@click.pass_context
def main(ctx: click.Context, home: Path | None) -> None:
    """kidtrack: child development tracking with per-child access control."""
    config = Config.load(home.expanduser().resolve() if home else None)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


@main.command()
@click.pass_obj
def init(config: Config) -> None:
    """Initialize the data directory and database."""

    async def _init() -> None:
        store = SQLiteStore(config.db_path, wal_mode=config.wal_mode)
        await store.initialize()
        await store.close()
        config.save()

    asyncio.run(_init())
    click.echo(f"Initialized kidtrack at {config.data_path}")
    click.echo(f"Database: {config.db_path}")


@main.command()
@click.pass_obj
def status(config: Config) -> None:
    """Show database statistics."""
    _require_db(config)

    async def _status() -> dict:
        store = SQLiteStore(config.db_path, wal_mode=config.wal_mode)
        try:
            await store.initialize()
            return await store.get_stats()
        finally:
            await store.close()

    stats = asyncio.run(_status())
    click.echo(json.dumps(stats, indent=2))


# --- Users ---


@main.group()
def user() -> None:
    """Manage user profiles."""


@user.command("add")
@click.argument("email")
@click.argument("full_name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.PARENT.value,
    help="Account role",
)
@click.pass_obj
def user_add(config: Config, email: str, full_name: str, role: str) -> None:
    """Create a user profile."""
    _require_db(config)

    async def _add() -> None:
        async with open_services(config) as svc:
            if await store_call(
                "get profile", lambda: svc.store.get_profile_by_email(email)
            ):
                click.echo(f"Error: A user with email {email} already exists", err=True)
                sys.exit(1)
            profile = Profile(email=email, full_name=full_name, role=Role(role))
            await store_call(
                "insert profile", lambda: svc.store.insert_profile(profile.to_storage())
            )

        Console().print(
            Panel(
                f"[green]✓[/green] User created: {full_name}\n"
                f"ID: {profile.id}\n"
                f"Role: {profile.role.value}",
                title="User Created",
            )
        )

    _run(_add())


@user.command("list")
@click.pass_obj
def user_list(config: Config) -> None:
    """List user profiles."""
    _require_db(config)

    async def _list() -> None:
        async with open_services(config) as svc:
            rows = await store_call("list profiles", svc.store.list_profiles)
            profiles = [Profile(**row) for row in rows]

        table = Table(title="Users")
        table.add_column("ID", style="cyan")
        table.add_column("Email")
        table.add_column("Name")
        table.add_column("Role", style="magenta")
        for p in profiles:
            row = p.to_response()
            table.add_row(row["id"], row["email"], row["full_name"], row["role"])
        Console().print(table)

    _run(_list())


# --- Children ---


@main.group()
def child() -> None:
    """Manage children."""


@child.command("add")
@click.argument("name")
@click.option("--birth-date", default=None, help="ISO date, e.g. 2019-04-02")
@click.option("--diagnosis", default=None)
@click.option("--notes", default=None)
@acting_user_options
@click.pass_obj
def child_add(
    config: Config,
    name: str,
    birth_date: str | None,
    diagnosis: str | None,
    notes: str | None,
    as_user: str | None,
    token: str | None,
) -> None:
    """Create a child owned by the acting user."""
    _require_db(config)

    async def _add() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            created = await svc.children.create_child(
                facade, name=name, birth_date=birth_date, diagnosis=diagnosis, notes=notes
            )
        Console().print(
            Panel(
                f"[green]✓[/green] Child created: {created.name}\nID: {created.id}",
                title="Child Created",
            )
        )

    _run(_add())


@child.command("list")
@click.option("--search", default=None, help="Case-insensitive name filter")
@click.option("--relationship", default=None, help="Only children with this relationship")
@click.option("--all", "include_inactive", is_flag=True, help="Include deleted children")
@click.option("--json", "as_json", is_flag=True, help="Print full records as JSON")
@acting_user_options
@click.pass_obj
def child_list(
    config: Config,
    search: str | None,
    relationship: str | None,
    include_inactive: bool,
    as_json: bool,
    as_user: str | None,
    token: str | None,
) -> None:
    """List children visible to the acting user."""
    _require_db(config)

    async def _list() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            children = await svc.children.list_children(
                facade,
                include_inactive=include_inactive,
                search=search,
                relationship_type=relationship,
            )

        if as_json:
            click.echo(json.dumps([c.to_response(detail="full") for c in children], indent=2))
            return

        table = Table(title="Children")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Relationship", style="magenta")
        table.add_column("Level", style="green")
        table.add_column("Active")
        for c in children:
            row = c.to_response()
            table.add_row(
                row["id"],
                row["name"],
                row["relationship_type"] or "-",
                facade.get_permission_level(c).value,
                "yes" if row["is_active"] else "no",
            )
        Console().print(table)

    _run(_list())


@child.command("delete")
@click.argument("child_id")
@acting_user_options
@click.pass_obj
def child_delete(config: Config, child_id: str, as_user: str | None, token: str | None) -> None:
    """Soft-delete a child."""
    _require_db(config)

    async def _delete() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            await svc.children.delete_child(facade, child_id)
        click.echo(f"Deleted child {child_id}")

    _run(_delete())


# --- Access ---


@main.group()
def access() -> None:
    """Grant, revoke and list per-child access."""


@access.command("grant")
@click.argument("child_id")
@click.argument("user_id")
@click.argument("relationship")
@click.option("--edit/--no-edit", "can_edit", default=None)
@click.option("--view/--no-view", "can_view", default=None)
@click.option("--export/--no-export", "can_export", default=None)
@acting_user_options
@click.pass_obj
def access_grant(
    config: Config,
    child_id: str,
    user_id: str,
    relationship: str,
    can_edit: bool | None,
    can_view: bool | None,
    can_export: bool | None,
    as_user: str | None,
    token: str | None,
) -> None:
    """Share a child with another user.

    Capabilities default to the relationship's defaults; flags override them.
    """
    _require_db(config)

    overrides = {
        k: v
        for k, v in (("can_edit", can_edit), ("can_view", can_view), ("can_export", can_export))
        if v is not None
    }
    capabilities: Capabilities | None = None
    if overrides:
        capabilities = default_capabilities_for(relationship).model_copy(update=overrides)

    async def _grant() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            relation = await svc.children.share_child(
                facade, child_id, user_id, relationship, capabilities
            )
        Console().print(
            Panel(
                f"[green]✓[/green] {relation.user_id} is now {relation.relationship_type.value} "
                f"of {relation.child_id}\n"
                f"edit={relation.can_edit} view={relation.can_view} export={relation.can_export}",
                title="Access Granted",
            )
        )

    _run(_grant())


@access.command("revoke")
@click.argument("child_id")
@click.argument("user_id")
@acting_user_options
@click.pass_obj
def access_revoke(
    config: Config, child_id: str, user_id: str, as_user: str | None, token: str | None
) -> None:
    """Remove a user's access to a child."""
    _require_db(config)

    async def _revoke() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            removed = await svc.children.unshare_child(facade, child_id, user_id)
        if removed:
            click.echo(f"Revoked access for {user_id} on {child_id}")
        else:
            click.echo(f"{user_id} had no access to {child_id}")

    _run(_revoke())


@access.command("list")
@click.argument("child_id")
@acting_user_options
@click.pass_obj
def access_list(config: Config, child_id: str, as_user: str | None, token: str | None) -> None:
    """List everyone with access to a child."""
    _require_db(config)

    async def _list() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            relations = await svc.children.list_access(facade, child_id)

        table = Table(title=f"Access to {child_id}")
        table.add_column("User", style="cyan")
        table.add_column("Relationship", style="magenta")
        table.add_column("Edit")
        table.add_column("View")
        table.add_column("Export")
        table.add_column("Granted by")
        for r in relations:
            row = r.to_response()
            table.add_row(
                row["user_id"],
                row["relationship_type"],
                str(row["can_edit"]),
                str(row["can_view"]),
                str(row["can_export"]),
                row["granted_by"],
            )
        Console().print(table)

    _run(_list())


# --- Engine, tokens, export ---


@main.command()
@click.argument("action")
@click.option("--role", required=True, help="Actor role")
@click.option("--actor", default="actor", help="Actor user ID")
@click.option("--owner", default=None, help="Resource owner user ID")
@click.option("--relationship", default=None, help="Actor's relationship to the child")
@click.option("--can-edit", is_flag=True)
@click.option("--can-view", is_flag=True)
@click.option("--can-export", is_flag=True)
def check(
    action: str,
    role: str,
    actor: str,
    owner: str | None,
    relationship: str | None,
    can_edit: bool,
    can_view: bool,
    can_export: bool,
) -> None:
    """Evaluate one permission decision without touching the database."""
    ctx = PermissionContext(
        actor_role=role,
        actor_id=actor,
        resource_owner_id=owner,
        relationship_type=relationship,
        can_edit=can_edit,
        can_view=can_view,
        can_export=can_export,
    )
    try:
        allowed = is_allowed(action, ctx)
    except KidtrackError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo("allowed" if allowed else "denied")


@main.command()
@click.argument("user_id")
@click.option("--exp-minutes", type=int, default=None, help="Token lifetime")
@click.pass_obj
def token(config: Config, user_id: str, exp_minutes: int | None) -> None:
    """Issue a JWT for a stored user."""
    _require_db(config)

    async def _token() -> None:
        async with open_services(config) as svc:
            data = await store_call("get profile", lambda: svc.store.get_profile(user_id))
        if not data:
            click.echo(f"Error: No user {user_id}", err=True)
            sys.exit(1)
        profile = Profile(**data)
        click.echo(
            create_token(
                profile.id,
                profile.role,
                email=profile.email,
                exp_minutes=exp_minutes or config.token_exp_minutes,
            )
        )

    _run(_token())


@main.command()
@acting_user_options
@click.pass_obj
def stats(config: Config, as_user: str | None, token: str | None) -> None:
    """Dashboard counts for the children the acting user can see."""
    _require_db(config)

    async def _stats() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            counts = await svc.logs.stats(facade)

        table = Table(title="Dashboard")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", style="green", justify="right")
        for key, value in counts.items():
            table.add_row(key, str(value))
        Console().print(table)

    _run(_stats())


@main.command()
@click.argument("child_id")
@click.option("--format", "fmt", type=click.Choice(sorted(EXPORT_FORMATS)), default=None)
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None)
@acting_user_options
@click.pass_obj
def export(
    config: Config,
    child_id: str,
    fmt: str | None,
    output: Path | None,
    as_user: str | None,
    token: str | None,
) -> None:
    """Export a child's non-private logs."""
    _require_db(config)

    async def _export() -> None:
        async with open_services(config) as svc:
            facade = PermissionFacade(await _acting_user(svc.store, as_user, token))
            rendered = await svc.logs.export_logs(
                facade, child_id, fmt=fmt or config.export_format
            )
        if output:
            output.write_text(rendered)
            click.echo(f"Wrote {output}")
        else:
            click.echo(rendered, nl=False)

    _run(_export())


if __name__ == "__main__":
    main()
