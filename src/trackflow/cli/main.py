"""trackflow CLI — command-line interface for the Trackflow engine.

Commands:
    init              Scaffold a trackflow.yaml, plans file and data directory
    validate          Validate the config and plans files
    capacity          Show a capacity check for a scope
    crates            Show a person's display crates
    submit            Add a track to a personal workspace or label inbox
    pitch             Mark a personal track as pitched
    sign              Mark a personal track as signed
    move-crate        Move a track from Submissions into Crate A or B
    promote           Hand a personal track to a label
    transfer          Send a personal track to a connected peer
    advance           Move a label track to its next phase
    archive           Archive a track
    gaps              Release-gap report for a label
    staffing          Weekly staffing status for a staff member
    connect request   Request a peer connection
    connect accept    Accept a pending peer connection
    label create      Create a label owned by a person
    label join        Add a person to a label's staff
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from datetime import date
from functools import wraps
from pathlib import Path
from typing import Any

import click

from trackflow import __version__
from trackflow.config import ConfigError, TrackflowConfig, load_config
from trackflow.errors import CapacityExceeded, TrackflowError
from trackflow.models import (
    DISPLAY_CRATES,
    CrateTag,
    MembershipRole,
    OrganizationScope,
    PersonalScope,
    ResourceKind,
    SourceKind,
    Tier,
    Track,
)
from trackflow.pipeline.staffing import STATUS_COLORS
from trackflow.plans.catalog import PlanCatalogError, load_plans
from trackflow.sdk.client import Trackflow
from trackflow.store.base import StoreError

# --- Defaults ---

DEFAULT_DATA_DIR = "./data"

_INIT_CONFIG = """\
# Trackflow project configuration
# Paths are relative to this file.
data_dir: ./data
plans: ./plans.yaml

# Tier for billing owners without a subscription entry.
default_tier: free

notifications:
  log_events: true
  # webhook_url: https://hooks.example.com/trackflow
"""

_INIT_PLANS = """\
# Tier limits. Tiers left out keep their built-in limits; -1 means unlimited.
plans:
  - tier: free
    name: Free
    limits:
      max_tracks: 10
      max_staff: 1
      max_contacts: 100
      max_vault_tracks: 10
      max_label_ownership: 1
      max_staff_memberships: 3

# Billing owner id (person or organization) -> tier.
subscriptions: {}
"""

_INIT_GITIGNORE = """\
# Trackflow records
data/
"""


def _resolve_cfg(config_path: str | None = None) -> TrackflowConfig:
    """Load config from trackflow.yaml (auto-discover, never error)."""
    try:
        return load_config(config_path)
    except (OSError, ConfigError):
        return TrackflowConfig()


def _or(explicit: str | None, cfg_val: str | None, fallback: str) -> str:
    """Return first non-None value: explicit CLI flag > config > fallback."""
    return explicit or cfg_val or fallback


def _engine(ctx: click.Context) -> Trackflow:
    opts = ctx.obj or {}
    cfg = _resolve_cfg(opts.get("config"))
    data_dir = _or(opts.get("data_dir"), cfg.data_dir, DEFAULT_DATA_DIR)
    plans = opts.get("plans") or cfg.plans
    try:
        return Trackflow.from_config(
            cfg,
            data_dir=data_dir,
            plans=plans,
            default_tier=cfg.default_tier or Tier.FREE,
        )
    except (PlanCatalogError, ConfigError, ValueError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


def _scope(person: str | None, org: str | None) -> PersonalScope | OrganizationScope:
    if (person is None) == (org is None):
        raise click.UsageError("Pass exactly one of --person or --org")
    if person is not None:
        return PersonalScope(person_id=person)
    return OrganizationScope(organization_id=org)


def _handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Turn engine errors into a red message and exit status 1."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except CapacityExceeded as e:
            click.echo(
                click.style("CAPACITY", fg="red", bold=True)
                + f" — {e.result.resource_kind} limit reached: "
                f"{e.current_count}/{e.max_count} ({e.tier})",
                err=True,
            )
            if e.result.locked:
                click.echo(
                    "  workspace is locked until tracks are removed or the plan is upgraded",
                    err=True,
                )
            sys.exit(1)
        except (TrackflowError, StoreError) as e:
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            sys.exit(1)

    return wrapper


def _track_line(track: Track) -> str:
    owner = track.personal_owner_id or f"org:{track.organization_id}"
    artist = f" — {track.artist_name}" if track.artist_name else ""
    return f"  {track.id:<18} {track.title}{artist}  [{track.phase}] ({owner})"


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="Path to trackflow.yaml")
@click.option("--data-dir", default=None, help="Directory holding the JSONL records")
@click.option("--plans", default=None, help="Path to the plans YAML file")
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    data_dir: str | None,
    plans: str | None,
    verbose: bool,
) -> None:
    """Trackflow: submission lifecycle and tenancy routing for A&R teams."""
    ctx.ensure_object(dict)
    ctx.obj.update(config=config_path, data_dir=data_dir, plans=plans)
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# --- init command ---


@cli.command()
@click.argument("directory", default=".")
def init(directory: str) -> None:
    """Scaffold a new Trackflow project."""
    root = Path(directory)
    root.mkdir(parents=True, exist_ok=True)

    created: list[str] = []
    skipped: list[str] = []

    for name, content in (
        ("trackflow.yaml", _INIT_CONFIG),
        ("plans.yaml", _INIT_PLANS),
        (".gitignore", _INIT_GITIGNORE),
    ):
        target = root / name
        if target.exists():
            skipped.append(name)
        else:
            target.write_text(content, encoding="utf-8")
            created.append(name)

    data_dir = root / "data"
    if data_dir.exists():
        skipped.append("data/")
    else:
        data_dir.mkdir(parents=True)
        created.append("data/")

    if created:
        click.echo(click.style("Created:", fg="green", bold=True))
        for f in created:
            click.echo(f"  + {f}")

    for s in skipped:
        click.echo(f"  skip  {s} (already exists)")

    if created:
        click.echo("\n" + click.style("Next steps:", bold=True))
        click.echo("  trackflow validate")
        click.echo('  trackflow submit "First demo" --person me --artist "Some Artist"')
        click.echo("  trackflow crates me")


# --- validate command ---


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate the config and plans files."""
    opts = ctx.obj or {}
    errors: list[str] = []
    ok_count = 0

    cfg = TrackflowConfig()
    try:
        cfg = load_config(opts.get("config"))
        if cfg.config_path is not None:
            click.echo(click.style("OK", fg="green") + f"  config: {cfg.config_path}")
            ok_count += 1
    except (OSError, ConfigError) as e:
        errors.append(f"config: {e}")
        click.echo(click.style("FAIL", fg="red") + f"  config: {e}")

    plans = opts.get("plans") or cfg.plans
    if plans:
        try:
            catalog, subscriptions = load_plans(plans)
            click.echo(
                click.style("OK", fg="green")
                + f"  plans: {len(catalog)} tier(s), {len(subscriptions)} subscription(s)"
            )
            ok_count += 1
        except PlanCatalogError as e:
            errors.append(f"plans: {e}")
            click.echo(click.style("FAIL", fg="red") + f"  plans: {e}")

    if errors:
        click.echo(f"\n{len(errors)} error(s) found.")
        sys.exit(1)
    elif ok_count > 0:
        click.echo(f"\nAll {ok_count} config(s) valid.")
    else:
        click.echo("No config files found to validate.")


# --- capacity / crates ---


@cli.command()
@click.option("--person", default=None, help="Personal workspace (person id)")
@click.option("--org", default=None, help="Label pipeline (organization id)")
@click.option(
    "--kind",
    type=click.Choice([k.value for k in ResourceKind]),
    default=ResourceKind.TRACK.value,
    help="Resource kind to check",
)
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
@_handle_errors
def capacity(
    ctx: click.Context,
    person: str | None,
    org: str | None,
    kind: str,
    json_output: bool,
) -> None:
    """Show a capacity check for a scope."""
    scope = _scope(person, org)
    result = _engine(ctx).check_capacity(scope, kind)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    limit = "unlimited" if result.unlimited else str(result.max_count)
    if result.locked:
        badge = click.style("LOCKED", fg="red", bold=True)
    elif result.can_add:
        badge = click.style("OK", fg="green", bold=True)
    else:
        badge = click.style("FULL", fg="yellow", bold=True)
    click.echo(f"{badge} — {scope} {result.resource_kind}")
    click.echo(f"  usage: {result.current_count}/{limit}")
    click.echo(f"  tier:  {result.tier}")


@cli.command()
@click.argument("person_id")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
@_handle_errors
def crates(ctx: click.Context, person_id: str, json_output: bool) -> None:
    """Show a person's display crates."""
    by_crate = _engine(ctx).crates(person_id)

    if json_output:
        data = {
            str(crate): [t.model_dump(mode="json") for t in tracks]
            for crate, tracks in by_crate.items()
        }
        click.echo(json.dumps(data, indent=2))
        return

    for crate in DISPLAY_CRATES:
        tracks = by_crate[crate]
        click.echo(click.style(f"{crate} ({len(tracks)})", bold=True))
        for track in tracks:
            click.echo(_track_line(track))


# --- tenancy commands ---


@cli.command()
@click.argument("title")
@click.option("--person", default=None, help="Personal workspace (person id)")
@click.option("--org", default=None, help="Label pipeline (organization id)")
@click.option("--artist", default="", help="Artist name")
@click.option(
    "--source",
    type=click.Choice([s.value for s in SourceKind]),
    default=SourceKind.MANUAL.value,
    help="How the track arrived",
)
@click.option(
    "--release-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Target release date (YYYY-MM-DD)",
)
@click.pass_context
@_handle_errors
def submit(
    ctx: click.Context,
    title: str,
    person: str | None,
    org: str | None,
    artist: str,
    source: str,
    release_date: Any,
) -> None:
    """Add a track to a personal workspace or a label inbox."""
    scope = _scope(person, org)
    track = _engine(ctx).submit_track(
        scope,
        title=title,
        artist_name=artist,
        source_kind=source,
        target_release_date=release_date.date() if release_date else None,
    )
    click.echo(click.style("SUBMITTED", fg="green", bold=True) + f" — {track.id}")
    click.echo(f"  scope: {scope}")


@cli.command()
@click.argument("track_id")
@click.pass_context
@_handle_errors
def pitch(ctx: click.Context, track_id: str) -> None:
    """Mark a personal track as pitched."""
    track = _engine(ctx).pitch(track_id)
    click.echo(click.style("PITCHED", fg="green", bold=True) + f" — {track.id}")


@cli.command()
@click.argument("track_id")
@click.pass_context
@_handle_errors
def sign(ctx: click.Context, track_id: str) -> None:
    """Mark a personal track as signed."""
    track = _engine(ctx).mark_signed(track_id)
    click.echo(click.style("SIGNED", fg="green", bold=True) + f" — {track.id}")


@cli.command("move-crate")
@click.argument("track_id")
@click.argument("crate", type=click.Choice([CrateTag.CRATE_A.value, CrateTag.CRATE_B.value]))
@click.option("--person", required=True, help="Acting person id")
@click.pass_context
@_handle_errors
def move_crate(ctx: click.Context, track_id: str, crate: str, person: str) -> None:
    """Move a track from Submissions into Crate A or B."""
    track = _engine(ctx).move_to_crate(track_id, crate, acting_person_id=person)
    click.echo(click.style("MOVED", fg="green", bold=True) + f" — {track.id} -> {crate}")


@cli.command()
@click.argument("track_id")
@click.argument("organization_id")
@click.option("--person", required=True, help="Acting person id (current owner)")
@click.pass_context
@_handle_errors
def promote(ctx: click.Context, track_id: str, organization_id: str, person: str) -> None:
    """Hand a personal track to a label. This cannot be undone."""
    track = _engine(ctx).promote_to_label(track_id, organization_id, acting_person_id=person)
    click.echo(
        click.style("PROMOTED", fg="green", bold=True)
        + f" — {track.id} -> organization:{organization_id}"
    )


@cli.command()
@click.argument("track_id")
@click.option("--from", "from_person", required=True, help="Current owner")
@click.option("--to", "to_person", required=True, help="Connected receiver")
@click.pass_context
@_handle_errors
def transfer(ctx: click.Context, track_id: str, from_person: str, to_person: str) -> None:
    """Send a personal track to a connected peer."""
    track = _engine(ctx).transfer_to_peer(track_id, from_person, to_person)
    click.echo(
        click.style("TRANSFERRED", fg="green", bold=True)
        + f" — {track.id} -> {to_person} ({track.crate_tag})"
    )


# --- pipeline commands ---


@cli.command()
@click.argument("track_id")
@click.pass_context
@_handle_errors
def advance(ctx: click.Context, track_id: str) -> None:
    """Move a track to its next phase."""
    track = _engine(ctx).advance(track_id)
    click.echo(click.style("ADVANCED", fg="green", bold=True) + f" — {track.id} -> {track.phase}")
    if track.release_date is not None:
        click.echo(f"  release: {track.release_date.isoformat()}")


@cli.command()
@click.argument("track_id")
@click.option("--reason", default=None, help="Rejection reason")
@click.pass_context
@_handle_errors
def archive(ctx: click.Context, track_id: str, reason: str | None) -> None:
    """Archive a track."""
    track = _engine(ctx).archive(track_id, reason)
    click.echo(click.style("ARCHIVED", fg="yellow", bold=True) + f" — {track.id}")
    click.echo(f"  reason: {track.rejection_reason}")


@cli.command()
@click.argument("organization_id")
@click.option(
    "--today",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Reference date (YYYY-MM-DD, default today)",
)
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
@_handle_errors
def gaps(ctx: click.Context, organization_id: str, today: Any, json_output: bool) -> None:
    """Release-gap report for a label."""
    ref: date | None = today.date() if today else None
    report = _engine(ctx).gap_report(organization_id, ref)

    if json_output:
        data = report.model_dump(mode="json")
        data["gap_count"] = report.gap_count
        data["has_critical_gap"] = report.has_critical_gap
        click.echo(json.dumps(data, indent=2))
        return

    for window in report.windows:
        color = "red" if window.has_gap else "green"
        click.echo(
            f"  {window.start.isoformat()} .. {window.end.isoformat()}  "
            + click.style(f"{window.count} release(s)", fg=color)
        )
    if report.has_critical_gap:
        click.echo(
            click.style("CRITICAL GAP", fg="red", bold=True)
            + f" — no releases in {', '.join(report.gap_months)}"
        )
    else:
        click.echo(click.style("OK", fg="green", bold=True) + f" — {report.gap_count} empty window(s)")


@cli.command()
@click.argument("person_id")
@click.argument("organization_id")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
@_handle_errors
def staffing(ctx: click.Context, person_id: str, organization_id: str, json_output: bool) -> None:
    """Weekly staffing status for a staff member."""
    report = _engine(ctx).staffing_status(person_id, organization_id)

    if json_output:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    color = STATUS_COLORS.get(report.status, "white")
    click.echo(click.style(str(report.status).upper(), fg=color, bold=True) + f" — {person_id}")
    click.echo(f"  listens:  {report.weekly_listens} ({report.effective_listens} effective)")
    click.echo(f"  demos:    {report.weekly_demos}")
    click.echo(f"  coverage: {report.coverage:.0f}%")


# --- connect group ---


@cli.group()
def connect() -> None:
    """Peer connections."""


@connect.command("request")
@click.argument("requester_id")
@click.argument("recipient_id")
@click.pass_context
@_handle_errors
def connect_request(ctx: click.Context, requester_id: str, recipient_id: str) -> None:
    """Request a connection from REQUESTER_ID to RECIPIENT_ID."""
    conn = _engine(ctx).request_connection(requester_id, recipient_id)
    click.echo(click.style("REQUESTED", fg="yellow", bold=True) + f" — {conn.id}")
    click.echo(f"\n  Accept: trackflow connect accept {conn.id} --person {recipient_id}")


@connect.command("accept")
@click.argument("connection_id")
@click.option("--person", required=True, help="Recipient of the request")
@click.pass_context
@_handle_errors
def connect_accept(ctx: click.Context, connection_id: str, person: str) -> None:
    """Accept a pending connection."""
    conn = _engine(ctx).accept_connection(connection_id, person)
    click.echo(
        click.style("CONNECTED", fg="green", bold=True)
        + f" — {conn.requester_id} <-> {conn.recipient_id}"
    )


# --- label group ---


@cli.group()
def label() -> None:
    """Labels and staff memberships."""


@label.command("create")
@click.argument("person_id")
@click.argument("organization_id")
@click.pass_context
@_handle_errors
def label_create(ctx: click.Context, person_id: str, organization_id: str) -> None:
    """Create ORGANIZATION_ID owned by PERSON_ID."""
    _engine(ctx).create_label(person_id, organization_id)
    click.echo(click.style("CREATED", fg="green", bold=True) + f" — {organization_id} (owner {person_id})")


@label.command("join")
@click.argument("person_id")
@click.argument("organization_id")
@click.option(
    "--role",
    type=click.Choice([MembershipRole.MANAGER.value, MembershipRole.SCOUT.value]),
    default=MembershipRole.SCOUT.value,
)
@click.pass_context
@_handle_errors
def label_join(ctx: click.Context, person_id: str, organization_id: str, role: str) -> None:
    """Add PERSON_ID to ORGANIZATION_ID's staff."""
    membership = _engine(ctx).accept_staff_invite(person_id, organization_id, role)
    click.echo(
        click.style("JOINED", fg="green", bold=True)
        + f" — {person_id} in {organization_id} as {membership.role}"
    )
