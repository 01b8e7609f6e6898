#!/usr/bin/env python
"""FindBack Typer-based CLI.

Command surface over the matching engine:
  - Config precedence, JSON Schema + pydantic validation
  - Database table creation and migrations
  - Item seeding and listing (optionally with embedded matches)
  - Match runs for a single report, either direction, or every found report
  - Pretty output via rich
"""
from __future__ import annotations
import asyncio
import contextvars
import json
import logging
import os
from datetime import datetime
from logging import Logger
from pathlib import Path
from typing import Optional, Any, Dict, List

import typer
import yaml
from jsonschema import validate as js_validate, ValidationError as SchemaValidationError
from pydantic import BaseModel, Field, ValidationError as PydValidationError, field_validator
from rich.console import Console
from rich.table import Table

from libs.db import session as db_session
from libs.items import ItemKind, ItemRecord, RecordFilter, SqlAlchemyRecordStore
from libs.items.payloads import serialize_items
from libs.matching import MatchingConfig, ConfigurationError, RetrievalError, create_matching_service

PROJECT_ROOT = Path(__file__).resolve().parent.parent

APP = typer.Typer(add_completion=False, help="FindBack CLI")
console = Console()

# Sub-apps
config_app = typer.Typer(help="Config management")
db_app = typer.Typer(help="Database migrations & maintenance")
items_app = typer.Typer(help="Lost & found item reports")
match_app = typer.Typer(help="Matching operations")

APP.add_typer(config_app, name="config")
APP.add_typer(db_app, name="db")
APP.add_typer(items_app, name="items")
APP.add_typer(match_app, name="match")


# ------------------ Config Loading ------------------
def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open('r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def load_config(explicit: Optional[Path]) -> Dict[str, Any]:
    layers = []
    # defaults
    layers.append({
        'matching': MatchingConfig().to_dict(),
        'batch': {'timeout_seconds': 5},
        'logging': {'level': 'INFO'},
    })
    # user global
    layers.append(_load_yaml(Path.home() / '.findback' / 'config.yaml'))
    # project local
    layers.append(_load_yaml(Path('findback.yaml')))
    # explicit
    if explicit:
        layers.append(_load_yaml(explicit))
    # merge
    merged: Dict[str, Any] = {}
    for layer in layers:
        for k, v in layer.items():
            if isinstance(v, dict) and isinstance(merged.get(k), dict):
                merged[k].update(v)
            else:
                merged[k] = dict(v) if isinstance(v, dict) else v
    # env overrides (FINDBACK_FOO__BAR=val -> config['foo']['bar']=val)
    prefix = 'FINDBACK_'
    for k, v in os.environ.items():
        if not k.startswith(prefix) or '__' not in k:
            continue
        path = k[len(prefix):].lower().split('__')
        cur = merged
        for seg in path[:-1]:
            cur = cur.setdefault(seg, {})  # type: ignore
        cur[path[-1]] = v
    return merged


class MatchingCfg(BaseModel):
    category_weight: float = Field(30, ge=0)
    text_weight: float = Field(40, ge=0)
    location_weight: float = Field(15, ge=0)
    date_weight: float = Field(15, ge=0)
    date_window_days: int = Field(30, ge=1)
    date_grace_days: int = Field(1, ge=0)
    min_score: int = Field(50, ge=0, le=100)
    result_limit: int = Field(5, ge=1)
    ignore_stop_words: bool = True


class BatchCfg(BaseModel):
    timeout_seconds: float | None = Field(5, gt=0)
    workers: int | None = Field(None, ge=1)


class DatabaseCfg(BaseModel):
    url: str | None = None


class LoggingCfg(BaseModel):
    level: str = Field('INFO')
    file: str | None = None

    @field_validator('level')
    @classmethod
    def _level(cls, v):
        allowed = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in allowed:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class RootConfig(BaseModel):
    matching: MatchingCfg = MatchingCfg()
    batch: BatchCfg = BatchCfg()
    database: DatabaseCfg = DatabaseCfg()
    logging: LoggingCfg = LoggingCfg()


def validate_config(conf: Dict[str, Any]) -> None:
    schema_path = PROJECT_ROOT / 'config' / 'schema.json'
    if not schema_path.exists():
        raise typer.BadParameter(f"Missing {schema_path}")
    schema = json.loads(schema_path.read_text())
    js_validate(instance=conf, schema=schema)
    try:
        RootConfig(**conf)
    except PydValidationError as e:  # rethrow as typer-friendly error
        raise typer.BadParameter(f"Pydantic config validation failed: {e.errors()}")


def print_config(conf: Dict[str, Any]):
    table = Table(title="Effective Configuration")
    table.add_column("Key")
    table.add_column("Value")
    def _walk(prefix: str, obj: Any):
        if isinstance(obj, dict):
            for k, v in obj.items():
                _walk(f"{prefix}.{k}" if prefix else k, v)
        else:
            table.add_row(prefix, json.dumps(obj) if isinstance(obj, list) else str(obj))
    _walk('', conf)
    console.print(table)


# Global options context
class Context:
    def __init__(self):
        self.config: Dict[str, Any] = {}
        self.logger: Logger | None = None

    def matching_config(self) -> MatchingConfig:
        return MatchingConfig.from_mapping(self.config.get('matching')).validate()

    @property
    def batch_timeout(self) -> Optional[float]:
        value = self.config.get('batch', {}).get('timeout_seconds')
        return float(value) if value not in (None, '') else None

    @property
    def batch_workers(self) -> Optional[int]:
        value = self.config.get('batch', {}).get('workers')
        if value in (None, ''):
            return None
        try:
            return int(value)
        except ValueError as e:
            raise ConfigurationError(f"batch.workers must be an integer, got {value!r}") from e


pass_context = contextvars.ContextVar("findback_ctx")


@APP.callback()
def main(ctx: typer.Context, config: Optional[Path] = typer.Option(None, '--config', help='Config file path')):
    c = Context()
    c.config = load_config(config)
    # logging setup
    log_cfg = c.config.get('logging', {})
    level = getattr(logging, str(log_cfg.get('level', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s %(message)s',
                        filename=log_cfg.get('file'))
    c.logger = logging.getLogger('findback')
    db_session.configure(c.config.get('database', {}).get('url'))
    pass_context.set(c)


def _stores():
    factory = db_session.get_session_factory()
    return (
        SqlAlchemyRecordStore(None, ItemKind.LOST, session_factory=factory),
        SqlAlchemyRecordStore(None, ItemKind.FOUND, session_factory=factory),
    )


def _matching_service():
    ctx = pass_context.get()
    lost_store, found_store = _stores()
    try:
        return create_matching_service(lost_store, found_store, ctx.matching_config(),
                                       max_workers=ctx.batch_workers)
    except ConfigurationError as e:
        console.print(f"[red]Invalid matching configuration:[/red] {e}")
        raise typer.Exit(code=1)


# --------------- Config Commands ---------------
@config_app.command('init')
def config_init():
    """Write example config to ~/.findback/config.yaml"""
    from shutil import copyfile
    example = PROJECT_ROOT / 'config' / 'example.user.yaml'
    target = Path.home() / '.findback' / 'config.yaml'
    target.parent.mkdir(parents=True, exist_ok=True)
    copyfile(example, target)
    console.print(f"[green]Wrote example config to {target}[/green]")


@config_app.command('show')
def config_show():
    ctx = pass_context.get()
    print_config(ctx.config)


@config_app.command('validate')
def config_validate():
    ctx = pass_context.get()
    try:
        validate_config(ctx.config)
        ctx.matching_config()
    except SchemaValidationError as e:
        console.print(f"[red]Config invalid:[/red] {e.message}")
        raise typer.Exit(code=1)
    except (typer.BadParameter, ConfigurationError) as e:
        console.print(f"[red]Config invalid: {e}[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Config OK[/green]")


# --------------- Database Commands ---------------
@db_app.command('init')
def db_init():
    """Create the item tables directly from the models"""
    db_session.init_db()
    console.print("[green]Database tables created[/green]")


@db_app.command('upgrade')
def db_upgrade(revision: str = typer.Argument('head', help='Target revision')):
    """Apply alembic migrations up to REVISION"""
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(PROJECT_ROOT / 'alembic.ini'))
    cfg.set_main_option('script_location', str(PROJECT_ROOT / 'alembic'))
    cfg.attributes['configure_logger'] = False
    cfg.attributes['sqlalchemy.url'] = db_session.get_engine().url.render_as_string(hide_password=False)
    command.upgrade(cfg, revision)
    console.print(f"[green]Database upgraded to {revision}[/green]")


# --------------- Item Commands ---------------
@items_app.command('seed')
def items_seed(
    file: Path = typer.Argument(..., help='JSON or CSV file of reports'),
    kind: ItemKind = typer.Option(ItemKind.FOUND, '--kind', help='Report kind'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Validate without writing'),
):
    """Load lost or found reports from FILE"""
    from libs.items.seeding import create_item_seeding_service

    if not file.exists():
        console.print(f"[red]File not found: {file}[/red]")
        raise typer.Exit(1)

    lost_store, found_store = _stores()
    store = lost_store if kind is ItemKind.LOST else found_store
    stats = create_item_seeding_service(store).seed_items_from_file(file, dry_run=dry_run)

    prefix = "[yellow]DRY RUN[/yellow] " if dry_run else ""
    console.print(f"{prefix}[green]{stats.items_created} created, {stats.items_updated} updated, "
                  f"{stats.items_skipped} skipped ({stats.items_read} read)[/green]")
    for error in stats.errors:
        console.print(f"[yellow]  {error}[/yellow]")


@items_app.command('list')
def items_list(
    kind: ItemKind = typer.Option(ItemKind.FOUND, '--kind', help='Report kind'),
    category: Optional[str] = typer.Option(None, help='Filter by category'),
    status: Optional[str] = typer.Option(None, help='Filter by status'),
    search: Optional[str] = typer.Option(None, help='Search item name, description and location'),
    start_date: Optional[datetime] = typer.Option(None, '--start-date', formats=["%Y-%m-%d"],
                                                  help='Earliest report date (inclusive)'),
    end_date: Optional[datetime] = typer.Option(None, '--end-date', formats=["%Y-%m-%d"],
                                                help='Latest report date (inclusive)'),
    include_matches: bool = typer.Option(False, '--include-matches', help='Embed potential matches'),
    as_json: bool = typer.Option(False, '--json', help='Print the API payload as JSON'),
):
    """List reports, optionally with potential matches"""
    ctx = pass_context.get()
    service = _matching_service() if include_matches else None
    lost_store, found_store = _stores()
    store = lost_store if kind is ItemKind.LOST else found_store
    records = list(store.find(RecordFilter(
        category=category,
        status=status,
        search=search,
        date_from=start_date.date() if start_date else None,
        date_to=end_date.date() if end_date else None,
    )))

    outcomes = None
    if service is not None:
        outcomes = asyncio.run(service.find_matches_for_items(records, timeout=ctx.batch_timeout))

    if as_json:
        print(json.dumps(serialize_items(records, outcomes), indent=2, default=str))
        return

    table = Table(title=f"{kind.value.title()} items ({len(records)})")
    table.add_column("ID", style="cyan")
    table.add_column("Item", style="white")
    table.add_column("Category", style="yellow")
    table.add_column("Date", style="magenta")
    table.add_column("Location")
    table.add_column("Status")
    if outcomes is not None:
        table.add_column("Top match", style="green")
    for i, record in enumerate(records):
        row = [record.record_id[:8], record.item_name, record.category,
               record.date.isoformat() if record.date else "-", record.location, record.status]
        if outcomes is not None:
            row.append(_top_match_label(outcomes[i]))
        table.add_row(*row)
    console.print(table)


def _top_match_label(outcome) -> str:
    if outcome.matching_failed:
        return "[red]matching unavailable[/red]"
    if not outcome.matches:
        return "-"
    top = outcome.matches[0]
    return f"{top.similarity_score}% {top.candidate.item_name}"


# --------------- Match Commands ---------------
@match_app.command('run')
def match_run(
    found_id: Optional[str] = typer.Option(None, '--found-id', help="Found item ID"),
    lost_id: Optional[str] = typer.Option(None, '--lost-id', help="Lost item ID"),
    limit: Optional[int] = typer.Option(None, help="Maximum matches to return"),
    min_score: Optional[int] = typer.Option(None, '--min-score', help="Drop matches scoring below this"),
    as_json: bool = typer.Option(False, '--json', help='Print matches as JSON'),
):
    """Rank probable matches for one report"""
    if bool(found_id) == bool(lost_id):
        console.print("[red]Provide exactly one of --found-id or --lost-id[/red]")
        raise typer.Exit(1)

    service = _matching_service()
    if found_id:
        item = service.found_store.find_by_id(found_id)
    else:
        item = service.lost_store.find_by_id(lost_id)
    if item is None:
        console.print(f"[red]Item not found: {found_id or lost_id}[/red]")
        raise typer.Exit(1)

    try:
        if item.kind is ItemKind.FOUND:
            matches = service.find_matches(item, limit=limit, min_score=min_score)
        else:
            matches = service.find_matches_for_lost_item(item, limit=limit, min_score=min_score)
    except RetrievalError as e:
        console.print(f"[red]Matching failed: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        print(json.dumps({"item": item.to_payload(),
                          "potentialMatches": [m.to_payload() for m in matches]}, indent=2, default=str))
        return

    if not matches:
        threshold = service.config.min_score if min_score is None else min_score
        console.print(f"[yellow]No matches found above threshold ({threshold})[/yellow]")
        return

    console.print(f"[green]Found {len(matches)} matches for {item.item_name}[/green]")
    _print_matches(matches)


@match_app.command('all')
def match_all(
    timeout: Optional[float] = typer.Option(None, help="Per-item timeout in seconds"),
):
    """Match every found report against the lost reports"""
    ctx = pass_context.get()
    service = _matching_service()
    found_items: List[ItemRecord] = list(service.found_store.find())
    if not found_items:
        console.print("[yellow]No found items to match[/yellow]")
        return

    effective_timeout = timeout if timeout is not None else ctx.batch_timeout
    outcomes = asyncio.run(service.find_matches_for_items(found_items, timeout=effective_timeout))

    table = Table(title=f"Matches for {len(found_items)} found items")
    table.add_column("Found item", style="white")
    table.add_column("Matches", style="cyan")
    table.add_column("Top match", style="green")
    for outcome in outcomes:
        table.add_row(outcome.item.item_name,
                      "-" if outcome.matching_failed else str(len(outcome.matches)),
                      _top_match_label(outcome))
    console.print(table)

    failed = sum(1 for o in outcomes if o.matching_failed)
    if failed:
        console.print(f"[yellow]Matching unavailable for {failed} item(s)[/yellow]")


def _print_matches(matches):
    table = Table(title=f"Top {len(matches)} Matches")
    table.add_column("Rank", style="cyan")
    table.add_column("Item", style="white")
    table.add_column("Category", style="yellow")
    table.add_column("Date", style="magenta")
    table.add_column("Location", style="blue")
    table.add_column("Score", style="green")
    table.add_column("Breakdown (cat/text/loc/date)")
    for i, match in enumerate(matches, 1):
        candidate = match.candidate
        b = match.breakdown.to_dict()
        table.add_row(
            str(i),
            candidate.item_name,
            candidate.category,
            candidate.date.isoformat() if candidate.date else "-",
            candidate.location,
            f"{match.similarity_score}%",
            f"{b['category']}/{b['text']}/{b['location']}/{b['date']}",
        )
    console.print(table)


if __name__ == "__main__":
    APP()
