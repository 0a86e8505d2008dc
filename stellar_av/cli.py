import click
import asyncio
from pathlib import Path

from .agent import StellarAgent
from .security.errors import (
    QuarantineError,
    SignatureCacheError,
    ThreatIntelError,
)
from .security.models import ScanReport


def _make_agent(ctx) -> StellarAgent:
    return StellarAgent(ctx.obj['config'])


def _print_report(report: ScanReport):
    click.echo(f"{report.profile} scan completed in {report.duration_seconds:.1f}s")
    click.echo(f"Files collected: {report.files_collected} "
               f"(hashed {report.files_hashed}, skipped as too large {report.skipped_too_large})")
    if not report.threats:
        click.echo("No threats found.")
        return
    click.echo(f"{report.threat_count} threat(s) found:")
    for name, path in report.threats:
        click.echo(f"  {name}: {path}")


def _run_scan(agent: StellarAgent, coro_factory):
    try:
        report = asyncio.run(coro_factory())
    except ThreatIntelError as e:
        raise click.ClickException(f"Scan failed - could not verify results: {e}")
    finally:
        agent.close()
    _print_report(report)


@click.group()
@click.option('--config', '-c', default='config.yaml', help='Configuration file path')
@click.pass_context
def cli(ctx, config):
    """Stellar Antivirus CLI"""
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.pass_context
def start(ctx):
    """Start realtime protection (and the control API when enabled)"""
    agent = _make_agent(ctx)
    asyncio.run(agent.start())


@cli.group()
def scan():
    """On-demand scans"""
    pass


@scan.command()
@click.option('--max-bytes', type=click.IntRange(min=1), help='Skip files larger than this')
@click.pass_context
def quick(ctx, max_bytes):
    """Scan Downloads and Desktop"""
    agent = _make_agent(ctx)
    _run_scan(agent, lambda: agent.start_quick_scan(max_bytes))


@scan.command()
@click.pass_context
def full(ctx):
    """Scan Downloads, Documents and Desktop"""
    agent = _make_agent(ctx)
    _run_scan(agent, agent.start_full_scan)


@cli.group()
def realtime():
    """Realtime protection"""
    pass


@realtime.command('status')
@click.pass_context
def realtime_status(ctx):
    """Show whether realtime protection is enabled"""
    agent = _make_agent(ctx)
    state = "enabled" if agent.get_realtime_enabled() else "disabled"
    click.echo(f"Realtime protection: {state}")
    agent.close()


@realtime.command('on')
@click.pass_context
def realtime_on(ctx):
    """Enable realtime protection"""
    agent = _make_agent(ctx)
    agent.set_realtime_enabled(True)
    click.echo("Realtime protection: enabled")
    agent.close()


@realtime.command('off')
@click.pass_context
def realtime_off(ctx):
    """Disable realtime protection"""
    agent = _make_agent(ctx)
    agent.set_realtime_enabled(False)
    click.echo("Realtime protection: disabled")
    agent.close()


@cli.group()
def quarantine():
    """Quarantine management"""
    pass


@quarantine.command('list')
@click.pass_context
def quarantine_list(ctx):
    """List quarantined files"""
    agent = _make_agent(ctx)
    items = agent.list_quarantine()
    agent.close()
    if not items:
        click.echo("Quarantine is empty")
        return
    for item in items:
        click.echo(f"{item.name}\t{item.size} bytes\t{item.quarantined_at.isoformat()}")


@quarantine.command('add')
@click.argument('paths', nargs=-1, required=True)
@click.pass_context
def quarantine_add(ctx, paths):
    """Move files into quarantine"""
    agent = _make_agent(ctx)
    try:
        moved = agent.quarantine(paths)
    except QuarantineError as e:
        raise click.ClickException(str(e))
    finally:
        agent.close()
    for item in moved:
        click.echo(f"Quarantined: {item.original_path} -> {item.name}")
    click.echo(f"{len(moved)} file(s) quarantined")


@quarantine.command('restore')
@click.argument('name')
@click.argument('original_path')
@click.pass_context
def quarantine_restore(ctx, name, original_path):
    """Restore NAME from quarantine to ORIGINAL_PATH"""
    agent = _make_agent(ctx)
    try:
        restored = agent.restore([{"quarantined_name": name, "original_path": original_path}])
    except QuarantineError as e:
        raise click.ClickException(str(e))
    finally:
        agent.close()
    if restored:
        click.echo(f"Restored: {restored[0]}")
    else:
        click.echo(f"Not in quarantine: {name}")


@quarantine.command('delete')
@click.argument('names', nargs=-1, required=True)
@click.pass_context
def quarantine_delete(ctx, names):
    """Permanently delete quarantined files"""
    agent = _make_agent(ctx)
    try:
        removed = agent.delete_quarantined(list(names))
    except QuarantineError as e:
        raise click.ClickException(str(e))
    finally:
        agent.close()
    click.echo(f"{removed} file(s) deleted")


@quarantine.command('delete-by-path')
@click.argument('paths', nargs=-1, required=True)
@click.pass_context
def quarantine_delete_by_path(ctx, paths):
    """Delete quarantined copies of the given original paths"""
    agent = _make_agent(ctx)
    try:
        removed = agent.delete_by_original_path(list(paths))
    except QuarantineError as e:
        raise click.ClickException(str(e))
    finally:
        agent.close()
    click.echo(f"{removed} file(s) deleted")


@cli.group()
def db():
    """Local threat database"""
    pass


@db.command('update')
@click.argument('threats_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def db_update(ctx, threats_file):
    """Load a threat database JSON document"""
    agent = _make_agent(ctx)
    try:
        count = agent.update_threat_db(Path(threats_file).read_text())
    except SignatureCacheError as e:
        raise click.ClickException(str(e))
    finally:
        agent.close()
    click.echo(f"Loaded {count} signature(s)")


@db.command('detections')
@click.option('--limit', '-n', default=20, type=click.IntRange(min=1), help='Number of records')
@click.pass_context
def db_detections(ctx, limit):
    """Show recent detections"""
    agent = _make_agent(ctx)
    detections = agent.get_detections(limit)
    agent.close()
    if not detections:
        click.echo("No detections recorded")
        return
    for d in detections:
        name = d.signature_id or "-"
        click.echo(f"{d.detected_at.isoformat()}\t{d.source.value}\t{d.action}\t{name}\t{d.path}")


@cli.group()
def config():
    """Configuration management"""
    pass


@config.command()
@click.pass_context
def show(ctx):
    """Show current configuration"""
    config_path = ctx.obj['config']

    if not Path(config_path).exists():
        click.echo(f"Configuration file not found: {config_path}")
        return

    with open(config_path, 'r') as f:
        content = f.read()

    click.echo(f"Configuration ({config_path}):")
    click.echo("=" * 40)
    click.echo(content)


if __name__ == '__main__':
    cli()
