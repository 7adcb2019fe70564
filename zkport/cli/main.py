"""Command-line interface for the zkport transfer engine.

This module provides the `zkport` command: listing the platform catalog,
assessing a transfer and generating target sources after confirmation.
"""

import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from ..core.config import settings
from ..core.exceptions import PortError
from ..core.logger import get_logger, setup_logging
from ..engine import TransferEngine
from ..platforms import Platform, load_model

PLATFORM_CHOICES = [p.value for p in Platform]


def _read(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return Path(path).read_text(encoding="utf-8")


def _engine(ctx) -> TransferEngine:
    return TransferEngine(load_model(ctx.obj.get("catalog")))


def _echo_warnings(report) -> None:
    if not report.warnings:
        return
    click.echo(f"⚠️  {len(report.warnings)} warnings:")
    for warning in report.warnings:
        marker = " (needs confirmation)" if warning.requires_confirmation else ""
        click.echo(f"   - [{warning.code.value}] {warning.message}{marker}")


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--catalog', type=click.Path(exists=True, dir_okay=False), help='Platform catalog YAML file')
@click.pass_context
def cli(ctx, verbose: bool, catalog: Optional[str]):
    """Transfer zkVM guest and host programs between proving platforms."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file,
        verbose=verbose
    )

    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['catalog'] = Path(catalog) if catalog else settings.catalog_path


@cli.command()
@click.pass_context
def platforms(ctx):
    """List the platforms in the catalog and their capabilities."""
    try:
        model = load_model(ctx.obj.get("catalog"))
    except PortError as e:
        raise click.ClickException(str(e))

    click.echo(f"{'id':<8} {'name':<10} {'entry':<10} {'alignment':<14} {'hints':<6} {'cycles':<7} precompiles")
    for platform, profile in model.profiles():
        accelerated = sorted(op for op, status in profile.precompile_table.items() if status.value == "Accelerated")
        click.echo(
            f"{platform.value:<8} {profile.display_name:<10} {profile.entry_style.value:<10} "
            f"{profile.alignment.value:<14} {'yes' if profile.hint_channel_present else 'no':<6} "
            f"{'yes' if profile.cycle_count_supported else 'no':<7} {', '.join(accelerated) or '-'}"
        )


@cli.command()
@click.argument('guest', type=click.Path(exists=True, dir_okay=False))
@click.argument('host', type=click.Path(exists=True, dir_okay=False), required=False)
@click.option('--source', '-s', required=True, type=click.Choice(PLATFORM_CHOICES), help='Source platform')
@click.option('--target', '-t', required=True, type=click.Choice(PLATFORM_CHOICES), help='Target platform')
@click.pass_context
def assess(ctx, guest: str, host: Optional[str], source: str, target: str):
    """Assess how a guest (and optional host) program transfers to TARGET.

    Prints the compatibility report as YAML.

    Example:
        zkport assess guest/src/main.rs host/src/main.rs --source risc0 --target sp1
    """
    logger = get_logger(__name__)

    try:
        report = _engine(ctx).assess(_read(guest), _read(host), source, target)
    except PortError as e:
        logger.error(f"Assessment failed: {e}")
        raise click.ClickException(str(e))

    click.echo(yaml.safe_dump(report.to_dict(), sort_keys=False, allow_unicode=True))
    if not report.generatable:
        sys.exit(1)


@cli.command()
@click.argument('guest', type=click.Path(exists=True, dir_okay=False))
@click.argument('host', type=click.Path(exists=True, dir_okay=False), required=False)
@click.option('--source', '-s', required=True, type=click.Choice(PLATFORM_CHOICES), help='Source platform')
@click.option('--target', '-t', required=True, type=click.Choice(PLATFORM_CHOICES), help='Target platform')
@click.option('--output-dir', '-o', required=True, type=click.Path(file_okay=False), help='Directory for generated files')
@click.option('--yes', '-y', is_flag=True, help='Confirm the plan without prompting')
@click.pass_context
def generate(ctx, guest: str, host: Optional[str], source: str, target: str, output_dir: str, yes: bool):
    """Generate TARGET sources for a guest (and optional host) program.

    Writes the rewritten sources, a change log and the logical dependency
    list to OUTPUT_DIR.

    Example:
        zkport generate guest.rs host.rs -s sp1 -t openvm -o out/ --yes
    """
    logger = get_logger(__name__)

    try:
        engine = _engine(ctx)
        report = engine.assess(_read(guest), _read(host), source, target)
    except PortError as e:
        logger.error(f"Assessment failed: {e}")
        raise click.ClickException(str(e))

    click.echo(f"📦 {source} -> {target}: {report.total} constructs "
               f"({len(report.direct)} direct, {len(report.adapted)} adapted, "
               f"{len(report.unsupported)} unsupported)")
    _echo_warnings(report)

    if not report.generatable:
        if report.ordering_violation:
            raise click.ClickException(f"Ordering violation: {report.ordering_violation.message}")
        raise click.ClickException("Plan cannot be generated; run `zkport assess` for details")

    if not yes:
        click.confirm("Proceed with generation?", abort=True)

    try:
        artifacts = engine.generate(report.plan.confirm())
    except PortError as e:
        logger.error(f"Generation failed: {e}")
        raise click.ClickException(str(e))

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    guest_out = out / Path(guest).name
    guest_out.write_text(artifacts.guest_source, encoding="utf-8")
    click.echo(f"✅ Guest source: {guest_out}")

    if artifacts.host_source is not None:
        host_name = Path(host).name
        host_out = out / (host_name if host_name != guest_out.name else f"host_{host_name}")
        host_out.write_text(artifacts.host_source, encoding="utf-8")
        click.echo(f"✅ Host source: {host_out}")

    change_log = out / "change_log.yaml"
    with open(change_log, 'w', encoding='utf-8') as f:
        yaml.safe_dump([entry.to_dict() for entry in artifacts.change_log], f, sort_keys=False, allow_unicode=True)

    dependencies = out / "dependencies.yaml"
    with open(dependencies, 'w', encoding='utf-8') as f:
        yaml.safe_dump([dep.to_dict() for dep in artifacts.dependencies], f, sort_keys=False)

    click.echo(f"   Change log: {change_log}")
    click.echo(f"   Dependencies: {dependencies}")
    click.echo(f"\n🎉 Transfer to {target} completed!")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
