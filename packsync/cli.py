"""
packsync CLI - Compile, extract, and clean packs.

Commands:
- package: unpack | pack | clean, optionally for one pack / one entry
- list: Show the packs declared in the manifest
- config: Show or update per-project settings
"""

import logging
import os
import sys
from typing import Callable, Iterable, Optional

import click

from packsync import __version__
from packsync.cleaner import clean_packs
from packsync.config import load_config, save_config
from packsync.errors import MalformedEntryError, PackSyncError
from packsync.extractor import extract_packs
from packsync.manifest import find_manifest, load_manifest
from packsync.packer import compile_packs
from packsync.storage import pack_path


ACTIONS = ["unpack", "pack", "clean"]


@click.group()
@click.version_option(version=__version__)
@click.option("--project", "-C", "project", default=None, type=click.Path(file_okay=False),
              help="Project root (default: $PACKSYNC_PROJECT or current directory).")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, project: Optional[str], verbose: bool):
    """packsync - Keep packs and their JSON sources in sync.

    Source JSON files live under src/<pack>, compiled packs under
    packs/<pack>.db. Both locations are configurable per project.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = load_config(project)


def _report_errors(errors: Iterable[MalformedEntryError], verb: str) -> None:
    for e in errors:
        click.echo(f"Failed to {verb} {click.style(e.path, fg='red')}, {e.reason}.", err=True)


def _announce(verb: str) -> Callable[[str], None]:
    return lambda name: click.echo(f"{verb} pack {name}")


# ============================================================================
# Package Command
# ============================================================================

@cli.command()
@click.argument("action", type=click.Choice(ACTIONS))
@click.argument("pack", required=False)
@click.argument("entry", required=False)
@click.pass_obj
def package(config, action: str, pack: Optional[str], entry: Optional[str]):
    """Manage packs.

    \b
    ACTION: The action to perform (unpack, pack, clean)
    PACK:   Name of the pack upon which to work
    ENTRY:  Name of an entry within the pack (unpack and clean only)

    \b
    Examples:
        packsync package clean                    # Clean all source files
        packsync package clean classes Barbarian  # Clean one entry
        packsync package pack classes             # Compile one pack
        packsync package unpack                   # Extract every pack
    """
    if action == "pack" and entry:
        raise click.UsageError("ENTRY is only applicable to unpack and clean.")

    try:
        if action == "clean":
            for result in clean_packs(config, pack, entry, on_start=_announce("Cleaning")):
                _report_errors(result.errors, "clean")
                click.echo(f"  Cleaned {len(result.cleaned)} entries")

        elif action == "pack":
            for result in compile_packs(config, pack, on_start=_announce("Compiling")):
                _report_errors(result.errors, "pack")
                click.echo(f"  Packed {result.total_entries} entries")

        elif action == "unpack":
            for result in extract_packs(config, pack, entry, on_start=_announce("Extracting")):
                click.echo(f"  Extracted {len(result.written)} entries")
                if result.removed:
                    click.echo(f"  Removed {len(result.removed)} stale files")

    except (PackSyncError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


# ============================================================================
# Info Commands
# ============================================================================

@cli.command("list")
@click.pass_obj
def list_packs(config):
    """List packs declared in the package manifest."""
    try:
        manifest = load_manifest(find_manifest(config))
    except PackSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not manifest.packs:
        click.echo(f"No packs declared in {manifest.path}")
        return

    for p in manifest.packs:
        has_source = (config.src_path / p.name).is_dir()
        has_pack = os.path.exists(pack_path(str(config.dest_path), p.name))
        status = [
            "source" if has_source else "no source",
            "compiled" if has_pack else "not compiled",
        ]
        label = f" ({p.label})" if p.label else ""
        click.echo(f"  {p.name}{label}: {', '.join(status)}")


@cli.command("config")
@click.option("--pack-src", default=None, help="Source folder, relative to the project root")
@click.option("--pack-dest", default=None, help="Compiled pack folder, relative to the project root")
@click.option("--manifest", default=None, help="Manifest path, relative to the project root")
@click.option("--last-modified-by", default=None, help="User id written into _stats.lastModifiedBy")
@click.pass_obj
def config_cmd(config, pack_src, pack_dest, manifest, last_modified_by):
    """Show or update project settings (.packsync/config.json)."""
    updates = {
        "pack_src": pack_src,
        "pack_dest": pack_dest,
        "manifest": manifest,
        "last_modified_by": last_modified_by,
    }
    changed = False
    for key, value in updates.items():
        if value is not None:
            setattr(config, key, value)
            changed = True

    if changed:
        save_config(config.root, config)
        click.echo("Saved configuration.")

    for key, value in config.to_dict().items():
        if key == "file_mode":
            value = oct(value)
        click.echo(f"  {key}: {value}")


# ============================================================================
# Entry Point
# ============================================================================

def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
