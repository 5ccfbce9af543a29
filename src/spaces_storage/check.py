"""
Diagnose a single stored file.

Reports whether a content hash exists in the object store, whether it can
be fetched into the local cache, and the cached file's path, readability
and size.
"""
from pathlib import Path
from spaces_storage.cache import validate_contenthash
from spaces_storage.config import ConfigurationError
from spaces_storage.config import load_config
from spaces_storage.config import open_file_system

import logging
import os
import typer


app = typer.Typer(
    name="spaces-storage-check", help="Check a content hash in spaces-storage"
)


def _yes_no(flag):
    return "YES" if flag else "NO"


def check_hash(fs, contenthash, fetch=True):
    """Collect a diagnostic report for one hash."""
    report = {
        "contenthash": contenthash,
        "remote_key": fs.get_remote_key(contenthash),
        "exists_remotely": fs.exists(contenthash),
        "local_path": fs.fetch(contenthash, fetch_if_missing=fetch),
        "readable": False,
        "local_size": None,
    }
    path = report["local_path"]
    if path is not None:
        report["readable"] = os.access(path, os.R_OK)
        try:
            report["local_size"] = os.path.getsize(path)
        except OSError:
            report["local_path"] = None
    return report


def print_report(report):
    typer.echo(f"Contenthash: {report['contenthash']}")
    typer.echo(f"Remote key: {report['remote_key']}")
    typer.echo(f"Exists remotely: {_yes_no(report['exists_remotely'])}")
    if report["local_path"] is None:
        typer.echo("ERROR: Could not get local path")
        return
    typer.echo(f"Local path: {report['local_path']}")
    typer.echo(f"File is readable: {_yes_no(report['readable'])}")
    typer.echo(f"Local filesize: {report['local_size']} bytes")


@app.command()
def check(
    config_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="ZConfig file"
    ),
    contenthash: str = typer.Argument(..., help="SHA-1 content hash"),
    fetch: bool = typer.Option(
        True, "--fetch/--no-fetch", help="Download on cache miss"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests"),
):
    """Check whether a content hash is stored remotely and readable locally."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    try:
        validate_contenthash(contenthash)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="CONTENTHASH")

    try:
        with open(config_file) as f:
            config = load_config(f)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(2)

    fs = open_file_system(config)
    try:
        report = check_hash(fs, contenthash, fetch=fetch)
    finally:
        fs.close()

    print_report(report)
    if report["local_path"] is None or not report["readable"]:
        raise typer.Exit(1)


def main():
    app()


if __name__ == "__main__":
    main()
