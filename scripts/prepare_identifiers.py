#!/usr/bin/env python3
"""Resolve title URLs from a CSV and write canonical identifiers to a text file.

This script reads title URLs (or bare identifiers) from a CSV file, resolves
each one to its canonical identifier, drops duplicates, and writes the
identifiers to a plain text file (one per line) for `thumbgrab survey --file`.

Usage:
    python scripts/prepare_identifiers.py data/titles.csv -o identifiers.txt
"""

import csv
from pathlib import Path

import typer

from thumbgrab.errors import InvalidIdentifier
from thumbgrab.identifier import resolve_identifier


app = typer.Typer(
    help="Resolve title URLs and write identifiers to a text file",
    add_completion=False,
)


@app.command()
def main(
    csv_file: Path = typer.Argument(
        ...,
        help="Path to CSV file with a 'url' column",
    ),
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Output file for identifiers (one per line)",
    ),
    column: str = typer.Option(
        "url",
        "--column",
        help="CSV column holding the URL or identifier",
    ),
) -> None:
    """
    Resolve URLs from CSV and write identifiers to a text file.

    Rows that cannot be resolved are reported on stderr and skipped.

    Example:
        python scripts/prepare_identifiers.py data/titles.csv -o identifiers.txt
    """
    typer.echo(f"Reading CSV: {csv_file}")

    if not csv_file.exists():
        typer.echo(f"Error: CSV file not found: {csv_file}", err=True)
        raise typer.Exit(code=1)

    identifiers: list[str] = []
    skipped: list[tuple[str, str]] = []  # (value, reason)

    with csv_file.open("r", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if column not in (reader.fieldnames or []):
            typer.echo(f"Error: CSV file must have '{column}' column", err=True)
            raise typer.Exit(code=1)

        for row in reader:
            value = (row[column] or "").strip()
            if not value:
                continue

            try:
                identifier = resolve_identifier(value).value
            except InvalidIdentifier as e:
                skipped.append((value, str(e)))
                typer.echo(f"  Skipped: {value}", err=True)
                continue
            if identifier not in identifiers:
                identifiers.append(identifier)

    if skipped:
        typer.echo(f"\nSkipped {len(skipped)} unresolvable rows", err=True)

    if not identifiers:
        typer.echo("Error: No identifiers found", err=True)
        raise typer.Exit(code=1)

    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as f:
        for identifier in identifiers:
            f.write(f"{identifier}\n")

    typer.secho(
        f"\nWrote {len(identifiers)} identifiers to {output}",
        fg=typer.colors.GREEN,
        bold=True,
    )


if __name__ == "__main__":
    app()
