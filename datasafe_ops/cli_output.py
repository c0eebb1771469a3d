"""
Shared CLI output helpers: fatal error reporting and rich tables.
"""
from __future__ import annotations

import sys
import traceback
from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text


def print_critical_error(title: str, error: Exception, *, include_type: bool = True) -> None:
    print("=" * 80, file=sys.stderr)
    print(f"CRITICAL ERROR - {title}", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    print(f"Error: {error}", file=sys.stderr)
    if include_type:
        print(f"Type: {type(error).__name__}", file=sys.stderr)
    traceback.print_exc(file=sys.stderr)
    print("=" * 80, file=sys.stderr)


def build_table(
    headers: Sequence[str],
    rows: Iterable[Sequence[object]],
    title: Optional[str] = None,
    styles: Sequence[Optional[str]] = (),
) -> Table:
    """
    Table with one column per header.

    Cells are added as plain Text so names containing brackets are not read
    as console markup. OCIDs fold instead of being truncated.
    """
    table = Table(title=title)
    for index, header in enumerate(headers):
        style = styles[index] if index < len(styles) else None
        table.add_column(header, style=style, overflow="fold")
    for row in rows:
        table.add_row(*(Text("" if cell is None else str(cell)) for cell in row))
    return table


def print_table(
    headers: Sequence[str],
    rows: Iterable[Sequence[object]],
    title: Optional[str] = None,
    styles: Sequence[Optional[str]] = (),
) -> None:
    console = Console()
    console.print(build_table(headers, rows, title=title, styles=styles))
