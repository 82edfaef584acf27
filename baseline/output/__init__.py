"""Output formatters for compliance reports.

Output Formats:
    - JSON: The report wire schema, ideal for programmatic parsing
    - CSV: Flat tabular format, one row per assertion, for spreadsheets

Example::

    from baseline.output import write_output

    print(write_output([report], "json"))
    write_output([report], "csv", "results.csv")

"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from baseline.output.csv_fmt import format_csv
from baseline.output.json_fmt import format_json

if TYPE_CHECKING:
    from baseline.report import Report

__all__ = [
    "FORMATTERS",
    "format_csv",
    "format_json",
    "parse_output_spec",
    "write_output",
]

FORMATTERS = {
    "json": format_json,
    "csv": format_csv,
}


def parse_output_spec(spec: str) -> tuple[str, str | None]:
    """Parse an ``-o FORMAT[:PATH]`` argument into format and filepath.

    Example:
    -------
        >>> parse_output_spec("json")
        ('json', None)
        >>> parse_output_spec("CSV:results.csv")
        ('csv', 'results.csv')

    """
    if ":" in spec:
        fmt, path = spec.split(":", 1)
        return fmt.lower(), path or None
    return spec.lower(), None


def write_output(reports: Sequence[Report], fmt: str, filepath: str | None = None) -> str:
    """Format reports and optionally write them to a file.

    Returns:
        The formatted output string.

    Raises:
        ValueError: If the format is unknown.

    """
    formatter = FORMATTERS.get(fmt)
    if formatter is None:
        raise ValueError(f"Unknown output format: {fmt} (valid: {', '.join(FORMATTERS)})")

    output = formatter(reports)

    if filepath:
        Path(filepath).write_text(output)

    return output
