"""
CLI Output Formatting

Handles JSON and table output formats.
"""

import enum
import json
import sys
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence


def format_output(data: Any, format: str = "table", columns: Optional[Sequence[str]] = None) -> str:
    """
    Format data for output.

    Args:
        data: Data to format (dataclass, dict, list, etc.)
        format: Output format - table or json
        columns: Columns to show for lists of records (table only)

    Returns:
        Formatted string
    """
    if format == "json":
        return format_json(data)

    # Default to table format
    return format_table(data, columns)


def _serialize(obj: Any) -> Any:
    if is_dataclass(obj):
        return _serialize(asdict(obj))
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (list, tuple)):
        return [_serialize(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    return obj


def format_json(data: Any) -> str:
    """Format data as JSON."""
    return json.dumps(_serialize(data), indent=2, default=str)


def format_table(data: Any, columns: Optional[Sequence[str]] = None) -> str:
    """
    Format data as human-readable table.

    Args:
        data: Data to format
        columns: Columns to show for lists of records

    Returns:
        Table string
    """
    if data is None:
        return "No data"

    if is_dataclass(data):
        return format_dict_table(asdict(data), title_keys=True)

    if isinstance(data, list):
        if not data:
            return "No results"
        if is_dataclass(data[0]) or isinstance(data[0], dict):
            return format_list_table(data, columns)
        return "\n".join(str(item) for item in data)

    if isinstance(data, dict):
        return format_dict_table(data)

    return str(data)


def format_dict_table(data: Dict[str, Any], title_keys: bool = False) -> str:
    """
    Format mapping as key-value table.

    None values and empty lists are skipped.
    """
    rows = [
        (key, value) for key, value in data.items()
        if value is not None and not (isinstance(value, list) and not value)
    ]
    if not rows:
        return "No data"

    labels = [key.replace("_", " ").title() if title_keys else str(key) for key, _ in rows]
    width = max(len(label) for label in labels)

    lines = []
    for label, (_, value) in zip(labels, rows):
        lines.append(f"{label.ljust(width + 2)}: {format_value(value)}")
    return "\n".join(lines)


def format_list_table(items: List[Any], columns: Optional[Sequence[str]] = None) -> str:
    """
    Format list of dataclasses or dicts as table.

    Args:
        items: Records
        columns: Keys to show (all keys of the first record if None)

    Returns:
        Table string
    """
    if not items:
        return "No results"

    records = [asdict(item) if is_dataclass(item) else item for item in items]
    headers = list(columns) if columns else list(records[0].keys())

    widths = {h: len(h) for h in headers}
    cells = []
    for record in records:
        row = [format_value(record.get(h), short=True) for h in headers]
        for h, value_str in zip(headers, row):
            widths[h] = max(widths[h], len(value_str))
        cells.append(row)

    lines = []
    lines.append("  ".join(h.replace("_", " ").title().ljust(widths[h]) for h in headers))
    lines.append("  ".join("-" * widths[h] for h in headers))
    for row in cells:
        lines.append("  ".join(value.ljust(widths[h]) for h, value in zip(headers, row)))

    return "\n".join(lines)


def format_value(value: Any, short: bool = False) -> str:
    """
    Format a single value for display.

    Args:
        value: Value to format
        short: Whether to use short format

    Returns:
        Formatted string
    """
    if value is None:
        return ""

    if isinstance(value, bool):
        return "Yes" if value else "No"

    if isinstance(value, enum.Enum):
        return str(value.value) if not isinstance(value, enum.IntEnum) else value.name

    if isinstance(value, datetime):
        if short:
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")

    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, list):
        if short and len(value) > 2:
            return f"{value[0]}, ... ({len(value)} total)"
        return ", ".join(str(v) for v in value)

    if isinstance(value, dict):
        if short:
            return f"({len(value)} items)"
        return ", ".join(f"{k}={v}" for k, v in value.items())

    return str(value)


def print_success(message: str) -> None:
    """Print success message."""
    print(f"SUCCESS: {message}")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"ERROR: {message}", file=sys.stderr)


def print_warning(message: str) -> None:
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def print_info(message: str) -> None:
    """Print info message."""
    print(f"INFO: {message}")


class OutputFormatter:
    """
    Prints data in the selected format.
    """

    def __init__(self, format: str = "table", quiet: bool = False):
        """
        Initialize formatter.

        Args:
            format: Output format (table, json)
            quiet: Suppress non-essential output
        """
        self.format = format
        self.quiet = quiet

    def output(self, data: Any, columns: Optional[Sequence[str]] = None) -> None:
        """Output formatted data."""
        print(format_output(data, self.format, columns))

    def success(self, message: str) -> None:
        """Print success message."""
        if not self.quiet:
            print_success(message)

    def info(self, message: str) -> None:
        """Print info message."""
        if not self.quiet:
            print_info(message)
