"""Export auto-reply history to CSV or JSON."""

import csv
import json
from dataclasses import asdict

from .models import AutoReplyRecord

_FIELDS = ["id", "timestamp", "user_email", "recipient", "subject"]


def export_history(records: list[AutoReplyRecord], format: str, output_path: str) -> None:
    """Export auto-reply records to a file.

    Args:
        records: Records to export, in the order they should be written.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.
    """
    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=_FIELDS)
            writer.writeheader()
            for record in records:
                writer.writerow(asdict(record))
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump([asdict(r) for r in records], f, indent=2)
    else:
        raise ValueError(f"Unsupported export format: {format}")

    print(f"History saved to {output_path}")
