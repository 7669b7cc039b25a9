"""
Utility functions for rendering and saving cleanup reports.

This module provides functions to:
- Render the deletion plan and the run statistics as tables
- Build the JSON run report
- Save JSON reports, optionally with a timestamped filename
"""
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from tabulate import tabulate

from ghcr_cleanup.logging_utils import get_logger
from ghcr_cleanup.models import PackageEntry

logger = get_logger(__name__)


# ============================================================================
# Table Rendering
# ============================================================================

def format_deletion_plan(entries: Iterable[PackageEntry]) -> str:
    """Render the package versions about to be deleted as a grid table.

    Args:
        entries: Package entries in deletion order

    Returns:
        Table with id, digest, tags and last update columns
    """
    headers = ["ID", "Digest", "Tags", "Updated"]
    rows = []
    for entry in entries:
        rows.append([
            entry.id,
            entry.digest,
            ", ".join(entry.tags) or "<untagged>",
            entry.updated_at.strftime("%Y-%m-%d %H:%M:%S") if entry.updated_at else "",
        ])
    return tabulate(rows, headers=headers, tablefmt="grid")


def format_statistics(images_deleted: int, multi_arch_images_deleted: int) -> str:
    """Render the end of run counters."""
    rows = []
    if multi_arch_images_deleted > 0:
        rows.append(["multi architecture images deleted", multi_arch_images_deleted])
    rows.append(["total images deleted", images_deleted])
    return tabulate(rows, tablefmt="plain")


# ============================================================================
# JSON Reports
# ============================================================================

def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def add_timestamp_to_path(path: str, timestamp: Optional[str] = None) -> str:
    """
    Add a timestamp to a file path before the extension.

    Args:
        path: Original file path (e.g., 'reports/cleanup.json')
        timestamp: Optional timestamp string (defaults to current time)

    Returns:
        Path with timestamp inserted (e.g., 'reports/cleanup-2026-01-15-14-30-00.json')
    """
    if timestamp is None:
        timestamp = get_timestamp_suffix()

    p = Path(path)
    return str(p.parent / f"{p.stem}-{timestamp}{p.suffix}")


def build_run_report(package: str, images_deleted: int, multi_arch_images_deleted: int,
                     deleted_digests: List[str], warnings: Optional[List[str]] = None,
                     dry_run: bool = False) -> Dict[str, Any]:
    """Collect the outcome of one run into a JSON serializable dict"""
    return {
        "package": package,
        "generated_at": datetime.now(),
        "dry_run": dry_run,
        "images_deleted": images_deleted,
        "multi_arch_images_deleted": multi_arch_images_deleted,
        "deleted_digests": list(deleted_digests),
        "validation_warnings": list(warnings or []),
    }


def _to_json_compatible(data: Any) -> Any:
    """Recursively convert datetimes, sets and tuples into JSON types"""
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    elif isinstance(data, (set, frozenset)):
        return [_to_json_compatible(item) for item in sorted(data)]
    elif isinstance(data, dict):
        return {k: _to_json_compatible(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [_to_json_compatible(item) for item in data]
    return data


def save_json(path: str, data: Any, timestamp: bool = False) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save
        timestamp: If True, add timestamp to filename (default: False)

    Returns:
        Path to the saved file
    """
    p = Path(path)
    if timestamp:
        p = Path(add_timestamp_to_path(str(p)))

    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, 'w') as f:
        json.dump(_to_json_compatible(data), f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)
