"""
Backup files.

A backup is the whole ledger as one JSON document:
    {"version": 1, "exported_at": ..., "transactions": [...], "categories": [...]}

Files written by older versions use camelCase keys (`exportedAt`,
`categoryId`, `updatedAt`) and `type` for the kind; both are read.
"""

import json
from pathlib import Path
from typing import Any, Union

from pydantic import ValidationError

from snapledger.models.ledger import BackupBundle


class BackupFormatError(ValueError):
    """The payload is not a backup bundle."""
    pass


def parse_bundle(payload: Union[BackupBundle, dict[str, Any], str, bytes]) -> BackupBundle:
    """
    Accept a bundle, its dict form, or its JSON text.

    Raises:
        BackupFormatError: If the payload is not a valid bundle
    """
    if isinstance(payload, BackupBundle):
        return payload

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise BackupFormatError(f"Backup is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise BackupFormatError("Backup must be a JSON object")

    try:
        return BackupBundle.model_validate(payload)
    except ValidationError as e:
        raise BackupFormatError(f"Backup failed validation: {e}") from e


def read_backup(path: Union[str, Path]) -> BackupBundle:
    """Load a backup file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise BackupFormatError(f"Cannot read backup {path}: {e}") from e
    return parse_bundle(raw)


def write_backup(bundle: BackupBundle, path: Union[str, Path]) -> Path:
    """Write `bundle` as pretty-printed JSON and return the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(bundle.to_dict(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return path
