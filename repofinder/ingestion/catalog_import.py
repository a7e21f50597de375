"""
Load a JSON export of repository snapshots into catalog records.

Accepted file shapes:
  - a JSON array of repository objects
  - an object with an ``items`` array (a saved GitHub search response)

Each repository object is either a raw GitHub API payload (has ``id``) or a
serialised ``Repository`` (has ``repo_id``). An optional ``signals`` object
on either shape is parsed into ``HealthSignals``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from repofinder.ingestion.github_client import parse_repository
from repofinder.models.repository import HealthSignals, Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogRecord:
    """One imported repository and its optional health signals."""

    repo: Repository
    signals: Optional[HealthSignals] = None


def parse_catalog_item(item: dict[str, Any]) -> CatalogRecord:
    """Parse one repository object.

    Raises:
        ValueError: If the object has neither ``id`` nor ``repo_id``.
        pydantic.ValidationError: If a field fails validation.
    """
    signals_raw = item.get("signals")
    signals = HealthSignals.model_validate(signals_raw) if signals_raw else None
    if "repo_id" in item:
        payload = {k: v for k, v in item.items() if k != "signals"}
        return CatalogRecord(Repository.model_validate(payload), signals)
    if "id" in item:
        return CatalogRecord(parse_repository(item), signals)
    raise ValueError("Repository object needs an 'id' or 'repo_id' field.")


def load_catalog_file(path: str | Path) -> list[CatalogRecord]:
    """Read a catalog export, skipping (and logging) malformed entries.

    Args:
        path: JSON file path.

    Returns:
        Parsed records in file order.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the top-level JSON shape is not recognised.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        items = data["items"]
    elif isinstance(data, list):
        items = data
    else:
        raise ValueError(f"{path}: expected a JSON array or an object with 'items'.")

    records: list[CatalogRecord] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("%s[%d]: not an object, skipped", path, index)
            continue
        try:
            records.append(parse_catalog_item(item))
        except (KeyError, ValueError, ValidationError) as exc:
            logger.warning("%s[%d]: skipped malformed repository: %s", path, index, exc)
    logger.info("Loaded %d of %d catalog entries from %s", len(records), len(items), path)
    return records
