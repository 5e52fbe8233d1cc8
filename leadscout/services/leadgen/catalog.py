"""Loading the evidence signal catalog from JSON or YAML files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from leadscout.models.catalog import CatalogValidationError, EvidenceSignalCatalog

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


def parse_catalog(payload: Any) -> EvidenceSignalCatalog:
    """Validate a decoded catalog document.

    Accepts ``{"patterns": [...]}`` or a bare list of patterns. Signal
    definitions may be listed under ``signals`` or ``signal_definitions``.
    """
    if isinstance(payload, list):
        payload = {"patterns": payload}
    if not isinstance(payload, dict):
        raise CatalogValidationError("Signal catalog must be a mapping or a list of trigger patterns.")
    patterns = payload.get("patterns") or []
    normalized = []
    for pattern in patterns:
        if not isinstance(pattern, dict):
            raise CatalogValidationError("Each trigger pattern must be a mapping.")
        entry = dict(pattern)
        if "signals" not in entry and "signal_definitions" in entry:
            entry["signals"] = entry.pop("signal_definitions")
        normalized.append(entry)
    try:
        return EvidenceSignalCatalog(patterns=normalized)
    except ValidationError as exc:
        raise CatalogValidationError(f"Invalid signal catalog: {exc}") from exc


def load_catalog(path: Path | str) -> EvidenceSignalCatalog:
    """Read and validate a catalog file."""
    catalog_path = Path(path).expanduser()
    if not catalog_path.exists():
        raise FileNotFoundError(f"Signal catalog not found at {catalog_path}")
    raw = catalog_path.read_text(encoding="utf-8")
    if catalog_path.suffix.lower() in YAML_SUFFIXES:
        payload = yaml.safe_load(raw)
    else:
        payload = json.loads(raw)
    catalog = parse_catalog(payload)
    logger.info(
        "leadgen.catalog.loaded",
        extra={"path": str(catalog_path), "patterns": len(catalog.patterns), "definitions": len(catalog)},
    )
    return catalog


def load_configured_catalog(path: str | None) -> EvidenceSignalCatalog | None:
    """Return the catalog at ``path`` or None when no catalog is configured."""
    if not path:
        return None
    return load_catalog(path)
