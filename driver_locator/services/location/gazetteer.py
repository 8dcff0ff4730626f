"""Loading of the reference yard datasets.

Each dataset is a JSON list of ``{"state": ..., "locations": [...]}`` groups,
one per state, and is flattened into ``GazetteerEntry`` rows on load.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from driver_locator.core.exceptions import GazetteerLoadError
from driver_locator.schemas.matching import AuctionType
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

COPART_PREFIX_PATTERN = re.compile(r"^(?:COPART|CRASHEDTOYS)\s+", re.IGNORECASE)


@dataclass(frozen=True)
class GazetteerEntry:
    """One yard from a reference dataset."""

    auction_type: AuctionType
    state: str
    city: str
    address: str
    zip_code: str
    original_name: str
    formatted_name: str

    @property
    def city_upper(self) -> str:
        return self.city.upper()


def format_name(auction_type: AuctionType, state: str, name: str) -> str:
    """Display name for a yard.

    IAAI names already read "City (ST)". Copart names are rewritten from
    "COPART HAMPTON" to "VA - HAMPTON".
    """
    if auction_type == AuctionType.COPART:
        return f"{state} - {COPART_PREFIX_PATTERN.sub('', name).strip()}"
    return name


def flatten_dataset(data: list[dict[str, Any]], auction_type: AuctionType) -> list[GazetteerEntry]:
    """Flatten per-state groups into entries. Malformed groups are skipped."""
    entries: list[GazetteerEntry] = []

    for group in data:
        if not isinstance(group, dict):
            continue
        state = str(group.get("state") or "").strip().upper()
        for location in group.get("locations") or []:
            name = str(location.get("name") or "").strip()
            if not state or not name:
                continue
            entries.append(
                GazetteerEntry(
                    auction_type=auction_type,
                    state=state,
                    city=str(location.get("city") or "").strip(),
                    address=str(location.get("address") or "").strip(),
                    zip_code=str(location.get("zip") or "").strip(),
                    original_name=name,
                    formatted_name=format_name(auction_type, state, name),
                )
            )

    return entries


def load_gazetteer(path: Path, auction_type: AuctionType) -> list[GazetteerEntry]:
    """Read and flatten one dataset file.

    Raises:
        GazetteerLoadError: If the file is missing or is not valid JSON
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as e:
        raise GazetteerLoadError(f"Gazetteer file not found: {path}", e)
    except json.JSONDecodeError as e:
        raise GazetteerLoadError(f"Gazetteer file is not valid JSON: {path}", e)

    if not isinstance(data, list):
        raise GazetteerLoadError(f"Gazetteer file must contain a list of states: {path}")

    entries = flatten_dataset(data, auction_type)
    LOGGER.info(
        "Gazetteer loaded",
        extra={"auction_type": auction_type.value, "path": str(path), "count": len(entries)},
    )
    return entries
