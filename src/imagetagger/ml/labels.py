"""Tag taxonomy loading.

The label file is a CSV with a header row and at least ``name`` and
``category`` columns. Row position is the tag's identity: score vectors
returned by the model are aligned with it, so rows are never reordered or
deduplicated.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING

from imagetagger.errors import CatalogParseError, CatalogUnavailable

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

_KEEP_AS_IS_CHARS = frozenset("_()<>+^.0123456789")


class TagCategory(IntEnum):
    GENERAL = 0
    CHARACTER = 4
    RATING = 9


@dataclass(frozen=True)
class TagEntry:
    index: int
    name: str
    category: TagCategory | None


@dataclass(frozen=True)
class LabelCatalog:
    """Ordered tags plus per-category index partitions."""

    entries: tuple[TagEntry, ...]
    rating_indices: tuple[int, ...]
    general_indices: tuple[int, ...]
    character_indices: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[TagEntry]:
        return iter(self.entries)

    @property
    def names(self) -> list[str]:
        return [entry.name for entry in self.entries]

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[str, int]]) -> LabelCatalog:
        """Build a catalog from ``(raw_name, category_code)`` pairs in order."""
        entries: list[TagEntry] = []
        partitions: dict[TagCategory, list[int]] = {category: [] for category in TagCategory}
        for index, (raw_name, code) in enumerate(rows):
            category = _category_for(code)
            entries.append(TagEntry(index=index, name=normalize_tag_name(raw_name), category=category))
            if category is not None:
                partitions[category].append(index)
        return cls(
            entries=tuple(entries),
            rating_indices=tuple(partitions[TagCategory.RATING]),
            general_indices=tuple(partitions[TagCategory.GENERAL]),
            character_indices=tuple(partitions[TagCategory.CHARACTER]),
        )


def normalize_tag_name(raw: str) -> str:
    """Turn ``snake_case`` tags into phrases, leaving emoticons like ``^_^`` alone."""
    if all(ch in _KEEP_AS_IS_CHARS for ch in raw):
        return raw
    return raw.replace("_", " ")


def _category_for(code: int) -> TagCategory | None:
    try:
        return TagCategory(code)
    except ValueError:
        return None


def parse_catalog(lines: Iterable[str], source: str = "<stream>") -> LabelCatalog:
    """Parse label CSV text into a ``LabelCatalog``.

    Raises:
        CatalogParseError: If the header lacks a required column or a row has a
            missing name or a missing/non-integer category.
    """
    reader = csv.DictReader(lines)
    fields = reader.fieldnames or []
    missing = [column for column in ("name", "category") if column not in fields]
    if missing:
        raise CatalogParseError(f"label header is missing column(s): {', '.join(missing)}", source=source)

    rows: list[tuple[str, int]] = []
    for row_number, row in enumerate(reader, start=1):
        name = row.get("name")
        raw_category = row.get("category")
        if not name:
            raise CatalogParseError(f"row {row_number}: missing tag name", source=source)
        if raw_category is None or not raw_category.strip():
            raise CatalogParseError(f"row {row_number}: missing category for {name!r}", source=source)
        try:
            code = int(raw_category)
        except ValueError:
            raise CatalogParseError(
                f"row {row_number}: category {raw_category!r} is not an integer", source=source
            ) from None
        rows.append((name, code))

    catalog = LabelCatalog.from_rows(rows)
    logger.info(
        "Loaded %d tags from %s (rating=%d, general=%d, character=%d)",
        len(catalog),
        source,
        len(catalog.rating_indices),
        len(catalog.general_indices),
        len(catalog.character_indices),
    )
    return catalog


def load_catalog(path: str | Path) -> LabelCatalog:
    """Read and parse a label CSV file.

    Raises:
        CatalogUnavailable: If the file cannot be read.
        CatalogParseError: If the file is not UTF-8 CSV or a row is malformed.
    """
    path = Path(path)
    try:
        with path.open(newline="", encoding="utf-8") as handle:
            return parse_catalog(handle, source=str(path))
    except OSError as exc:
        raise CatalogUnavailable(f"cannot read label file: {exc.strerror or exc}", source=str(path)) from exc
    except (UnicodeDecodeError, csv.Error) as exc:
        raise CatalogParseError(f"malformed label file: {exc}", source=str(path)) from exc
