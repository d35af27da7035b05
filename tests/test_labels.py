"""Tests for label catalog parsing."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from imagetagger.errors import CatalogParseError, CatalogUnavailable
from imagetagger.ml.labels import LabelCatalog, TagCategory, load_catalog, normalize_tag_name, parse_catalog

SELECTED_TAGS = """tag_id,name,category,count
9999999,general,9,807691
9999998,sensitive,9,3153207
470575,1girl,0,4225150
212816,solo,0,3447123
1300281,long_hair,0,2979567
8601,^_^,0,39825
15080,+_+,0,7262
1821,hatsune_miku,4,104127
5051,artist_name,5,1234
13197,open_mouth,0,1366538
"""


def _parse(text: str) -> LabelCatalog:
    return parse_catalog(io.StringIO(text), source="selected_tags.csv")


# ---------------------------------------------------------------------------
# Name normalization
# ---------------------------------------------------------------------------


class TestNormalizeTagName:
    def test_underscores_become_spaces(self) -> None:
        assert normalize_tag_name("long_hair") == "long hair"

    @pytest.mark.parametrize("raw", ["^_^", "+_+", "(^_^)", "0_0", ">_<", "._."])
    def test_emoticons_kept(self, raw: str) -> None:
        assert normalize_tag_name(raw) == raw

    def test_mixed_name_is_converted(self) -> None:
        assert normalize_tag_name("hatsune_miku_(append)") == "hatsune miku (append)"

    @pytest.mark.parametrize("raw", ["long_hair", "^_^", "a_^_b", "___", "rating:safe", ""])
    def test_idempotent(self, raw: str) -> None:
        once = normalize_tag_name(raw)
        assert normalize_tag_name(once) == once


# ---------------------------------------------------------------------------
# Catalog parsing
# ---------------------------------------------------------------------------


class TestParseCatalog:
    def test_entries_keep_row_order(self) -> None:
        catalog = _parse(SELECTED_TAGS)
        assert len(catalog) == 10
        assert [entry.index for entry in catalog] == list(range(10))
        assert catalog.names[:4] == ["general", "sensitive", "1girl", "solo"]

    def test_partitions(self) -> None:
        catalog = _parse(SELECTED_TAGS)
        assert catalog.rating_indices == (0, 1)
        assert catalog.general_indices == (2, 3, 4, 5, 6, 9)
        assert catalog.character_indices == (7,)

    def test_unknown_category_is_ignored(self) -> None:
        catalog = _parse(SELECTED_TAGS)
        artist = catalog.entries[8]
        assert artist.name == "artist name"
        assert artist.category is None
        partitioned = set(catalog.rating_indices) | set(catalog.general_indices) | set(catalog.character_indices)
        assert 8 not in partitioned

    def test_partitions_are_disjoint(self) -> None:
        catalog = _parse(SELECTED_TAGS)
        all_indices = catalog.rating_indices + catalog.general_indices + catalog.character_indices
        assert len(all_indices) == len(set(all_indices))

    def test_names_normalized(self) -> None:
        catalog = _parse(SELECTED_TAGS)
        assert catalog.entries[4].name == "long hair"
        assert catalog.entries[5].name == "^_^"
        assert catalog.entries[7].name == "hatsune miku"
        assert catalog.entries[7].category is TagCategory.CHARACTER

    def test_duplicates_are_kept(self) -> None:
        catalog = _parse("name,category\nsolo,0\nsolo,0\n")
        assert len(catalog) == 2
        assert catalog.general_indices == (0, 1)

    def test_minimal_columns(self) -> None:
        catalog = _parse("name,category\nrating:safe,9\n")
        assert catalog.rating_indices == (0,)

    def test_missing_column_raises(self) -> None:
        with pytest.raises(CatalogParseError, match="category"):
            _parse("tag_id,name,count\n1,solo,5\n")

    def test_non_integer_category_raises(self) -> None:
        with pytest.raises(CatalogParseError, match="row 2") as excinfo:
            _parse("name,category\nsolo,0\nlong_hair,general\n")
        assert excinfo.value.source == "selected_tags.csv"

    def test_short_row_raises(self) -> None:
        with pytest.raises(CatalogParseError, match="missing category"):
            _parse("name,category\nsolo\n")

    def test_empty_name_raises(self) -> None:
        with pytest.raises(CatalogParseError, match="missing tag name"):
            _parse("name,category\n,0\n")


class TestLoadCatalog:
    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "selected_tags.csv"
        path.write_text(SELECTED_TAGS, encoding="utf-8")
        catalog = load_catalog(path)
        assert len(catalog) == 10

    def test_missing_file_raises_unavailable(self, tmp_path: Path) -> None:
        path = tmp_path / "missing.csv"
        with pytest.raises(CatalogUnavailable) as excinfo:
            load_catalog(path)
        assert excinfo.value.source == str(path)
        assert str(path) in str(excinfo.value)

    def test_non_utf8_file_raises_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "selected_tags.csv"
        path.write_bytes(b"name,category\n\xff\xfe_bad,0\n")
        with pytest.raises(CatalogParseError, match="malformed label file") as excinfo:
            load_catalog(path)
        assert excinfo.value.source == str(path)

    def test_csv_reader_error_raises_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "selected_tags.csv"
        # One field longer than the csv module's default field size limit.
        path.write_text("name,category\n" + "a" * 200_000 + ",0\n", encoding="utf-8")
        with pytest.raises(CatalogParseError, match="field larger than field limit") as excinfo:
            load_catalog(path)
        assert excinfo.value.source == str(path)
