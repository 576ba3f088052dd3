"""
Tests for comment read-repair and annotation payload coercion.
"""
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from quotereview.services.comment_normalizer import (
    PlainString, Structured, make_comment, normalize_annotations, normalize_comments,
    normalize_quotation, normalize_version_comments, parse_comments,
)

UPLOADED_AT = datetime(2025, 4, 12, 9, 30, tzinfo=timezone.utc)
WELL_FORMED = {"text": "check totals", "addedBy": 7, "addedAt": "2025-04-13T10:00:00+00:00"}


class TestParseComments:

    def test_string_is_plain(self):
        assert parse_comments("legacy") == PlainString("legacy")

    def test_none_is_empty_structured(self):
        assert parse_comments(None) == Structured([])

    def test_list_is_structured(self):
        assert parse_comments(["a", WELL_FORMED]) == Structured(["a", WELL_FORMED])

    def test_single_dict_is_wrapped(self):
        assert parse_comments(WELL_FORMED) == Structured([WELL_FORMED])


class TestNormalizeComments:
    """Canonical shape, order preservation, and idempotence."""

    def test_legacy_string_becomes_comment(self):
        result = normalize_comments("please fix", fallback_author=3, fallback_time=UPLOADED_AT)
        assert result == [{"text": "please fix", "addedBy": 3, "addedAt": UPLOADED_AT.isoformat()}]

    def test_none_becomes_empty_list(self):
        assert normalize_comments(None, fallback_author=3) == []

    def test_blank_string_is_dropped(self):
        assert normalize_comments("   ", fallback_author=3) == []

    def test_mixed_list_keeps_valid_entries_in_order(self):
        raw = ["first", "", None, WELL_FORMED, {"text": "  "}, 42, "last"]
        result = normalize_comments(raw, fallback_author=3, fallback_time=UPLOADED_AT)
        assert [c["text"] for c in result] == ["first", "check totals", "last"]
        assert result[1] is WELL_FORMED

    def test_incomplete_dict_is_repaired(self):
        result = normalize_comments([{"text": " partial "}], fallback_author=5, fallback_time=UPLOADED_AT)
        assert result == [{"text": "partial", "addedBy": 5, "addedAt": UPLOADED_AT.isoformat()}]

    def test_missing_time_falls_back_to_now(self):
        before = datetime.now(timezone.utc)
        result = normalize_comments("x", fallback_author=1)
        added_at = datetime.fromisoformat(result[0]["addedAt"])
        assert added_at >= before

    @pytest.mark.parametrize("raw", [
        None,
        "legacy",
        "",
        ["a", "", WELL_FORMED, {"text": "b"}, 3],
        [WELL_FORMED],
        {"text": "single"},
    ])
    def test_idempotent(self, raw):
        once = normalize_comments(raw, fallback_author=9, fallback_time=UPLOADED_AT)
        twice = normalize_comments(once, fallback_author=9, fallback_time=UPLOADED_AT)
        assert once == twice

    def test_make_comment_shape(self):
        comment = make_comment("hi", 4, UPLOADED_AT)
        assert comment == {"text": "hi", "addedBy": 4, "addedAt": UPLOADED_AT.isoformat()}


class TestNormalizeVersion:

    def _version(self, comments, reviewed_by=None):
        return SimpleNamespace(comments=comments, reviewed_by=reviewed_by, uploaded_at=UPLOADED_AT)

    def test_prefers_reviewer_as_author(self):
        version = self._version("legacy", reviewed_by=11)
        assert normalize_version_comments(version, actor_id=99) is True
        assert version.comments[0]["addedBy"] == 11
        assert version.comments[0]["addedAt"] == UPLOADED_AT.isoformat()

    def test_falls_back_to_actor(self):
        version = self._version("legacy")
        normalize_version_comments(version, actor_id=99)
        assert version.comments[0]["addedBy"] == 99

    def test_canonical_comments_are_untouched(self):
        version = self._version([WELL_FORMED])
        assert normalize_version_comments(version, actor_id=1) is False

    def test_normalize_quotation_counts_rewritten_versions(self):
        quotation = SimpleNamespace(versions=[
            self._version("legacy"),
            self._version([WELL_FORMED]),
            self._version(None),
        ])
        assert normalize_quotation(quotation, actor_id=1) == 2
        assert quotation.versions[2].comments == []


class TestNormalizeAnnotations:

    def test_non_list_becomes_empty(self):
        assert normalize_annotations({"type": "highlight"}) == []
        assert normalize_annotations("[]") == []
        assert normalize_annotations(None) == []

    def test_numeric_fields_are_parsed(self):
        result = normalize_annotations([{
            "type": "rectangle", "page": "2", "x": "10.5", "y": 20,
            "width": "100", "height": "50.25", "color": "#ff0000",
        }])
        assert result == [{
            "type": "rectangle", "page": 2, "x": 10.5, "y": 20,
            "width": 100, "height": 50.25, "color": "#ff0000",
        }]

    @pytest.mark.parametrize("page", [None, "abc", 0, -3, "", True])
    def test_page_defaults_to_one(self, page):
        assert normalize_annotations([{"type": "text", "page": page}])[0]["page"] == 1

    def test_missing_page_defaults_to_one(self):
        assert normalize_annotations([{"type": "stamp"}])[0]["page"] == 1

    def test_unparseable_coordinate_becomes_none(self):
        assert normalize_annotations([{"type": "arrow", "startX": "left"}])[0]["startX"] is None

    def test_other_fields_pass_through(self):
        points = [[1, 2], [3, 4]]
        result = normalize_annotations([{"type": "freedraw", "points": points, "imageData": "data:"}])
        assert result[0]["points"] == points
        assert result[0]["imageData"] == "data:"

    def test_non_dict_elements_are_dropped(self):
        assert len(normalize_annotations([{"type": "text"}, "junk", 5])) == 1
