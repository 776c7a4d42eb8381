"""Unit tests for the shared record validators."""

import pytest

from stylestudio.core.errors import ValidationError
from stylestudio.core.models import HistoryRecord, TemplateRecord
from stylestudio.core.validation import (
    Invalid,
    Valid,
    check_history_record,
    check_template_record,
    filter_valid,
    require_history_record,
    validate_template_records,
)


def _template(**overrides) -> dict:
    raw = {
        "id": "template_1_abc",
        "title": "雨夜等车",
        "description": "胶片质感",
        "content": "胶片质感，三宫格构图，雨夜的公交车站。",
        "tags": ["雨夜"],
        "thumbnailPath": "/image/film-grid-rainy-night.png",
        "createdAt": "2024-05-01T09:30:00.000Z",
        "updatedAt": "2024-05-01T09:30:00.000Z",
        "version": 1,
    }
    raw.update(overrides)
    return raw


class TestCheckHistoryRecord:
    """Tests for check_history_record."""

    def test_valid_entry(self, make_history_record):
        """Test that a well-formed entry yields Valid with the parsed record."""
        result = check_history_record(make_history_record())
        assert isinstance(result, Valid)
        assert result.is_valid is True
        assert isinstance(result.record, HistoryRecord)

    def test_model_instance_is_rechecked(self, history_record):
        """Test that an existing model passes through the checker."""
        assert check_history_record(history_record).record == history_record

    def test_invalid_entry_lists_reasons(self, make_history_record):
        """Test that every failing field is reported."""
        result = check_history_record(make_history_record(prompt="", timestamp=-1))
        assert isinstance(result, Invalid)
        assert result.is_valid is False
        assert len(result.reasons) == 2

    @pytest.mark.parametrize("raw", [None, "history", 42, ["id"]])
    def test_non_mapping_is_invalid(self, raw):
        """Test that non-object JSON values are rejected."""
        result = check_history_record(raw)
        assert isinstance(result, Invalid)
        assert "expected an object" in result.reasons[0]

    def test_require_raises_with_reasons(self, make_history_record):
        """Test that require_history_record raises ValidationError."""
        with pytest.raises(ValidationError) as excinfo:
            require_history_record(make_history_record(template=""))
        assert any("template" in reason for reason in excinfo.value.reasons)


class TestCheckTemplateRecord:
    """Tests for check_template_record."""

    def test_valid_template(self):
        """Test that a complete template passes."""
        result = check_template_record(_template())
        assert isinstance(result.record, TemplateRecord)

    def test_blank_content_rejected(self):
        """Test that whitespace-only content is invalid."""
        assert isinstance(check_template_record(_template(content="   ")), Invalid)

    def test_empty_tags_allowed(self):
        """Test that a template may have no tags."""
        assert check_template_record(_template(tags=[])).is_valid

    def test_defaults_fill_optional_fields(self):
        """Test that legacy entries without optional fields still validate."""
        result = check_template_record({"id": "t1", "title": "标题", "content": "正文内容"})
        assert result.record.thumbnail_path == "/image/placeholder.png"
        assert result.record.version == 1


class TestFilterValid:
    """Tests for filter_valid."""

    def test_keeps_only_valid_in_order(self, make_history_record):
        """Test that invalid entries are dropped and order is preserved."""
        entries = [make_history_record(2), {"id": "broken"}, make_history_record(1)]
        records = filter_valid(entries, check_history_record)
        assert [r.timestamp for r in records] == [2, 1]


class TestValidateTemplateRecords:
    """Tests for validate_template_records."""

    def test_all_valid(self):
        """Test that a clean payload reports no errors."""
        report = validate_template_records([_template(id="a"), _template(id="b")])
        assert report.is_valid is True
        assert report.errors == []
        assert report.template_count == 2

    def test_duplicate_ids_reported(self):
        """Test that a repeated id is an error."""
        report = validate_template_records([_template(id="a"), _template(id="a")])
        assert report.is_valid is False
        assert "duplicate id 'a'" in report.errors[0]

    def test_schema_errors_reported_per_template(self):
        """Test that each invalid entry gets a numbered error line."""
        report = validate_template_records([_template(), _template(id="b", content=""), "oops"])
        assert report.is_valid is False
        assert report.errors[0].startswith("Template 2:")
        assert report.errors[1].startswith("Template 3:")
        assert report.template_count == 3

    def test_empty_payload_is_valid(self):
        """Test that no templates is a valid state."""
        assert validate_template_records([]).is_valid is True
