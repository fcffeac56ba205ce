from __future__ import annotations

from pathlib import Path

import pytest

from docxcombine.config import CombineConfig, CombineOptions, load_config, normalize_encoding, options_from_mapping
from docxcombine.errors import ValidationError


def test_defaults():
    options = CombineOptions()
    assert options.page_break is True
    assert options.metadata() == {}


def test_config_defaults():
    cfg = CombineConfig()
    assert cfg.options == CombineOptions()
    assert cfg.log_path is None
    assert cfg.encoding == "bytes"


@pytest.mark.parametrize("field_name", ["title", "subject", "author", "keywords", "description", "last_modified_by", "vision"])
def test_metadata_fields_must_be_strings(field_name):
    with pytest.raises(ValidationError, match=f"{field_name} must be a string. Received: int"):
        CombineOptions(**{field_name: 5})


def test_overlong_property_rejected():
    with pytest.raises(ValidationError):
        CombineOptions(title="x" * 256)
    assert CombineOptions(title="x" * 255).title == "x" * 255


def test_page_break_must_be_bool():
    with pytest.raises(ValidationError):
        CombineOptions(page_break="no")


def test_options_from_mapping_accepts_camel_and_snake_case():
    options = options_from_mapping({"pageBreak": False, "lastModifiedBy": "me", "title": "T", "vision": "3"})
    assert options == CombineOptions(page_break=False, last_modified_by="me", title="T", vision="3")
    assert options_from_mapping({"last_modified_by": "you"}).last_modified_by == "you"
    assert options_from_mapping(None) == CombineOptions()


def test_options_from_mapping_rejects_unknown_keys():
    with pytest.raises(ValidationError, match="Unknown option"):
        options_from_mapping({"pagebreak": True})


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        options_from_mapping({"author": ["a", "b"]})


def test_normalize_encoding():
    assert normalize_encoding(None) == "bytes"
    assert normalize_encoding(" Base64 ") == "base64"
    with pytest.raises(ValidationError, match="Allowed: base64, bytes"):
        normalize_encoding("hex")


def test_load_config(tmp_path: Path):
    cfg_path = tmp_path / "merge.yaml"
    cfg_path.write_text(
        "page_break: false\n"
        "log_path: logs/merge.log\n"
        "encoding: base64\n"
        "metadata:\n"
        "  title: Annual report\n"
        "  lastModifiedBy: build\n",
        encoding="utf-8",
    )

    cfg = load_config(cfg_path)

    assert cfg.options.page_break is False
    assert cfg.options.title == "Annual report"
    assert cfg.options.last_modified_by == "build"
    assert cfg.encoding == "base64"
    assert cfg.log_path == str((tmp_path / "logs" / "merge.log").resolve())


def test_load_config_empty_file_and_bad_metadata(tmp_path: Path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    cfg = load_config(empty)
    assert cfg.options == CombineOptions()
    assert cfg.log_path is None

    bad = tmp_path / "bad.yaml"
    bad.write_text("metadata:\n  title: 12\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(bad)
