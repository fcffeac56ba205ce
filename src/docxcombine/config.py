from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ValidationError

# Word refuses longer core-property strings; docx.opc.coreprops enforces the same limit.
MAX_PROPERTY_LENGTH = 255

METADATA_FIELDS = ("title", "subject", "author", "keywords", "description", "last_modified_by", "vision")
ENCODINGS = {"bytes", "base64"}

_CAMEL_CASE_KEYS = {"pageBreak": "page_break", "lastModifiedBy": "last_modified_by"}


@dataclass(frozen=True)
class CombineOptions:
    # Insert an explicit page-break run at every junction between bodies.
    page_break: bool = True
    title: str | None = None
    subject: str | None = None
    author: str | None = None
    keywords: str | None = None
    description: str | None = None
    last_modified_by: str | None = None
    # Written to cp:revision as-is.
    vision: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.page_break, bool):
            raise ValidationError(f"page_break must be a boolean. Received: {type(self.page_break).__name__}")
        for name in METADATA_FIELDS:
            _validate_string(getattr(self, name), field_name=name)

    def metadata(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in METADATA_FIELDS if getattr(self, name) is not None}


@dataclass(frozen=True)
class CombineConfig:
    options: CombineOptions = field(default_factory=CombineOptions)
    log_path: str | None = None
    encoding: str = "bytes"


def _validate_string(value: Any, *, field_name: str) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string. Received: {type(value).__name__}")
    if len(value) > MAX_PROPERTY_LENGTH:
        raise ValidationError(f"{field_name} exceeds {MAX_PROPERTY_LENGTH} characters (got {len(value)})")


def normalize_encoding(value: Any) -> str:
    raw = str("bytes" if value is None else value).strip().lower()
    if raw not in ENCODINGS:
        allowed_list = ", ".join(sorted(ENCODINGS))
        raise ValidationError(f"Invalid value for encoding: {raw!r}. Allowed: {allowed_list}")
    return raw


def options_from_mapping(data: Mapping[str, Any] | None) -> CombineOptions:
    """Build options from ``pageBreak``/``page_break`` style keys; unknown keys are an error."""
    known = {f.name for f in fields(CombineOptions)}
    kwargs: dict[str, Any] = {}
    for key, value in (data or {}).items():
        name = _CAMEL_CASE_KEYS.get(str(key), str(key))
        if name not in known:
            raise ValidationError(f"Unknown option: {key!r}")
        kwargs[name] = value
    return CombineOptions(**kwargs)


def _resolve_optional_path(base_dir: Path, value: Any) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    path = Path(raw)
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def load_config(path: str | Path) -> CombineConfig:
    cfg_path = Path(path)
    data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, Mapping):
        raise ValidationError(f"{cfg_path}: expected a mapping at the top level")

    metadata = data.get("metadata", {}) or {}
    if not isinstance(metadata, Mapping):
        raise ValidationError(f"{cfg_path}: 'metadata' must be a mapping")
    option_data: dict[str, Any] = dict(metadata)
    if "page_break" in data:
        option_data["page_break"] = data["page_break"]

    return CombineConfig(
        options=options_from_mapping(option_data),
        log_path=_resolve_optional_path(cfg_path.parent, data.get("log_path")),
        encoding=normalize_encoding(data.get("encoding")),
    )


__all__ = [
    "ENCODINGS",
    "METADATA_FIELDS",
    "CombineConfig",
    "CombineOptions",
    "load_config",
    "normalize_encoding",
    "options_from_mapping",
]
