"""Merge pipeline: renumber, rewrite, concatenate bodies, fold resources, copy parts."""

from __future__ import annotations

import base64
import datetime as dt
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, BinaryIO, Union

from .body import document_body, merge_bodies
from .config import CombineOptions, normalize_encoding, options_from_mapping
from .errors import CombineError, ValidationError
from .metadata import aggregate_app_statistics, update_core_properties
from .package import Package
from .parts import copy_source_parts, prune_content_types
from .renumber import renumber_packages
from .resources import merge_shared_resources
from .rewrite import rewrite_package

DocumentSource = Union[Package, bytes, str, Path, BinaryIO]

_logger = logging.getLogger(__name__)


def _coerce_options(options: CombineOptions | Mapping[str, Any] | None) -> CombineOptions:
    if options is None:
        return CombineOptions()
    if isinstance(options, CombineOptions):
        return options
    if isinstance(options, Mapping):
        return options_from_mapping(options)
    raise ValidationError(f"options must be CombineOptions or a mapping. Received: {type(options).__name__}")


def combine_packages(
    packages: Sequence[Package],
    options: CombineOptions | Mapping[str, Any] | None = None,
    *,
    now: dt.datetime | None = None,
) -> Package:
    """Merge ``packages`` into the first one and return it.

    Every XML part of every package is parsed before anything is changed, so a
    malformed part aborts the merge with the inputs untouched. Errors raised
    later propagate and the half-merged base must be discarded by the caller.
    """
    options = _coerce_options(options)
    if not packages:
        raise CombineError("No documents to combine")
    for package in packages:
        package.check_xml_parts()
        document_body(package)

    base, sources = packages[0], list(packages[1:])
    result = renumber_packages(packages)
    source_maps = result.maps[1:]
    for source, idmap in zip(sources, source_maps):
        rewrite_package(source, idmap)

    breaks = merge_bodies(packages, page_break=options.page_break)
    added_overrides = merge_shared_resources(base, sources)
    for source, idmap in zip(sources, source_maps):
        copy_source_parts(base, source, idmap, result.state)
    prune_content_types(base, added_overrides)

    aggregate_app_statistics(packages)
    update_core_properties(base, options, now=now)
    _logger.info(
        "Combined %d documents into %s (%d section breaks, page breaks %s)",
        len(packages),
        base.name or "<package>",
        breaks,
        "on" if options.page_break else "off",
    )
    return base


def open_sources(sources: Sequence[DocumentSource]) -> list[Package]:
    packages: list[Package] = []
    for index, source in enumerate(sources):
        if isinstance(source, Package):
            packages.append(source)
            continue
        name = Path(source).name if isinstance(source, (str, Path)) else f"document{index + 1}"
        packages.append(Package.open(source, name=name))
    return packages


def combine_docx(
    sources: Sequence[DocumentSource],
    options: CombineOptions | Mapping[str, Any] | None = None,
    *,
    now: dt.datetime | None = None,
) -> Package:
    """Open every source and merge them in order; options are validated before anything is read."""
    options = _coerce_options(options)
    if not sources:
        raise CombineError("No documents to combine")
    return combine_packages(open_sources(sources), options, now=now)


def encode_package(package: Package, encoding: str = "bytes") -> bytes | str:
    """Serialize ``package``; ``"base64"`` yields ASCII text, ``"bytes"`` the raw container."""
    encoding = normalize_encoding(encoding)
    data = package.to_bytes()
    if encoding == "base64":
        return base64.b64encode(data).decode("ascii")
    return data


__all__ = ["DocumentSource", "combine_docx", "combine_packages", "encode_package", "open_sources"]
