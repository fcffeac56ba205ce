"""Document statistics and core properties of the merged package."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from docx.opc.coreprops import CoreProperties
from lxml import etree

from .errors import MissingPartError
from .oxml import EP_NS, first_child
from .package import APP_PROPS_PART, CORE_PROPS_PART, Package

if TYPE_CHECKING:
    from .config import CombineOptions

APP_STATISTICS = ("Pages", "Words", "Characters", "Lines", "CharactersWithSpaces")

_logger = logging.getLogger(__name__)


def read_app_statistics(package: Package) -> dict[str, int]:
    """Statistics from ``docProps/app.xml``; absent or unparsable values read as 0."""
    stats = dict.fromkeys(APP_STATISTICS, 0)
    try:
        root = package.xml(APP_PROPS_PART)
    except MissingPartError:
        _logger.warning("%s has no %s; statistics count as 0", package.name or "<package>", APP_PROPS_PART)
        return stats
    for key in APP_STATISTICS:
        element = first_child(root, f"{{{EP_NS}}}{key}")
        if element is None or not (element.text or "").strip():
            continue
        try:
            stats[key] = int(element.text.strip())
        except ValueError:
            _logger.warning("%s: %s value %r is not a number", package.name or "<package>", key, element.text)
    return stats


def aggregate_app_statistics(packages: Sequence[Package]) -> dict[str, int]:
    """Sum the statistics of every package and write the totals into the first one."""
    totals = dict.fromkeys(APP_STATISTICS, 0)
    for package in packages:
        for key, value in read_app_statistics(package).items():
            totals[key] += value
    if not packages:
        return totals

    base = packages[0]
    try:
        root = base.xml(APP_PROPS_PART)
    except MissingPartError:
        return totals
    for key, value in totals.items():
        tag = f"{{{EP_NS}}}{key}"
        element = first_child(root, tag)
        if element is None:
            element = etree.SubElement(root, tag)
        element.text = str(value)
    return totals


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0)


def update_core_properties(package: Package, options: CombineOptions, *, now: dt.datetime | None = None) -> bool:
    """Set core properties given in ``options`` and stamp the modification time.

    Returns False when the package carries no core-properties part.
    """
    try:
        element = package.xml(CORE_PROPS_PART)
    except MissingPartError:
        _logger.warning("%s has no %s; document properties left unset", package.name or "<package>", CORE_PROPS_PART)
        return False

    props = CoreProperties(element)
    if options.title is not None:
        props.title = options.title
    if options.subject is not None:
        props.subject = options.subject
    if options.author is not None:
        props.author = options.author
    if options.keywords is not None:
        props.keywords = options.keywords
    if options.description is not None:
        props.comments = options.description
    if options.last_modified_by is not None:
        props.last_modified_by = options.last_modified_by
    if options.vision is not None:
        # free-form version label; the int-only revision setter would reject it
        element.get_or_add_revision().text = options.vision

    stamp = now or utc_now()
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(dt.timezone.utc).replace(tzinfo=None)
    props.modified = stamp.replace(microsecond=0)
    return True


__all__ = [
    "APP_STATISTICS",
    "aggregate_app_statistics",
    "read_app_statistics",
    "update_core_properties",
    "utc_now",
]
