"""Copy a source package's parts into the base package."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .errors import MissingPartError
from .oxml import CT_OVERRIDE, iter_children
from .package import CONTENT_TYPES_PART, DOCUMENT_PART, Package, rels_part_name, resolve_target
from .renumber import IdentifierMap, RenumberState

_logger = logging.getLogger(__name__)


def copy_part_tree(base: Package, source: Package, part_name: str, copied: list[str] | None = None) -> list[str]:
    """Copy ``part_name`` with its relationship manifest and every internal target it reaches.

    Parts already present in ``base`` are left alone and not descended into.
    """
    if copied is None:
        copied = []
    if base.has_part(part_name) or not source.has_part(part_name):
        return copied

    base.set_blob(part_name, source.blob(part_name))
    copied.append(part_name)

    rels_name = rels_part_name(part_name)
    if not source.has_part(rels_name):
        return copied
    if not base.has_part(rels_name):
        base.set_blob(rels_name, source.blob(rels_name))
        copied.append(rels_name)
    for rel in source.relationships(part_name):
        if rel.is_external:
            continue
        copy_part_tree(base, source, resolve_target(part_name, rel.target), copied)
    return copied


def copy_source_parts(base: Package, source: Package, idmap: IdentifierMap, state: RenumberState) -> list[str]:
    """Bring a source's relocated parts, and anything its document still points at, into ``base``."""
    copied: list[str] = []
    for new_name in idmap.renames.values():
        copy_part_tree(base, source, new_name, copied)

    try:
        rels = source.relationships(DOCUMENT_PART)
    except MissingPartError:
        rels = []
    for rel in rels:
        if rel.is_external:
            continue
        copy_part_tree(base, source, resolve_target(DOCUMENT_PART, rel.target), copied)

    state.claimed_parts.update(copied)
    _logger.debug("%s: copied %d parts", source.name or "<package>", len(copied))
    return copied


def prune_content_types(base: Package, added_overrides: Iterable[str]) -> list[str]:
    """Drop overrides merged in from sources whose part never reached ``base``."""
    candidates = set(added_overrides)
    if not candidates:
        return []
    try:
        root = base.xml(CONTENT_TYPES_PART)
    except MissingPartError:
        return []

    pruned: list[str] = []
    for override in list(iter_children(root, CT_OVERRIDE)):
        part_name = str(override.get("PartName", ""))
        if part_name in candidates and not base.has_part(part_name.lstrip("/")):
            root.remove(override)
            pruned.append(part_name)
    if pruned:
        _logger.debug("Pruned content-type overrides: %s", ", ".join(pruned))
    return pruned


__all__ = ["copy_part_tree", "copy_source_parts", "prune_content_types"]
