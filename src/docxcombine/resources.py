"""Fold shared manifests and catalogs of the source packages into the base package.

Identifiers were made disjoint by :mod:`docxcombine.renumber`, so everything
here is a union: relationship and content-type manifests and the font table are
de-duplicated by key, styles, numbering definitions and notes are appended.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from copy import deepcopy
from typing import Any

from .errors import MissingPartError
from .oxml import (
    CT_DEFAULT,
    CT_OVERRIDE,
    PR_RELATIONSHIP,
    R_NS,
    W_ABSTRACTNUM,
    W_DEFAULT,
    W_ENDNOTE,
    W_FONT,
    W_FOOTNOTE,
    W_NAME,
    W_NUM,
    W_NUMID,
    W_NUMPICBULLET,
    W_NUM_ID_MAC_AT_CLEANUP,
    W_STYLE,
    iter_children,
    new_element,
)
from .package import (
    CONTENT_TYPES_PART,
    DOCUMENT_PART,
    ENDNOTES_PART,
    FONT_TABLE_PART,
    FOOTNOTES_PART,
    NUMBERING_PART,
    STYLES_PART,
    Package,
    Relationship,
    relative_target,
    resolve_target,
)
from .parts import copy_part_tree
from .renumber import is_ordinary_note

_RID_RE = re.compile(r"^rId(\d+)$")
_R_ATTR_PREFIX = f"{{{R_NS}}}"

# numbering.xml children in schema order; each kind goes in front of the first later kind
_NUMBERING_ANCHORS = {
    W_NUMPICBULLET: (W_ABSTRACTNUM, W_NUM, W_NUM_ID_MAC_AT_CLEANUP),
    W_ABSTRACTNUM: (W_NUM, W_NUM_ID_MAC_AT_CLEANUP),
    W_NUM: (W_NUM_ID_MAC_AT_CLEANUP,),
}

_logger = logging.getLogger(__name__)


def _name(package: Package) -> str:
    return package.name or "<package>"


def merge_relationships(base: Package, sources: Sequence[Package]) -> int:
    """Union document relationships into the base manifest, first Target wins."""
    base_root = base.relationships_root(DOCUMENT_PART, create=True)
    targets = {str(el.get("Target", "")) for el in iter_children(base_root, PR_RELATIONSHIP)}
    added = 0
    for source in sources:
        try:
            source_root = source.relationships_root(DOCUMENT_PART)
        except MissingPartError:
            _logger.warning("%s has no document relationships to merge", _name(source))
            continue
        for rel_el in iter_children(source_root, PR_RELATIONSHIP):
            target = str(rel_el.get("Target", ""))
            if target in targets:
                continue
            targets.add(target)
            base_root.append(deepcopy(rel_el))
            added += 1
    return added


def merge_content_types(base: Package, sources: Sequence[Package]) -> list[str]:
    """Union Override (by PartName) and Default (by Extension) declarations.

    Returns the PartNames of overrides taken from sources, so that the ones whose
    part never reaches the base can be pruned after the copy phase.
    """
    try:
        base_root = base.xml(CONTENT_TYPES_PART)
    except MissingPartError:
        _logger.warning("Base package %s has no content-types manifest; nothing merged", _name(base))
        return []

    extensions = {str(el.get("Extension", "")).lower() for el in iter_children(base_root, CT_DEFAULT)}
    part_names = {str(el.get("PartName", "")) for el in iter_children(base_root, CT_OVERRIDE)}
    added_overrides: list[str] = []

    for source in sources:
        try:
            source_root = source.xml(CONTENT_TYPES_PART)
        except MissingPartError:
            _logger.warning("%s has no content-types manifest", _name(source))
            continue
        for default in iter_children(source_root, CT_DEFAULT):
            extension = str(default.get("Extension", "")).lower()
            if extension in extensions:
                continue
            extensions.add(extension)
            _insert_before_first(base_root, deepcopy(default), (CT_OVERRIDE,))
        for override in iter_children(source_root, CT_OVERRIDE):
            part_name = str(override.get("PartName", ""))
            if part_name in part_names or not source.has_part(part_name.lstrip("/")):
                continue
            part_names.add(part_name)
            base_root.append(deepcopy(override))
            added_overrides.append(part_name)
    return added_overrides


def merge_font_tables(base: Package, sources: Sequence[Package]) -> int:
    """Union font declarations by ``w:name``."""
    added = 0
    for source in sources:
        if not source.has_part(FONT_TABLE_PART):
            _logger.warning("%s has no font table", _name(source))
            continue
        if not base.has_part(FONT_TABLE_PART):
            _logger.warning("Base package %s has no font table; adopting the one from %s", _name(base), _name(source))
            copy_part_tree(base, source, FONT_TABLE_PART)
            continue
        base_root = base.xml(FONT_TABLE_PART)
        names = {font.get(W_NAME) for font in iter_children(base_root, W_FONT)}
        fonts = []
        for font in iter_children(source.xml(FONT_TABLE_PART), W_FONT):
            if font.get(W_NAME) in names:
                continue
            names.add(font.get(W_NAME))
            fonts.append(deepcopy(font))
        rehome_relationships(base, source, FONT_TABLE_PART, fonts)
        for font in fonts:
            base_root.append(font)
        added += len(fonts)
    return added


def merge_styles(base: Package, sources: Sequence[Package]) -> int:
    """Append every source style to the base catalog.

    Styles with the same name from different packages are all kept; their ids
    are already distinct. ``w:default`` is dropped so the base defaults hold.
    """
    added = 0
    for source in sources:
        if not source.has_part(STYLES_PART):
            continue
        if not base.has_part(STYLES_PART):
            _logger.warning("Base package %s has no style catalog; adopting the one from %s", _name(base), _name(source))
            copy_part_tree(base, source, STYLES_PART)
            continue
        base_root = base.xml(STYLES_PART)
        for style in iter_children(source.xml(STYLES_PART), W_STYLE):
            clone = deepcopy(style)
            if W_DEFAULT in clone.attrib:
                del clone.attrib[W_DEFAULT]
            base_root.append(clone)
            added += 1
    return added


def merge_numbering(base: Package, sources: Sequence[Package]) -> int:
    """Append picture bullets, abstract definitions and instances, in schema order."""
    added = 0
    for source in sources:
        if not source.has_part(NUMBERING_PART):
            continue
        if not base.has_part(NUMBERING_PART):
            copy_part_tree(base, source, NUMBERING_PART)
            continue
        base_root = base.xml(NUMBERING_PART)
        source_root = source.xml(NUMBERING_PART)
        elements = [
            deepcopy(child)
            for child in source_root.iterchildren()
            if child.tag in _NUMBERING_ANCHORS and not (child.tag == W_NUM and child.get(W_NUMID) == "0")
        ]
        rehome_relationships(base, source, NUMBERING_PART, elements)
        for element in elements:
            _insert_before_first(base_root, element, _NUMBERING_ANCHORS[element.tag])
        added += len(elements)
    return added


def merge_notes(base: Package, sources: Sequence[Package]) -> int:
    """Append ordinary footnotes and endnotes; separator notes stay the base's."""
    added = 0
    for part_name, note_tag in ((FOOTNOTES_PART, W_FOOTNOTE), (ENDNOTES_PART, W_ENDNOTE)):
        for source in sources:
            if not source.has_part(part_name):
                continue
            if not base.has_part(part_name):
                copy_part_tree(base, source, part_name)
                continue
            notes = [deepcopy(note) for note in iter_children(source.xml(part_name), note_tag) if is_ordinary_note(note)]
            rehome_relationships(base, source, part_name, notes)
            base_root = base.xml(part_name)
            for note in notes:
                base_root.append(note)
            added += len(notes)
    return added


def rehome_relationships(base: Package, source: Package, part_name: str, elements: Iterable[Any]) -> dict[str, str]:
    """Point ``r:`` ids inside ``elements`` at the base part's own manifest.

    ``elements`` come from ``source``'s ``part_name`` and are about to be appended
    to the base part of the same name. Each referenced relationship is found or
    added in the base manifest under an id local to that manifest; internal
    targets the base lacks are copied over.
    """
    elements = list(elements)
    rid_map: dict[str, str] = {}
    references = [
        (node, attr_name, value)
        for element in elements
        for node in element.iter()
        for attr_name, value in node.attrib.items()
        if attr_name.startswith(_R_ATTR_PREFIX)
    ]
    if not references:
        return rid_map

    try:
        source_rels = {rel.rel_id: rel for rel in source.relationships(part_name)}
    except MissingPartError:
        _logger.warning("%s: %s uses relationship ids but has no manifest", _name(source), part_name)
        return rid_map

    base_root = base.relationships_root(part_name, create=True)
    existing = {
        (str(el.get("Target", "")), el.get("TargetMode")): str(el.get("Id", ""))
        for el in iter_children(base_root, PR_RELATIONSHIP)
    }
    used_ids = set(existing.values())

    for node, attr_name, old_id in references:
        if old_id not in rid_map:
            rel = source_rels.get(old_id)
            if rel is None:
                _logger.warning("%s: %s refers to unknown relationship %s", _name(source), part_name, old_id)
                continue
            rid_map[old_id] = _find_or_add_relationship(base, source, part_name, rel, base_root, existing, used_ids)
        node.set(attr_name, rid_map[old_id])
    return rid_map


def _find_or_add_relationship(
    base: Package,
    source: Package,
    part_name: str,
    rel: Relationship,
    base_root: Any,
    existing: dict[tuple[str, Any], str],
    used_ids: set[str],
) -> str:
    target = rel.target
    if not rel.is_external:
        target_part = resolve_target(part_name, rel.target)
        copy_part_tree(base, source, target_part)
        target = relative_target(part_name, target_part, absolute=rel.target.startswith("/"))
    key = (target, rel.target_mode)
    if key in existing:
        return existing[key]

    new_id = _next_local_rel_id(used_ids)
    rel_el = new_element(PR_RELATIONSHIP)
    rel_el.set("Id", new_id)
    rel_el.set("Type", rel.reltype)
    rel_el.set("Target", target)
    if rel.target_mode is not None:
        rel_el.set("TargetMode", rel.target_mode)
    base_root.append(rel_el)
    existing[key] = new_id
    used_ids.add(new_id)
    return new_id


def _next_local_rel_id(used_ids: set[str]) -> str:
    high = 0
    for rel_id in used_ids:
        m = _RID_RE.match(rel_id)
        if m:
            high = max(high, int(m.group(1)))
    candidate = high + 1
    while f"rId{candidate}" in used_ids:
        candidate += 1
    return f"rId{candidate}"


def _insert_before_first(parent: Any, element: Any, anchor_tags: tuple[str, ...]) -> None:
    for index, child in enumerate(parent):
        if child.tag in anchor_tags:
            parent.insert(index, element)
            return
    parent.append(element)


def merge_shared_resources(base: Package, sources: Sequence[Package]) -> list[str]:
    """Run every manifest and catalog merge; returns the content-type overrides added."""
    if not sources:
        return []
    rels_added = merge_relationships(base, sources)
    added_overrides = merge_content_types(base, sources)
    fonts_added = merge_font_tables(base, sources)
    styles_added = merge_styles(base, sources)
    numbering_added = merge_numbering(base, sources)
    notes_added = merge_notes(base, sources)
    _logger.debug(
        "Merged %d relationships, %d overrides, %d fonts, %d styles, %d numbering definitions, %d notes",
        rels_added,
        len(added_overrides),
        fonts_added,
        styles_added,
        numbering_added,
        notes_added,
    )
    return added_overrides


__all__ = [
    "merge_content_types",
    "merge_font_tables",
    "merge_numbering",
    "merge_notes",
    "merge_relationships",
    "merge_shared_resources",
    "merge_styles",
    "rehome_relationships",
]
