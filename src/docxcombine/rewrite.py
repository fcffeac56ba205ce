"""Apply a package's identifier map to its own XML parts in one structural pass."""

from __future__ import annotations

import logging
from typing import Any

from docx.opc.constants import RELATIONSHIP_TYPE as RT

from .errors import MissingPartError
from .oxml import (
    O_RELID,
    R_NS,
    W14_TEXT_ID,
    W_ABSTRACTNUM,
    W_ABSTRACTNUMID,
    W_BASEDON,
    W_ENDNOTE,
    W_ENDNOTE_REFERENCE,
    W_FOOTNOTE,
    W_FOOTNOTE_REFERENCE,
    W_ID,
    W_LINK,
    W_LVLPICBULLETID,
    W_NEXT,
    W_NUM,
    W_NUMID,
    W_NUMPICBULLET,
    W_NUMPICBULLETID,
    W_NUMSTYLELINK,
    W_P,
    W_PSTYLE,
    W_RSID_DEL,
    W_RSID_P,
    W_RSID_R,
    W_RSID_R_DEFAULT,
    W_RSID_RPR,
    W_RSID_TR,
    W_RSTYLE,
    W_STYLE,
    W_STYLE_ID,
    W_STYLELINK,
    W_TBLSTYLE,
    W_TR,
    W_VAL,
)
from .package import DOCUMENT_PART, ENDNOTES_PART, FOOTNOTES_PART, NUMBERING_PART, STYLES_PART, Package, resolve_target
from .renumber import IdentifierMap

_STYLE_REFERENCE_TAGS = (W_PSTYLE, W_RSTYLE, W_TBLSTYLE, W_BASEDON, W_NEXT, W_LINK, W_STYLELINK, W_NUMSTYLELINK)

# (element tag, attribute) -> IdentifierMap namespace. Definitions and
# references share a namespace, so a catalog and its users move together.
REFERENCE_SITES: dict[tuple[str, str], str] = {
    (W_STYLE, W_STYLE_ID): "styles",
    **{(tag, W_VAL): "styles" for tag in _STYLE_REFERENCE_TAGS},
    (W_NUM, W_NUMID): "numbering",
    (W_NUMID, W_VAL): "numbering",
    (W_ABSTRACTNUM, W_ABSTRACTNUMID): "abstract_numbering",
    (W_ABSTRACTNUMID, W_VAL): "abstract_numbering",
    (W_NUMPICBULLET, W_NUMPICBULLETID): "picture_bullets",
    (W_LVLPICBULLETID, W_VAL): "picture_bullets",
    (W_FOOTNOTE, W_ID): "footnotes",
    (W_FOOTNOTE_REFERENCE, W_ID): "footnotes",
    (W_ENDNOTE, W_ID): "endnotes",
    (W_ENDNOTE_REFERENCE, W_ID): "endnotes",
}

REVISION_MARKER_VALUES: dict[str, str] = {
    W14_TEXT_ID: "77777777",
    W_RSID_R: "00000000",
    W_RSID_R_DEFAULT: "00000000",
    W_RSID_RPR: "00000000",
    W_RSID_P: "00000000",
    W_RSID_DEL: "00000000",
    W_RSID_TR: "00000000",
}

_R_ATTR_PREFIX = f"{{{R_NS}}}"

_logger = logging.getLogger(__name__)


def _is_relationship_attr(attr_name: str) -> bool:
    return attr_name.startswith(_R_ATTR_PREFIX) or attr_name == O_RELID


def rewrite_references(root: Any, idmap: IdentifierMap, *, relationships: bool = True) -> int:
    """Replace every mapped id found at a known reference site under ``root``.

    Each attribute value is looked up once against the complete old->new table of
    its namespace, so a new id that equals some other old id is never rewritten a
    second time. Relationship attributes are only touched when ``relationships``
    is true: a part's ``r:`` ids belong to that part's own manifest.
    """
    tables = {namespace: idmap.table(namespace) for namespace in set(REFERENCE_SITES.values())}
    rel_table = idmap.relationships if relationships else {}
    if not rel_table and not any(tables.values()):
        return 0

    replaced = 0
    for node in root.iter():
        tag = node.tag
        if not isinstance(tag, str):
            continue
        for attr_name, value in node.attrib.items():
            if _is_relationship_attr(attr_name):
                table = rel_table
            else:
                namespace = REFERENCE_SITES.get((tag, attr_name))
                if namespace is None:
                    continue
                table = tables[namespace]
            new_value = table.get(value)
            if new_value is None or new_value == value:
                continue
            node.set(attr_name, new_value)
            replaced += 1
    return replaced


def normalize_revision_markers(root: Any) -> int:
    """Pin per-session revision attributes on paragraphs and table rows to fixed values."""
    changed = 0
    for node in root.iter(W_P, W_TR):
        for attr_name, sentinel in REVISION_MARKER_VALUES.items():
            if attr_name in node.attrib and node.get(attr_name) != sentinel:
                node.set(attr_name, sentinel)
                changed += 1
    return changed


def header_footer_parts(package: Package) -> list[str]:
    """Part names of the headers and footers the main document refers to."""
    try:
        rels = package.relationships(DOCUMENT_PART)
    except MissingPartError:
        return []
    result: list[str] = []
    for rel in rels:
        if rel.is_external or rel.reltype not in (RT.HEADER, RT.FOOTER):
            continue
        part_name = resolve_target(DOCUMENT_PART, rel.target)
        if package.has_part(part_name) and part_name not in result:
            result.append(part_name)
    return result


def rewrite_package(package: Package, idmap: IdentifierMap) -> int:
    """Rewrite a source package's own parts with its identifier map.

    The document body gets every namespace including relationship ids; headers,
    footers, notes, numbering and the style catalog get every namespace except
    relationship ids. Paragraph and row revision markers are normalized in the
    content parts.
    """
    replaced = 0
    document = package.xml(DOCUMENT_PART)
    replaced += rewrite_references(document, idmap, relationships=True)
    normalize_revision_markers(document)

    for part_name in header_footer_parts(package):
        root = package.xml(part_name)
        replaced += rewrite_references(root, idmap, relationships=False)
        normalize_revision_markers(root)

    for part_name in (FOOTNOTES_PART, ENDNOTES_PART):
        if package.has_part(part_name):
            root = package.xml(part_name)
            replaced += rewrite_references(root, idmap, relationships=False)
            normalize_revision_markers(root)

    for part_name in (STYLES_PART, NUMBERING_PART):
        if package.has_part(part_name):
            replaced += rewrite_references(package.xml(part_name), idmap, relationships=False)

    _logger.debug("%s: %d references rewritten", package.name or "<package>", replaced)
    return replaced


__all__ = [
    "REFERENCE_SITES",
    "REVISION_MARKER_VALUES",
    "header_footer_parts",
    "normalize_revision_markers",
    "rewrite_package",
    "rewrite_references",
]
