"""Post-merge integrity checks over a package's identifier spaces and manifests."""

from __future__ import annotations

from collections import Counter
from typing import Any

from .body import body_section_properties, document_body
from .errors import MissingPartError
from .models import Issue, Severity
from .oxml import (
    CT_OVERRIDE,
    R_NS,
    W_ABSTRACTNUM,
    W_ABSTRACTNUMID,
    W_BASEDON,
    W_ENDNOTE,
    W_ENDNOTE_REFERENCE,
    W_FOOTNOTE,
    W_FOOTNOTE_REFERENCE,
    W_ID,
    W_LINK,
    W_NEXT,
    W_NUM,
    W_NUMID,
    W_PPR,
    W_PSTYLE,
    W_RSTYLE,
    W_SECTPR,
    W_STYLE,
    W_STYLE_ID,
    W_TBLSTYLE,
    W_VAL,
    iter_children,
)
from .package import (
    CONTENT_TYPES_PART,
    DOCUMENT_PART,
    ENDNOTES_PART,
    FOOTNOTES_PART,
    NUMBERING_PART,
    STYLES_PART,
    Package,
    resolve_target,
)
from .rewrite import header_footer_parts

_STYLE_REFERENCE_TAGS = (W_PSTYLE, W_RSTYLE, W_TBLSTYLE, W_BASEDON, W_NEXT, W_LINK)
_R_ATTR_PREFIX = f"{{{R_NS}}}"


def count_section_breaks(package: Package) -> int:
    """Number of section descriptors carried in paragraph properties inside the body."""
    body = document_body(package)
    return sum(1 for sect_pr in body.iter(W_SECTPR) if sect_pr.getparent().tag == W_PPR)


def _duplicates(values: list[str]) -> list[str]:
    return sorted(value for value, count in Counter(values).items() if count > 1)


def _optional_xml(package: Package, part_name: str) -> Any | None:
    if not package.has_part(part_name):
        return None
    return package.xml(part_name)


def _check_relationships(package: Package, part_name: str, issues: list[Issue]) -> None:
    try:
        rels = package.relationships(part_name)
    except MissingPartError:
        rels = []
    ids = [rel.rel_id for rel in rels]
    for rel_id in _duplicates(ids):
        issues.append(
            Issue(
                code="duplicate_relationship_id",
                severity=Severity.ERROR,
                message="Relationship id is declared more than once.",
                details={"part": part_name, "id": rel_id},
            )
        )
    for rel in rels:
        if rel.is_external:
            continue
        target_part = resolve_target(part_name, rel.target)
        if not package.has_part(target_part):
            issues.append(
                Issue(
                    code="missing_relationship_target",
                    severity=Severity.WARN,
                    message="Relationship points to a part that is not in the package.",
                    details={"part": part_name, "id": rel.rel_id, "target": target_part},
                )
            )

    known = set(ids)
    dangling = sorted(
        {
            value
            for node in package.xml(part_name).iter()
            for attr_name, value in node.attrib.items()
            if isinstance(node.tag, str) and attr_name.startswith(_R_ATTR_PREFIX) and value and value not in known
        }
    )
    for rel_id in dangling:
        issues.append(
            Issue(
                code="dangling_relationship_reference",
                severity=Severity.ERROR,
                message="Content refers to a relationship id missing from its manifest.",
                details={"part": part_name, "id": rel_id},
            )
        )


def _check_styles(package: Package, content_parts: list[str], issues: list[Issue]) -> None:
    styles = _optional_xml(package, STYLES_PART)
    style_ids = [str(s.get(W_STYLE_ID)) for s in iter_children(styles, W_STYLE)] if styles is not None else []
    for style_id in _duplicates(style_ids):
        issues.append(
            Issue(
                code="duplicate_style_id",
                severity=Severity.ERROR,
                message="Style id is defined more than once.",
                details={"id": style_id},
            )
        )

    known = set(style_ids)
    roots = [(part_name, package.xml(part_name)) for part_name in content_parts]
    if styles is not None:
        roots.append((STYLES_PART, styles))
    for part_name, root in roots:
        missing = sorted({node.get(W_VAL) for node in root.iter(*_STYLE_REFERENCE_TAGS)} - known - {None})
        for style_id in missing:
            issues.append(
                Issue(
                    code="dangling_style_reference",
                    severity=Severity.ERROR,
                    message="Style reference does not resolve to a style in the catalog.",
                    details={"part": part_name, "id": style_id},
                )
            )


def _check_numbering(package: Package, content_parts: list[str], issues: list[Issue]) -> None:
    numbering = _optional_xml(package, NUMBERING_PART)
    num_ids: list[str] = []
    abstract_ids: list[str] = []
    if numbering is not None:
        num_ids = [str(n.get(W_NUMID)) for n in iter_children(numbering, W_NUM)]
        abstract_ids = [str(a.get(W_ABSTRACTNUMID)) for a in iter_children(numbering, W_ABSTRACTNUM)]
    for code, values in (("duplicate_num_id", num_ids), ("duplicate_abstract_num_id", abstract_ids)):
        for value in _duplicates(values):
            issues.append(
                Issue(code=code, severity=Severity.ERROR, message="Numbering id is defined more than once.", details={"id": value})
            )

    known = set(num_ids) | {"0"}
    roots = [(part_name, package.xml(part_name)) for part_name in content_parts]
    if package.has_part(STYLES_PART):
        roots.append((STYLES_PART, package.xml(STYLES_PART)))
    for part_name, root in roots:
        missing = sorted({node.get(W_VAL) for node in root.iter(W_NUMID)} - known - {None})
        for num_id in missing:
            issues.append(
                Issue(
                    code="dangling_numbering_reference",
                    severity=Severity.ERROR,
                    message="Numbering reference does not resolve to a numbering instance.",
                    details={"part": part_name, "id": num_id},
                )
            )

    if numbering is not None:
        known_abstract = set(abstract_ids)
        for num in iter_children(numbering, W_NUM):
            for ref in iter_children(num, W_ABSTRACTNUMID):
                if ref.get(W_VAL) not in known_abstract:
                    issues.append(
                        Issue(
                            code="dangling_abstract_num_reference",
                            severity=Severity.ERROR,
                            message="Numbering instance refers to a missing abstract definition.",
                            details={"num_id": num.get(W_NUMID), "id": ref.get(W_VAL)},
                        )
                    )


def _check_notes(package: Package, content_parts: list[str], issues: list[Issue]) -> None:
    for part_name, note_tag, ref_tag in (
        (FOOTNOTES_PART, W_FOOTNOTE, W_FOOTNOTE_REFERENCE),
        (ENDNOTES_PART, W_ENDNOTE, W_ENDNOTE_REFERENCE),
    ):
        notes = _optional_xml(package, part_name)
        note_ids = [str(n.get(W_ID)) for n in iter_children(notes, note_tag)] if notes is not None else []
        for note_id in _duplicates(note_ids):
            issues.append(
                Issue(
                    code="duplicate_note_id",
                    severity=Severity.ERROR,
                    message="Note id is defined more than once.",
                    details={"part": part_name, "id": note_id},
                )
            )
        known = set(note_ids)
        for content_part in content_parts:
            root = package.xml(content_part)
            for note_id in sorted({ref.get(W_ID) for ref in root.iter(ref_tag)} - known - {None}):
                issues.append(
                    Issue(
                        code="dangling_note_reference",
                        severity=Severity.ERROR,
                        message="Note reference does not resolve to a note.",
                        details={"part": content_part, "notes_part": part_name, "id": note_id},
                    )
                )


def _check_content_types(package: Package, issues: list[Issue]) -> None:
    try:
        root = package.xml(CONTENT_TYPES_PART)
    except MissingPartError:
        issues.append(
            Issue(
                code="missing_content_types",
                severity=Severity.ERROR,
                message="Package has no content-types manifest.",
                details={"part": CONTENT_TYPES_PART},
            )
        )
        return
    part_names = [str(o.get("PartName", "")) for o in iter_children(root, CT_OVERRIDE)]
    for part_name in _duplicates(part_names):
        issues.append(
            Issue(
                code="duplicate_content_type_override",
                severity=Severity.ERROR,
                message="Content-type override is declared more than once.",
                details={"part": part_name},
            )
        )
    for part_name in sorted(set(part_names)):
        if not package.has_part(part_name.lstrip("/")):
            issues.append(
                Issue(
                    code="orphan_content_type_override",
                    severity=Severity.WARN,
                    message="Content-type override names a part that is not in the package.",
                    details={"part": part_name},
                )
            )


def check_integrity(package: Package) -> list[Issue]:
    """Check uniqueness and referential integrity of a (merged) package."""
    issues: list[Issue] = []
    body = document_body(package)
    terminal = body_section_properties(body)
    if len(terminal) != 1:
        issues.append(
            Issue(
                code="terminal_section_count",
                severity=Severity.WARN,
                message="Body should end with exactly one section descriptor.",
                details={"count": len(terminal)},
            )
        )

    content_parts = [DOCUMENT_PART, *header_footer_parts(package)]
    for part_name in (FOOTNOTES_PART, ENDNOTES_PART):
        if package.has_part(part_name):
            content_parts.append(part_name)

    for part_name in content_parts:
        _check_relationships(package, part_name, issues)
    _check_styles(package, content_parts, issues)
    _check_numbering(package, content_parts, issues)
    _check_notes(package, content_parts, issues)
    _check_content_types(package, issues)
    return issues


__all__ = ["check_integrity", "count_section_breaks"]
