"""Concatenate document bodies, turning each junction into a section boundary."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from copy import deepcopy
from typing import Any

from .errors import CombineError
from .oxml import W_BODY, W_BR, W_P, W_PPR, W_R, W_SECTPR, W_TYPE, first_child, iter_children, new_element
from .package import DOCUMENT_PART, Package

_logger = logging.getLogger(__name__)


def document_body(package: Package) -> Any:
    body = first_child(package.xml(DOCUMENT_PART), W_BODY)
    if body is None:
        raise CombineError(f"{package.name or '<package>'}: {DOCUMENT_PART} has no w:body")
    return body


def body_section_properties(body: Any) -> list[Any]:
    """Section descriptors that are direct children of ``body``; nested ones are not included."""
    return list(iter_children(body, W_SECTPR))


def section_break_paragraph(sect_pr: Any, *, page_break: bool) -> Any:
    """``<w:p><w:pPr>sectPr</w:pPr>[<w:r><w:br w:type="page"/></w:r>]</w:p>``."""
    paragraph = new_element(W_P)
    p_pr = new_element(W_PPR)
    p_pr.append(sect_pr)
    paragraph.append(p_pr)
    if page_break:
        run = new_element(W_R)
        br = new_element(W_BR)
        br.set(W_TYPE, "page")
        run.append(br)
        paragraph.append(run)
    return paragraph


def _relocate_section_properties(body: Any, *, page_break: bool, package_name: str) -> int:
    sect_prs = body_section_properties(body)
    if not sect_prs:
        _logger.warning("%s: body has no section descriptor; inserting a default one", package_name)
        body.append(section_break_paragraph(new_element(W_SECTPR), page_break=page_break))
        return 1
    for sect_pr in sect_prs:
        index = body.index(sect_pr)
        body.remove(sect_pr)
        body.insert(index, section_break_paragraph(sect_pr, page_break=page_break))
    return len(sect_prs)


def merge_bodies(packages: Sequence[Package], *, page_break: bool = True) -> int:
    """Replace the base body with the concatenation of every package's body.

    Every body except the last has its trailing ``w:sectPr`` moved into a
    synthetic paragraph; the last body keeps its ``w:sectPr`` untouched as the
    terminal descriptor. Returns the number of section-break paragraphs inserted.
    """
    if not packages:
        raise CombineError("No packages to merge")

    clones = [deepcopy(document_body(package)) for package in packages]
    inserted = 0
    for position, (package, clone) in enumerate(zip(packages, clones)):
        if position == len(clones) - 1:
            if not body_section_properties(clone):
                _logger.warning("%s: last body has no terminal section descriptor", package.name or "<package>")
            continue
        inserted += _relocate_section_properties(clone, page_break=page_break, package_name=package.name or "<package>")

    base_body = document_body(packages[0])
    for child in list(base_body):
        base_body.remove(child)
    for clone in clones:
        for child in list(clone):
            base_body.append(child)

    _logger.debug("Merged %d bodies with %d section breaks", len(clones), inserted)
    return inserted


__all__ = [
    "body_section_properties",
    "document_body",
    "merge_bodies",
    "section_break_paragraph",
]
