"""Collision-free identifier and part-name allocation across an ordered list of packages.

The first package is the base: its identifiers and part names are kept and only
seed the shared counters. Every later package gets fresh relationship ids, style
ids, numbering ids and note ids, and its headers, footers and media are moved to
part names nobody has claimed yet.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from docx.opc.constants import RELATIONSHIP_TYPE as RT

from .errors import MissingPartError
from .oxml import (
    CT_OVERRIDE,
    PR_RELATIONSHIP,
    W_ABSTRACTNUM,
    W_ABSTRACTNUMID,
    W_ENDNOTE,
    W_FOOTNOTE,
    W_ID,
    W_NUM,
    W_NUMID,
    W_NUMPICBULLET,
    W_NUMPICBULLETID,
    W_STYLE,
    W_STYLE_ID,
    W_TYPE,
    iter_children,
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
    rels_part_name,
    resolve_target,
)

_RID_RE = re.compile(r"^rId(\d+)$")
_NUMERIC_RE = re.compile(r"^\d+$")
_PARTNAME_NUMBER_RE = re.compile(r"\d+(?=\.[^.\/]+$)")

_RELOCATABLE_PREFIXES = (
    ("media", "word/media/"),
    ("chart", "word/charts/"),
    ("embedding", "word/embeddings/"),
    ("diagram", "word/diagrams/"),
    ("font", "word/fonts/"),
)

# Parts whose content is folded into the base part of the same name; media they
# reference must be relocated along with the headers and footers.
MERGED_CONTENT_PARTS = (NUMBERING_PART, FOOTNOTES_PART, ENDNOTES_PART, FONT_TABLE_PART)

_logger = logging.getLogger(__name__)


@dataclass
class IdentifierMap:
    """Old id -> new id, per namespace, for one package; plus its part renames."""

    relationships: dict[str, str] = field(default_factory=dict)
    styles: dict[str, str] = field(default_factory=dict)
    numbering: dict[str, str] = field(default_factory=dict)
    abstract_numbering: dict[str, str] = field(default_factory=dict)
    picture_bullets: dict[str, str] = field(default_factory=dict)
    footnotes: dict[str, str] = field(default_factory=dict)
    endnotes: dict[str, str] = field(default_factory=dict)
    renames: dict[str, str] = field(default_factory=dict)

    def table(self, namespace: str) -> dict[str, str]:
        return getattr(self, namespace)

    def is_empty(self) -> bool:
        return not any(
            (
                self.relationships,
                self.styles,
                self.numbering,
                self.abstract_numbering,
                self.picture_bullets,
                self.footnotes,
                self.endnotes,
                self.renames,
            )
        )


@dataclass
class RenumberState:
    """Counters shared by the whole run, seeded from the base package."""

    next_rel_id: int = 1
    rel_ids: set[str] = field(default_factory=set)
    # document-manifest Target -> id of the relationship that keeps it
    rel_targets: dict[str, str] = field(default_factory=dict)
    part_indices: dict[str, int] = field(default_factory=lambda: {"header": 1, "footer": 1, "media": 1})
    claimed_parts: set[str] = field(default_factory=set)
    style_numeric_high: int = 0
    next_synthetic_style: int = 0
    style_ids: set[str] = field(default_factory=set)
    next_num_id: int = 1
    next_abstract_num_id: int = 0
    next_pic_bullet_id: int = 0
    next_footnote_id: int = 1
    next_endnote_id: int = 1

    @classmethod
    def from_base(cls, base: Package) -> RenumberState:
        state = cls(claimed_parts=set(base.part_names()))
        state._seed_relationships(base)
        state._seed_styles(base)
        state._seed_numbering(base)
        state.next_footnote_id = _max_note_id(base, FOOTNOTES_PART, W_FOOTNOTE) + 1
        state.next_endnote_id = _max_note_id(base, ENDNOTES_PART, W_ENDNOTE) + 1
        return state

    def _seed_relationships(self, base: Package) -> None:
        try:
            rels = base.relationships(DOCUMENT_PART)
        except MissingPartError:
            _logger.warning("Base package %s has no document relationships; ids start at rId1", base.name)
            return
        high = 0
        for rel in rels:
            self.rel_ids.add(rel.rel_id)
            self.rel_targets.setdefault(rel.target, rel.rel_id)
            m = _RID_RE.match(rel.rel_id)
            if m:
                high = max(high, int(m.group(1)))
        self.next_rel_id = high + 1

    def _seed_styles(self, base: Package) -> None:
        try:
            root = base.xml(STYLES_PART)
        except MissingPartError:
            _logger.warning("Base package %s has no style catalog", base.name)
            return
        for style_id in _style_ids(root):
            self.style_ids.add(style_id)
            if _NUMERIC_RE.match(style_id):
                self.style_numeric_high = max(self.style_numeric_high, int(style_id))

    def _seed_numbering(self, base: Package) -> None:
        if not base.has_part(NUMBERING_PART):
            return
        root = base.xml(NUMBERING_PART)
        self.next_num_id = _max_int_attr(iter_children(root, W_NUM), W_NUMID, default=0) + 1
        self.next_abstract_num_id = _max_int_attr(iter_children(root, W_ABSTRACTNUM), W_ABSTRACTNUMID) + 1
        self.next_pic_bullet_id = _max_int_attr(iter_children(root, W_NUMPICBULLET), W_NUMPICBULLETID) + 1

    def allocate_rel_id(self) -> str:
        while True:
            candidate = f"rId{self.next_rel_id}"
            self.next_rel_id += 1
            if candidate not in self.rel_ids:
                self.rel_ids.add(candidate)
                return candidate

    def allocate_part_name(self, kind: str, part_name: str) -> str:
        template = _partname_template(part_name)
        while True:
            index = self.part_indices.get(kind, 1)
            self.part_indices[kind] = index + 1
            candidate = template % index
            if candidate not in self.claimed_parts:
                self.claimed_parts.add(candidate)
                return candidate

    def allocate_numeric_style_ids(self, count: int) -> list[str]:
        start = self.style_numeric_high
        self.style_numeric_high += count
        allocated = [str(start + offset) for offset in range(1, count + 1)]
        self.style_ids.update(allocated)
        return allocated

    def allocate_synthetic_style_id(self) -> str:
        while True:
            candidate = f"a{self.next_synthetic_style}"
            self.next_synthetic_style += 1
            if candidate not in self.style_ids:
                self.style_ids.add(candidate)
                return candidate

    def allocate_num_id(self) -> str:
        value = self.next_num_id
        self.next_num_id += 1
        return str(value)

    def allocate_abstract_num_id(self) -> str:
        value = self.next_abstract_num_id
        self.next_abstract_num_id += 1
        return str(value)

    def allocate_pic_bullet_id(self) -> str:
        value = self.next_pic_bullet_id
        self.next_pic_bullet_id += 1
        return str(value)

    def allocate_footnote_id(self) -> str:
        value = self.next_footnote_id
        self.next_footnote_id += 1
        return str(value)

    def allocate_endnote_id(self) -> str:
        value = self.next_endnote_id
        self.next_endnote_id += 1
        return str(value)


@dataclass
class RenumberResult:
    maps: list[IdentifierMap]
    state: RenumberState


def renumber_packages(packages: Sequence[Package], state: RenumberState | None = None) -> RenumberResult:
    """Assign identifiers for every package; the first one is the base and keeps its own."""
    if not packages:
        return RenumberResult(maps=[], state=state or RenumberState())
    if state is None:
        state = RenumberState.from_base(packages[0])
    maps = [IdentifierMap()]
    for package in packages[1:]:
        maps.append(renumber_package(package, state))
    return RenumberResult(maps=maps, state=state)


def renumber_package(package: Package, state: RenumberState) -> IdentifierMap:
    """Compute the identifier map of one non-base package and relocate its renamed parts."""
    idmap = IdentifierMap()
    _renumber_relationships(package, state, idmap)
    for part_name in MERGED_CONTENT_PARTS:
        _relocate_owned_parts(package, part_name, state, idmap)
    _renumber_styles(package, state, idmap)
    _renumber_numbering(package, state, idmap)
    _renumber_notes(package, FOOTNOTES_PART, W_FOOTNOTE, idmap.footnotes, state.allocate_footnote_id)
    _renumber_notes(package, ENDNOTES_PART, W_ENDNOTE, idmap.endnotes, state.allocate_endnote_id)
    apply_part_renames(package, idmap.renames)
    _logger.debug(
        "%s: %d relationship ids, %d style ids, %d numbering ids, %d renamed parts",
        package.name or "<package>",
        len(idmap.relationships),
        len(idmap.styles),
        len(idmap.numbering),
        len(idmap.renames),
    )
    return idmap


def _renumber_relationships(package: Package, state: RenumberState, idmap: IdentifierMap) -> None:
    try:
        root = package.relationships_root(DOCUMENT_PART)
    except MissingPartError:
        _logger.warning("%s has no document relationships; nothing to renumber", package.name or "<package>")
        return

    for rel_el in iter_children(root, PR_RELATIONSHIP):
        rel = Relationship.from_element(rel_el)
        if not rel.is_external:
            new_target = _relocate_target(package, DOCUMENT_PART, rel, state, idmap)
            if new_target is not None:
                rel_el.set("Target", new_target)
        target = str(rel_el.get("Target", ""))

        surviving_id = state.rel_targets.get(target)
        if surviving_id is not None:
            # dropped when the manifests are merged; references follow the survivor
            idmap.relationships.setdefault(rel.rel_id, surviving_id)
            continue

        new_id = state.allocate_rel_id()
        state.rel_targets[target] = new_id
        idmap.relationships.setdefault(rel.rel_id, new_id)
        rel_el.set("Id", new_id)


def _relocation_kind(reltype: str, part_name: str) -> str | None:
    if reltype == RT.HEADER:
        return "header"
    if reltype == RT.FOOTER:
        return "footer"
    for kind, prefix in _RELOCATABLE_PREFIXES:
        if part_name.startswith(prefix):
            return kind
    return None


def _relocate_target(
    package: Package,
    owner_part: str,
    rel: Relationship,
    state: RenumberState,
    idmap: IdentifierMap,
) -> str | None:
    """Return the rewritten Target of ``rel`` when its part moves, else None.

    Relocation keeps a part's directory, so a Target stays relative to the same
    folder before and after its owner moves.
    """
    part_name = resolve_target(owner_part, rel.target)
    kind = _relocation_kind(rel.reltype, part_name)
    if kind is None:
        return None
    if not package.has_part(part_name):
        _logger.warning("%s: relationship %s points to missing part %s", package.name or "<package>", rel.rel_id, part_name)
        return None

    new_name = idmap.renames.get(part_name)
    if new_name is None:
        new_name = state.allocate_part_name(kind, part_name)
        idmap.renames[part_name] = new_name
        _relocate_owned_parts(package, part_name, state, idmap)
    return relative_target(owner_part, new_name, absolute=rel.target.startswith("/"))


def _relocate_owned_parts(package: Package, owner_part: str, state: RenumberState, idmap: IdentifierMap) -> None:
    if not package.has_part(rels_part_name(owner_part)):
        return
    root = package.relationships_root(owner_part)
    for rel_el in iter_children(root, PR_RELATIONSHIP):
        rel = Relationship.from_element(rel_el)
        if rel.is_external:
            continue
        new_target = _relocate_target(package, owner_part, rel, state, idmap)
        if new_target is not None:
            rel_el.set("Target", new_target)


def apply_part_renames(package: Package, renames: dict[str, str]) -> None:
    """Move renamed parts, and the manifests they own, to their new names.

    All old names are removed before any new name is written, so a rename chain
    inside one package (``header1`` -> ``header2``, ``header2`` -> ``header3``)
    cannot clobber a part that has not moved yet.
    """
    if not renames:
        return
    moves: list[tuple[str, str]] = []
    for old_name, new_name in renames.items():
        moves.append((old_name, new_name))
        old_rels = rels_part_name(old_name)
        if package.has_part(old_rels):
            moves.append((old_rels, rels_part_name(new_name)))

    payloads = [(new_name, package.blob(old_name)) for old_name, new_name in moves]
    for old_name, _ in moves:
        package.remove_part(old_name)
    for new_name, data in payloads:
        package.set_blob(new_name, data)
    _rename_overrides(package, renames)


def _rename_overrides(package: Package, renames: dict[str, str]) -> None:
    try:
        root = package.xml(CONTENT_TYPES_PART)
    except MissingPartError:
        _logger.warning("%s has no content-types manifest", package.name or "<package>")
        return
    by_part_name = {f"/{old}": f"/{new}" for old, new in renames.items()}
    for override in iter_children(root, CT_OVERRIDE):
        new_part_name = by_part_name.get(str(override.get("PartName", "")))
        if new_part_name is not None:
            override.set("PartName", new_part_name)


def _renumber_styles(package: Package, state: RenumberState, idmap: IdentifierMap) -> None:
    try:
        root = package.xml(STYLES_PART)
    except MissingPartError:
        _logger.warning("%s has no style catalog; style ids left as they are", package.name or "<package>")
        return

    unique_ids = sorted(set(_style_ids(root)), key=_style_sort_key)
    numeric_ids = [style_id for style_id in unique_ids if _NUMERIC_RE.match(style_id)]
    for old_id, new_id in zip(numeric_ids, state.allocate_numeric_style_ids(len(numeric_ids))):
        idmap.styles[old_id] = new_id
    for old_id in unique_ids:
        if old_id not in idmap.styles:
            idmap.styles[old_id] = state.allocate_synthetic_style_id()


def _renumber_numbering(package: Package, state: RenumberState, idmap: IdentifierMap) -> None:
    if not package.has_part(NUMBERING_PART):
        return
    root = package.xml(NUMBERING_PART)
    _assign(iter_children(root, W_NUMPICBULLET), W_NUMPICBULLETID, idmap.picture_bullets, state.allocate_pic_bullet_id)
    _assign(iter_children(root, W_ABSTRACTNUM), W_ABSTRACTNUMID, idmap.abstract_numbering, state.allocate_abstract_num_id)
    # numId 0 means "numbering removed" and must keep that meaning
    nums = (num for num in iter_children(root, W_NUM) if num.get(W_NUMID) != "0")
    _assign(nums, W_NUMID, idmap.numbering, state.allocate_num_id)


def _renumber_notes(
    package: Package,
    part_name: str,
    note_tag: str,
    table: dict[str, str],
    allocate: Callable[[], str],
) -> None:
    if not package.has_part(part_name):
        return
    root = package.xml(part_name)
    _assign((note for note in iter_children(root, note_tag) if is_ordinary_note(note)), W_ID, table, allocate)


def is_ordinary_note(note: Any) -> bool:
    """Separator and continuation notes carry a ``w:type``; ordinary notes do not."""
    return note.get(W_TYPE) in (None, "normal")


def _assign(elements: Any, attr: str, table: dict[str, str], allocate: Callable[[], str]) -> None:
    for element in elements:
        old_id = element.get(attr)
        if old_id is None or old_id in table:
            continue
        table[old_id] = allocate()


def _style_ids(styles_root: Any) -> list[str]:
    result: list[str] = []
    for style in iter_children(styles_root, W_STYLE):
        style_id = style.get(W_STYLE_ID)
        if style_id:
            result.append(str(style_id))
    return result


def _style_sort_key(style_id: str) -> tuple[int, int, str]:
    if _NUMERIC_RE.match(style_id):
        return (0, int(style_id), style_id)
    return (1, 0, style_id)


def _max_int_attr(elements: Any, attr: str, default: int = -1) -> int:
    high = default
    for element in elements:
        try:
            high = max(high, int(element.get(attr, "")))
        except ValueError:
            continue
    return high


def _max_note_id(package: Package, part_name: str, note_tag: str) -> int:
    if not package.has_part(part_name):
        return 0
    root = package.xml(part_name)
    return max(0, _max_int_attr(iter_children(root, note_tag), W_ID, default=0))


def _partname_template(part_name: str) -> str:
    escaped = part_name.replace("%", "%%")
    replaced, count = _PARTNAME_NUMBER_RE.subn("%d", escaped, count=1)
    if count > 0:
        return replaced
    root, ext = posixpath.splitext(escaped)
    return f"{root}%d{ext}"


__all__ = [
    "MERGED_CONTENT_PARTS",
    "IdentifierMap",
    "RenumberResult",
    "RenumberState",
    "apply_part_renames",
    "is_ordinary_note",
    "renumber_package",
    "renumber_packages",
]
