"""In-memory OOXML package: an ordered mapping of part names to part content."""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from docx.opc.constants import RELATIONSHIP_TARGET_MODE as RTM
from lxml import etree

from .errors import CombineError, MissingPartError
from .oxml import PR_RELATIONSHIP, PR_RELATIONSHIPS, iter_children, new_element, parse_part, serialize_part

CONTENT_TYPES_PART = "[Content_Types].xml"
DOCUMENT_PART = "word/document.xml"
DOCUMENT_RELS_PART = "word/_rels/document.xml.rels"
STYLES_PART = "word/styles.xml"
FONT_TABLE_PART = "word/fontTable.xml"
NUMBERING_PART = "word/numbering.xml"
FOOTNOTES_PART = "word/footnotes.xml"
ENDNOTES_PART = "word/endnotes.xml"
CORE_PROPS_PART = "docProps/core.xml"
APP_PROPS_PART = "docProps/app.xml"

COMPRESSION = zipfile.ZIP_DEFLATED
COMPRESS_LEVEL = 4

XML_PART_SUFFIXES = (".xml", ".rels")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Relationship:
    rel_id: str
    reltype: str
    target: str
    target_mode: str | None = None

    @property
    def is_external(self) -> bool:
        return self.target_mode == RTM.EXTERNAL

    @classmethod
    def from_element(cls, element: etree._Element) -> Relationship:
        return cls(
            rel_id=str(element.get("Id", "")),
            reltype=str(element.get("Type", "")),
            target=str(element.get("Target", "")),
            target_mode=element.get("TargetMode"),
        )


def rels_part_name(part_name: str) -> str:
    """``word/header1.xml`` -> ``word/_rels/header1.xml.rels``."""
    directory, filename = posixpath.split(part_name)
    return posixpath.join(directory, "_rels", f"{filename}.rels")


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship Target written in ``source_part``'s manifest to a part name."""
    if target.startswith("/"):
        return posixpath.normpath(target[1:])
    return posixpath.normpath(posixpath.join(posixpath.dirname(source_part), target))


def relative_target(source_part: str, part_name: str, *, absolute: bool = False) -> str:
    if absolute:
        return "/" + part_name
    return posixpath.relpath(part_name, posixpath.dirname(source_part) or ".")


def new_relationships_root() -> etree._Element:
    return new_element(PR_RELATIONSHIPS)


class Package:
    """A word-processing package held fully in memory.

    Parts are kept as raw bytes until first requested as XML; parsed trees are
    cached and written back on :meth:`blob` / :meth:`to_bytes`, so callers mutate
    the tree returned by :meth:`xml` in place.
    """

    def __init__(self, parts: Mapping[str, bytes] | None = None, *, name: str = "") -> None:
        self.name = name
        self._blobs: dict[str, bytes] = dict(parts or {})
        self._trees: dict[str, etree._Element] = {}

    @classmethod
    def from_bytes(cls, data: bytes, *, name: str = "") -> Package:
        return cls.open(io.BytesIO(data), name=name)

    @classmethod
    def open(cls, source: str | Path | BinaryIO | bytes, *, name: str = "") -> Package:
        if isinstance(source, bytes):
            source = io.BytesIO(source)
        if not name and isinstance(source, (str, Path)):
            name = Path(source).name
        try:
            with zipfile.ZipFile(source) as z:
                parts = {info.filename: z.read(info) for info in z.infolist() if not info.is_dir()}
        except zipfile.BadZipFile as exc:
            raise CombineError(f"Not a readable package{' ' + name if name else ''}: {exc}") from exc
        _logger.debug("Loaded %s: %d parts", name or "<package>", len(parts))
        return cls(parts, name=name)

    def __repr__(self) -> str:
        return f"Package(name={self.name!r}, parts={len(self._blobs)})"

    def __contains__(self, part_name: object) -> bool:
        return part_name in self._blobs

    def part_names(self) -> list[str]:
        return list(self._blobs)

    def iter_part_names(self, prefix: str = "") -> Iterator[str]:
        for part_name in list(self._blobs):
            if part_name.startswith(prefix):
                yield part_name

    def has_part(self, part_name: str) -> bool:
        return part_name in self._blobs

    def blob(self, part_name: str) -> bytes:
        if part_name not in self._blobs:
            raise MissingPartError(part_name, self.name)
        tree = self._trees.get(part_name)
        if tree is not None:
            return serialize_part(tree)
        return self._blobs[part_name]

    def xml(self, part_name: str) -> etree._Element:
        tree = self._trees.get(part_name)
        if tree is not None:
            return tree
        if part_name not in self._blobs:
            raise MissingPartError(part_name, self.name)
        tree = parse_part(self._blobs[part_name], part_name=part_name, package_name=self.name)
        self._trees[part_name] = tree
        return tree

    def check_xml_parts(self) -> int:
        """Parse every ``.xml``/``.rels`` part; raises :class:`MalformedXmlError` on the first bad one.

        Unparsed parts stay as raw bytes, so parts that are only copied keep their
        original serialization.
        """
        checked = 0
        for part_name, data in self._blobs.items():
            if part_name in self._trees or not part_name.endswith(XML_PART_SUFFIXES):
                continue
            parse_part(data, part_name=part_name, package_name=self.name)
            checked += 1
        return checked

    def set_blob(self, part_name: str, data: bytes) -> None:
        self._trees.pop(part_name, None)
        self._blobs[part_name] = data

    def set_xml(self, part_name: str, root: etree._Element) -> None:
        self._blobs.setdefault(part_name, b"")
        self._trees[part_name] = root

    def remove_part(self, part_name: str) -> None:
        if part_name not in self._blobs:
            raise MissingPartError(part_name, self.name)
        del self._blobs[part_name]
        self._trees.pop(part_name, None)

    def relationships_root(self, part_name: str, *, create: bool = False) -> etree._Element:
        """Return the ``Relationships`` element owned by ``part_name``."""
        rels_name = rels_part_name(part_name)
        if not self.has_part(rels_name) and create:
            self.set_xml(rels_name, new_relationships_root())
        return self.xml(rels_name)

    def relationships(self, part_name: str) -> list[Relationship]:
        root = self.relationships_root(part_name)
        return [Relationship.from_element(el) for el in iter_children(root, PR_RELATIONSHIP)]

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        names = self.part_names()
        # [Content_Types].xml goes first, consumers sniff for it
        ordered = sorted(names, key=lambda n: n != CONTENT_TYPES_PART)
        with zipfile.ZipFile(buf, "w", compression=COMPRESSION, compresslevel=COMPRESS_LEVEL) as z:
            for part_name in ordered:
                z.writestr(part_name, self.blob(part_name))
        return buf.getvalue()

    def save(self, path: str | Path) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(self.to_bytes())
        return out


__all__ = [
    "APP_PROPS_PART",
    "CONTENT_TYPES_PART",
    "CORE_PROPS_PART",
    "DOCUMENT_PART",
    "DOCUMENT_RELS_PART",
    "ENDNOTES_PART",
    "FONT_TABLE_PART",
    "FOOTNOTES_PART",
    "NUMBERING_PART",
    "STYLES_PART",
    "XML_PART_SUFFIXES",
    "Package",
    "Relationship",
    "new_relationships_root",
    "relative_target",
    "rels_part_name",
    "resolve_target",
]
