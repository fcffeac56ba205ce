"""Named tags, attributes and small element accessors shared by every merge phase."""

from __future__ import annotations

from collections.abc import Iterator

from docx.opc.constants import NAMESPACE
from docx.opc.oxml import serialize_part_xml
from docx.oxml import OxmlElement, parse_xml
from docx.oxml.ns import qn
from lxml import etree

from .errors import MalformedXmlError

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
W14_NS = "http://schemas.microsoft.com/office/word/2010/wordml"
O_NS = "urn:schemas-microsoft-com:office:office"
EP_NS = "http://schemas.openxmlformats.org/officeDocument/2006/extended-properties"
PR_NS = NAMESPACE.OPC_RELATIONSHIPS
CT_NS = NAMESPACE.OPC_CONTENT_TYPES

NS = {"w": W_NS, "r": R_NS, "w14": W14_NS, "pr": PR_NS, "ct": CT_NS, "ep": EP_NS}

# body
W_BODY = qn("w:body")
W_P = qn("w:p")
W_PPR = qn("w:pPr")
W_RPR = qn("w:rPr")
W_R = qn("w:r")
W_BR = qn("w:br")
W_TR = qn("w:tr")
W_SECTPR = qn("w:sectPr")
W_TYPE = qn("w:type")
W_VAL = qn("w:val")
W_ID = qn("w:id")

# styles
W_STYLES = qn("w:styles")
W_STYLE = qn("w:style")
W_STYLE_ID = qn("w:styleId")
W_DEFAULT = qn("w:default")
W_BASEDON = qn("w:basedOn")
W_NEXT = qn("w:next")
W_LINK = qn("w:link")
W_PSTYLE = qn("w:pStyle")
W_RSTYLE = qn("w:rStyle")
W_TBLSTYLE = qn("w:tblStyle")
W_STYLELINK = qn("w:styleLink")
W_NUMSTYLELINK = qn("w:numStyleLink")

# numbering; w:numId and w:abstractNumId name both an element and an attribute
W_NUMBERING = qn("w:numbering")
W_NUM = qn("w:num")
W_NUMID = qn("w:numId")
W_ABSTRACTNUM = qn("w:abstractNum")
W_ABSTRACTNUMID = qn("w:abstractNumId")
W_NUMPICBULLET = qn("w:numPicBullet")
W_NUM_ID_MAC_AT_CLEANUP = qn("w:numIdMacAtCleanup")
W_NUMPICBULLETID = qn("w:numPicBulletId")
W_LVLPICBULLETID = qn("w:lvlPicBulletId")

# fonts
W_FONTS = qn("w:fonts")
W_FONT = qn("w:font")
W_NAME = qn("w:name")

# notes
W_FOOTNOTES = qn("w:footnotes")
W_FOOTNOTE = qn("w:footnote")
W_ENDNOTES = qn("w:endnotes")
W_ENDNOTE = qn("w:endnote")
W_FOOTNOTE_REFERENCE = qn("w:footnoteReference")
W_ENDNOTE_REFERENCE = qn("w:endnoteReference")

# per-edit-session markers
W_RSID_R = qn("w:rsidR")
W_RSID_R_DEFAULT = qn("w:rsidRDefault")
W_RSID_RPR = qn("w:rsidRPr")
W_RSID_P = qn("w:rsidP")
W_RSID_DEL = qn("w:rsidDel")
W_RSID_TR = qn("w:rsidTr")
W14_TEXT_ID = f"{{{W14_NS}}}textId"

O_RELID = f"{{{O_NS}}}relid"

# package manifests
PR_RELATIONSHIPS = f"{{{PR_NS}}}Relationships"
PR_RELATIONSHIP = f"{{{PR_NS}}}Relationship"
CT_TYPES = f"{{{CT_NS}}}Types"
CT_DEFAULT = f"{{{CT_NS}}}Default"
CT_OVERRIDE = f"{{{CT_NS}}}Override"


def parse_part(blob: bytes, *, part_name: str, package_name: str = "") -> etree._Element:
    try:
        root = parse_xml(blob)
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise MalformedXmlError(part_name, package_name, str(exc)) from exc
    if root is None:
        raise MalformedXmlError(part_name, package_name, "empty document")
    return root


def serialize_part(root: etree._Element) -> bytes:
    return serialize_part_xml(root)


def local_name(tag: str) -> str:
    if "}" not in tag:
        return tag
    return tag.rsplit("}", 1)[1]


def iter_children(parent: etree._Element, tag: str) -> Iterator[etree._Element]:
    """Yield direct children of ``parent`` with the given Clark-notation tag."""
    for child in parent.iterchildren():
        if child.tag == tag:
            yield child


def first_child(parent: etree._Element, tag: str) -> etree._Element | None:
    return next(iter_children(parent, tag), None)


def get_or_add(parent: etree._Element, tag: str) -> etree._Element:
    child = first_child(parent, tag)
    if child is None:
        child = new_element(tag)
        parent.append(child)
    return child


def new_element(tag: str) -> etree._Element:
    if tag.startswith(f"{{{W_NS}}}"):
        return OxmlElement(f"w:{local_name(tag)}")
    if tag.startswith("{"):
        return etree.Element(tag, nsmap={None: tag[1:].split("}", 1)[0]})
    return etree.Element(tag)


def element_val(parent: etree._Element, tag: str) -> str | None:
    """Return ``w:val`` of the first ``tag`` child, e.g. the target of ``w:basedOn``."""
    child = first_child(parent, tag)
    if child is None:
        return None
    return child.get(W_VAL)


__all__ = [
    "NS",
    "element_val",
    "first_child",
    "get_or_add",
    "iter_children",
    "local_name",
    "new_element",
    "parse_part",
    "serialize_part",
]
