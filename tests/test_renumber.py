from __future__ import annotations

import logging

from docx_builders import (
    RT_FONT_TABLE,
    RT_HEADER,
    RT_HYPERLINK,
    RT_IMAGE,
    RT_STYLES,
    build_package,
    header_xml,
    numbering_xml,
    paragraph,
    rels_xml,
    separator_footnotes,
    style_xml,
)
from docxcombine.package import CONTENT_TYPES_PART, DOCUMENT_PART
from docxcombine.renumber import RenumberState, renumber_packages


def _worked_example():
    a = build_package(
        "a.docx",
        body=paragraph("A", style="Heading"),
        styles=[style_xml("1"), style_xml("Heading")],
    )
    b = build_package(
        "b.docx",
        body=paragraph("B", style="Normal"),
        rels=[
            ("rId7", RT_IMAGE, "media/image1.png"),
            ("rId8", RT_HYPERLINK, "https://example.com", "External"),
            ("rId9", RT_STYLES, "styles.xml"),
        ],
        styles=[style_xml("1"), style_xml("Normal", default=True)],
        parts={"word/media/image1.png": b"png"},
    )
    return a, b


def test_worked_example_ids():
    a, b = _worked_example()
    result = renumber_packages([a, b])

    assert result.maps[0].is_empty()
    idmap = result.maps[1]
    # new ids continue after the base's rId2; a Target the base already has keeps the base id
    assert idmap.relationships == {"rId7": "rId3", "rId8": "rId4", "rId9": "rId1"}
    assert idmap.styles["1"] not in {"1", "Heading"}
    assert idmap.styles["1"] == "2"
    assert idmap.styles["Normal"] == "a0"

    b_rel_ids = [rel.rel_id for rel in b.relationships(DOCUMENT_PART)]
    assert b_rel_ids == ["rId3", "rId4", "rId9"]


def test_state_seeds_from_base():
    base = build_package(
        rels=[("rId1", RT_STYLES, "styles.xml"), ("rId12", RT_FONT_TABLE, "fontTable.xml"), ("rIdX", RT_IMAGE, "media/a.png")],
        styles=[style_xml("3"), style_xml("17"), style_xml("Body")],
    )
    state = RenumberState.from_base(base)
    assert state.next_rel_id == 13
    assert state.style_numeric_high == 17
    assert {"rId1", "rId12", "rIdX"} <= state.rel_ids
    assert state.allocate_numeric_style_ids(2) == ["18", "19"]
    assert "word/document.xml" in state.claimed_parts


def test_synthetic_style_ids_skip_existing():
    base = build_package(styles=[style_xml("a0"), style_xml("a1"), style_xml("Normal")])
    source = build_package(styles=[style_xml("Normal"), style_xml("Title")])
    result = renumber_packages([base, source])
    assert result.maps[1].styles == {"Normal": "a2", "Title": "a3"}


def test_headers_relocated_with_their_media():
    base = build_package(
        "base.docx",
        rels=[("rId1", RT_STYLES, "styles.xml"), ("rId2", RT_HEADER, "header1.xml")],
        parts={
            "word/header1.xml": header_xml(paragraph("base header")),
            "word/media/image1.png": b"base-image",
        },
    )
    source = build_package(
        "source.docx",
        rels=[("rId1", RT_STYLES, "styles.xml"), ("rId2", RT_HEADER, "header1.xml"), ("rId3", RT_HEADER, "header2.xml")],
        parts={
            "word/header1.xml": header_xml(paragraph("source header one")),
            "word/_rels/header1.xml.rels": rels_xml([("rId1", RT_IMAGE, "media/image1.png")]),
            "word/header2.xml": header_xml(paragraph("source header two")),
            "word/media/image1.png": b"source-image",
        },
    )

    idmap = renumber_packages([base, source]).maps[1]

    assert idmap.renames == {
        "word/header1.xml": "word/header2.xml",
        "word/media/image1.png": "word/media/image2.png",
        "word/header2.xml": "word/header3.xml",
    }
    assert b"source header one" in source.blob("word/header2.xml")
    assert b"source header two" in source.blob("word/header3.xml")
    assert source.blob("word/media/image2.png") == b"source-image"
    assert not source.has_part("word/header1.xml")
    assert not source.has_part("word/_rels/header1.xml.rels")
    assert [r.target for r in source.relationships("word/header2.xml")] == ["media/image2.png"]
    assert [r.target for r in source.relationships(DOCUMENT_PART)] == ["styles.xml", "header2.xml", "header3.xml"]

    content_types = source.blob(CONTENT_TYPES_PART)
    assert b'PartName="/word/header2.xml"' in content_types
    assert b'PartName="/word/header3.xml"' in content_types
    assert b'PartName="/word/header1.xml"' not in content_types


def test_numbering_and_note_namespaces():
    base = build_package(
        parts={
            "word/numbering.xml": numbering_xml(
                '<w:abstractNum w:abstractNumId="0"/><w:abstractNum w:abstractNumId="4"/>'
                '<w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num>'
            ),
            "word/footnotes.xml": separator_footnotes('<w:footnote w:id="1"><w:p/></w:footnote>'),
        }
    )
    source = build_package(
        parts={
            "word/numbering.xml": numbering_xml(
                '<w:numPicBullet w:numPicBulletId="0"/>'
                '<w:abstractNum w:abstractNumId="0"/>'
                '<w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num>'
                '<w:num w:numId="2"><w:abstractNumId w:val="0"/></w:num>'
            ),
            "word/footnotes.xml": separator_footnotes(
                '<w:footnote w:id="1"><w:p/></w:footnote><w:footnote w:id="2"><w:p/></w:footnote>'
            ),
        }
    )

    idmap = renumber_packages([base, source]).maps[1]
    assert idmap.abstract_numbering == {"0": "5"}
    assert idmap.numbering == {"1": "2", "2": "3"}
    assert idmap.picture_bullets == {"0": "0"}
    # separator and continuation notes keep their reserved ids
    assert idmap.footnotes == {"1": "2", "2": "3"}


def test_ids_disjoint_across_three_packages():
    packages = [
        build_package(
            f"doc{i}.docx",
            styles=[style_xml("1"), style_xml("Normal")],
            rels=[("rId1", RT_IMAGE, "media/image1.png")],
            parts={"word/media/image1.png": f"image-{i}".encode()},
        )
        for i in range(3)
    ]
    maps = renumber_packages(packages).maps
    assert maps[1].styles["1"] != maps[2].styles["1"]
    assert maps[1].styles["Normal"] != maps[2].styles["Normal"]
    assert maps[1].renames["word/media/image1.png"] == "word/media/image2.png"
    assert maps[2].renames["word/media/image1.png"] == "word/media/image3.png"
    assert maps[1].relationships["rId1"] != maps[2].relationships["rId1"]


def test_missing_manifest_and_catalog_only_warn(caplog):
    base = build_package("base.docx")
    source = build_package("bare.docx")
    source.remove_part("word/_rels/document.xml.rels")
    source.remove_part("word/styles.xml")

    with caplog.at_level(logging.WARNING):
        idmap = renumber_packages([base, source]).maps[1]

    assert idmap.relationships == {}
    assert idmap.styles == {}
    assert "bare.docx" in caplog.text
