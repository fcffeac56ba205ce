from __future__ import annotations

from docx_builders import RT_COMMENTS, RT_IMAGE, RT_STYLES, build_package, rels_xml
from docxcombine.package import CONTENT_TYPES_PART
from docxcombine.parts import copy_part_tree, copy_source_parts, prune_content_types
from docxcombine.renumber import IdentifierMap, RenumberState


def test_copy_source_parts_brings_relocated_and_reachable_parts():
    base = build_package(parts={"word/media/image1.png": b"base"})
    source = build_package(
        rels=[
            ("rId1", RT_STYLES, "styles.xml"),
            ("rId2", RT_IMAGE, "media/image2.png"),
            ("rId3", RT_COMMENTS, "comments.xml"),
        ],
        parts={
            "word/media/image2.png": b"relocated",
            "word/comments.xml": b"<w:comments/>",
            "word/_rels/comments.xml.rels": rels_xml([("rId1", RT_IMAGE, "media/note.png")]),
            "word/media/note.png": b"note",
            "word/media/image1.png": b"source-original",
        },
    )
    idmap = IdentifierMap(renames={"word/media/image1.png": "word/media/image2.png"})
    state = RenumberState()

    copied = copy_source_parts(base, source, idmap, state)

    assert base.blob("word/media/image2.png") == b"relocated"
    assert base.blob("word/comments.xml") == b"<w:comments/>"
    assert base.has_part("word/_rels/comments.xml.rels")
    assert base.blob("word/media/note.png") == b"note"
    # existing base parts are never overwritten
    assert base.blob("word/media/image1.png") == b"base"
    assert base.blob("word/styles.xml") != b""
    assert "word/styles.xml" not in copied
    assert set(copied) <= state.claimed_parts


def test_copy_part_tree_skips_missing_and_existing():
    base = build_package()
    source = build_package()
    assert copy_part_tree(base, source, "word/nothing.xml") == []
    assert copy_part_tree(base, source, "word/document.xml") == []


def test_prune_content_types_only_touches_added_overrides():
    base = build_package(parts={"word/header1.xml": b"<w:hdr/>", "word/header2.xml": b"<w:hdr/>"})
    base.remove_part("word/header1.xml")
    base.remove_part("word/header2.xml")

    pruned = prune_content_types(base, ["/word/header2.xml"])

    assert pruned == ["/word/header2.xml"]
    content_types = base.blob(CONTENT_TYPES_PART)
    assert b"/word/header2.xml" not in content_types
    # not added by the merge, so left for the base to own
    assert b"/word/header1.xml" in content_types
