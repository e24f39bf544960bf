from __future__ import annotations

import pytest

from metal_robot.markdown.document import Markdown
from metal_robot.markdown.document import Section
from metal_robot.markdown.helpers import NoSuchBlockError
from metal_robot.markdown.helpers import extract_annotated_block
from metal_robot.markdown.helpers import strip_html_comments
from metal_robot.markdown.helpers import to_list_item

RELEASE_NOTES = """# General
## metal-api v0.15.1
* Fix machine allocation (metal-stack/metal-api#42)
## metalctl v0.8.1
- Add `--yes` flag
# Merged Pull Requests
* Fix typo (metal-stack/docs#42) @alice"""


def test_parse_and_serialize_round_trip() -> None:
    assert str(Markdown.parse(RELEASE_NOTES)) == RELEASE_NOTES


def test_parse_builds_heading_tree() -> None:
    doc = Markdown.parse(RELEASE_NOTES)

    assert [s.heading for s in doc.sections] == ["General", "Merged Pull Requests"]
    general = doc.sections[0]
    assert [s.heading for s in general.sub_sections] == ["metal-api v0.15.1", "metalctl v0.8.1"]
    assert general.sub_sections[1].content_lines == ["- Add `--yes` flag"]


def test_heading_attaches_to_nearest_lower_level() -> None:
    doc = Markdown.parse("# A\n### C\n## B\ntext")

    a = doc.sections[0]
    assert [s.heading for s in a.sub_sections] == ["C", "B"]
    assert a.sub_sections[1].content_lines == ["text"]
    assert str(doc) == "# A\n### C\n## B\ntext"


def test_content_before_first_heading_is_level_zero() -> None:
    doc = Markdown.parse("intro\n# A\nx")

    assert doc.sections[0].level == 0
    assert doc.sections[0].content_lines == ["intro"]
    assert str(doc) == "intro\n# A\nx"


@pytest.mark.parametrize(
    "text",
    [
        "",
        "\n\n",
        "# A\n\ntext\n\n# B\nx\n",
        "leading\n\n## deep\n# shallow\n",
        "# A\n```NOTEWORTHY\n# not a heading in spirit\n```\n",
        RELEASE_NOTES + "\n\n",
    ],
)
def test_serialization_is_a_fixed_point(text: str) -> None:
    once = str(Markdown.parse(text))
    assert str(Markdown.parse(once)) == once


def test_find_section_by_heading_and_prefix() -> None:
    doc = Markdown.parse(RELEASE_NOTES)

    assert doc.find_section_by_heading(1, "General") is doc.sections[0]
    assert doc.find_section_by_heading(2, "General") is None
    found = doc.find_section_by_heading_prefix(2, "metalctl ")
    assert found is not None
    assert found.heading == "metalctl v0.8.1"


def test_prepend_and_append_sections() -> None:
    doc = Markdown.parse(RELEASE_NOTES)
    doc.prepend_section(Section(level=1, heading="Required Actions", content_lines=["* migrate"]))
    doc.sections[1].prepend_child(Section(level=2, heading="metal-images v0.1.0"))
    doc.sections[-1].append_content(["* Another (metal-stack/docs#43) @bob"])

    rendered = str(doc)

    assert rendered.startswith("# Required Actions\n* migrate\n# General\n## metal-images v0.1.0\n## metal-api")
    assert rendered.endswith("@alice\n* Another (metal-stack/docs#43) @bob")


def test_extract_annotated_block() -> None:
    body = "Some text\n```ACTIONS_REQUIRED\nRun the migration\nbefore upgrading\n```\nmore"

    assert extract_annotated_block("ACTIONS_REQUIRED", body) == "Run the migration\nbefore upgrading"
    with pytest.raises(NoSuchBlockError):
        extract_annotated_block("BREAKING_CHANGE", body)


def test_extract_annotated_block_requires_closing_fence() -> None:
    with pytest.raises(NoSuchBlockError):
        extract_annotated_block("NOTEWORTHY", "```NOTEWORTHY\nnever closed")


def test_to_list_item_indents_continuation_lines() -> None:
    assert to_list_item("first\nsecond\nthird") == ["* first", "  second", "  third"]


def test_strip_html_comments() -> None:
    assert strip_html_comments("a<!-- hidden -->b<!-- also\nhidden -->c") == "abc"
    assert strip_html_comments("unterminated <!-- comment") == "unterminated <!-- comment"
