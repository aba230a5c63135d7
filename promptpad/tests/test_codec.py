"""Tests for the prompt header codec."""

import frontmatter
import pytest

from promptpad.launcher import codec
from promptpad.launcher.errors import DocumentParseError, ValidationError
from promptpad.launcher.models import MetadataHeader


def test_parse_full_header():
    """Test parsing every known header key."""
    text = (
        "---\n"
        "name: Code Review\n"
        "description: Reviews a diff\n"
        "tags: [dev, review]\n"
        'created: "2025-01-15T10:30:00Z"\n'
        "---\n"
        "\n"
        "Please review this code.\n"
    )
    header, body = codec.parse(text)

    assert header.name == "Code Review"
    assert header.description == "Reviews a diff"
    assert header.tags == ["dev", "review"]
    assert header.created == "2025-01-15T10:30:00Z"
    assert body == "Please review this code."


def test_parse_escaped_quotes():
    """Escaped double quotes inside a quoted value become literal quotes."""
    header, _ = codec.parse('---\nname: "Has \\"quotes\\" inside"\n---\n\nbody')
    assert header.name == 'Has "quotes" inside'


def test_parse_without_header():
    header, body = codec.parse("  just a body\nwith lines  \n")
    assert header == MetadataHeader()
    assert body == "just a body\nwith lines"


def test_parse_unterminated_header_is_body():
    text = "---\nname: Dangling\nno closing line"
    header, body = codec.parse(text)
    assert header.name == ""
    assert body == text


def test_parse_body_keeps_later_delimiters():
    header, body = codec.parse("---\nname: A\n---\n\nfirst\n---\nsecond")
    assert header.name == "A"
    assert body == "first\n---\nsecond"


def test_parse_ignores_unknown_keys_and_blank_lines():
    header, body = codec.parse("---\nname: A\n\nauthor: someone\n---\nbody")
    assert header.name == "A"
    assert body == "body"


def test_parse_single_quoted_value():
    header, _ = codec.parse("---\nname: 'Single: quoted'\n---\n")
    assert header.name == "Single: quoted"


def test_parse_value_with_colons():
    """Only the first colon separates key from value."""
    header, _ = codec.parse("---\ncreated: 2025-01-15T10:30:00Z\n---\n")
    assert header.created == "2025-01-15T10:30:00Z"


def test_parse_quoted_tags_with_commas():
    header, _ = codec.parse('---\ntags: ["a, b", c, \'d\']\n---\n')
    assert header.tags == ["a, b", "c", "d"]


def test_parse_empty_tag_list():
    header, _ = codec.parse("---\nname: A\ntags: []\n---\n")
    assert header.tags == []


def test_parse_unbracketed_tags_ignored():
    header, _ = codec.parse("---\nname: A\ntags: dev, review\n---\n")
    assert header.tags == []


def test_parse_malformed_header_line():
    with pytest.raises(DocumentParseError):
        codec.parse("---\nname: A\nthis line has no separator\n---\nbody")


def test_parse_bytes():
    header, body = codec.parse("---\nname: Café\n---\n\nbody".encode("utf-8"))
    assert header.name == "Café"
    assert body == "body"


def test_parse_invalid_utf8():
    with pytest.raises(DocumentParseError):
        codec.parse(b"---\nname: \xff\xfe\n---\n")


def test_parse_crlf_line_endings():
    header, body = codec.parse("---\r\nname: Windows\r\n---\r\n\r\nbody")
    assert header.name == "Windows"
    assert body == "body"


def test_stringify_layout():
    """Fields appear in fixed order, closing delimiter then a blank line."""
    header = MetadataHeader(
        name="Plain",
        description="A description",
        tags=["dev", "review"],
        created="2025-01-15T10:30:00Z",
    )
    text = codec.stringify(header, "Body text")

    assert text.splitlines() == [
        "---",
        "name: Plain",
        "description: A description",
        "tags: [dev, review]",
        'created: "2025-01-15T10:30:00Z"',
        "---",
        "",
        "Body text",
    ]


def test_stringify_omits_empty_fields():
    text = codec.stringify(MetadataHeader(name="Only name", tags=[]), "body")
    assert "description" not in text
    assert "tags" not in text
    assert "created" not in text


def test_stringify_quotes_special_characters():
    header = MetadataHeader(name='Say "hi": now', tags=["c#", "plain"])
    text = codec.stringify(header, "body")

    assert 'name: "Say \\"hi\\": now"' in text
    assert 'tags: ["c#", plain]' in text


def test_stringify_rejects_multiline_values():
    with pytest.raises(ValidationError):
        codec.stringify(MetadataHeader(name="two\nlines"), "body")


def test_round_trip():
    """parse(stringify(h, b)) returns h and b for populated fields."""
    header = MetadataHeader(
        name='Tricky # "name": here',
        description="It's fine",
        tags=["a, b", "[x]", "plain", "it's"],
        created="2025-01-15T10:30:00Z",
    )
    body = "Line one\n\n---\nLine two"

    parsed_header, parsed_body = codec.parse(codec.stringify(header, body))

    assert parsed_header == header
    assert parsed_body == body


def test_round_trip_leading_whitespace_value():
    header = MetadataHeader(name="  padded  ")
    parsed, _ = codec.parse(codec.stringify(header, "b"))
    assert parsed.name == "  padded  "


def test_split_tag_list():
    assert codec.split_tag_list('a, "b, c" , d') == ["a", "b, c", "d"]
    assert codec.split_tag_list(" , ") == []
    assert codec.split_tag_list('"say \\"x\\"", y') == ['say "x"', "y"]
    assert codec.split_tag_list('"ends\\\\", y') == ["ends\\", "y"]


def test_unquote_backslash_escapes():
    assert codec.unquote('"a\\\\b"') == "a\\b"
    assert codec.unquote('"C:\\path"') == "C:\\path"
    assert codec.unquote("'a\\\\b'") == "a\\\\b"


def test_handler_works_through_frontmatter():
    post = frontmatter.loads("---\nname: Direct\ntags: [a]\n---\n\nbody", handler=codec.HANDLER)
    assert post["name"] == "Direct"
    assert post["tags"] == ["a"]
    assert post.content == "body"


LINE_LIKE = ["\x0b", "\x0c", "\x1c", "\x1d", "\x1e", "\x85", "\u2028", "\u2029"]


@pytest.mark.parametrize("value", [
    *(f"a{sep}b" for sep in LINE_LIKE),
    *(f"{sep}edge{sep}" for sep in LINE_LIKE),
    "back\\slash",
    "trailing\\",
    "\\",
    '\\"',
    '"',
    "'",
    '"quoted"',
    "'single'",
    "a: b # c",
    "[not, a, list]",
    "  ",
    "---",
    "tab\tinside",
    "ünïcødé ✓",
])
def test_round_trip_scalar_values(value):
    header = MetadataHeader(name=value, description=value, created=value)
    parsed, body = codec.parse(codec.stringify(header, "body"))
    assert parsed == header
    assert body == "body"


@pytest.mark.parametrize("tags", [
    ["#x\\", "y"],
    ["x\\", "y"],
    ["\\", "\\\\"],
    ['a\\"', "b"],
    ['"', "'", ","],
    ["a, b", "[c]", "d]"],
    [" ", "  padded  "],
    [f"t{sep}g" for sep in LINE_LIKE],
    ["single"],
])
def test_round_trip_tags(tags):
    header = MetadataHeader(name="Tagged", tags=tags)
    parsed, _ = codec.parse(codec.stringify(header, "body"))
    assert parsed.tags == tags


@pytest.mark.parametrize("body", [
    "plain",
    "multi\nline\n\nbody",
    "---\nlooks like a header\n---",
    "name: not a header",
    "a\u2028b\x0cc",
])
def test_round_trip_bodies(body):
    header = MetadataHeader(name="Body test")
    parsed, parsed_body = codec.parse(codec.stringify(header, body))
    assert parsed == header
    assert parsed_body == body
