import pytest
from hypothesis import given, strategies as st

from modsign.manifest.properties import dump_properties, escape_key, escape_value, parse_properties


def test_escape_specials():
    assert escape_key("a=b:c\\d") == "a\\=b\\:c\\\\d"
    assert escape_value("abc==") == "abc\\=\\="
    assert escape_key("#x!y") == "\\#x\\!y"
    assert escape_value("line1\nline2\r\t\f") == "line1\\nline2\\r\\t\\f"


def test_space_handling():
    assert escape_key("my file.txt") == "my\\ file.txt"
    assert escape_value(" leading and inner") == "\\ leading and inner"


def test_dump_has_no_header_and_keeps_order():
    text = dump_properties([("/b.txt", "QUJD"), ("/a.txt", "REVG==")])
    assert text == "/b.txt=QUJD\n/a.txt=REVG\\=\\=\n"


def test_parse_java_style_input():
    text = (
        "#Mon Jan 01 00:00:00 UTC 2024\n"
        "! another comment\n"
        "\n"
        "/a.txt=abc\\=\n"
        "/dir/b\\ c.txt : xyz\n"
        "/multi=one\\\n"
        "    two\n"
        "/u=\\u00e9t\\u00e9\n"
    )
    assert parse_properties(text) == {
        "/a.txt": "abc=",
        "/dir/b c.txt": "xyz",
        "/multi": "onetwo",
        "/u": "été",
    }


@pytest.mark.parametrize("text", ["/k=\\u00", "/k=\\u", "/k=\\uzzzz"])
def test_parse_rejects_malformed_unicode_escape(text):
    with pytest.raises(ValueError):
        parse_properties(text)


text_no_surrogates = st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=30)


@given(st.dictionaries(text_no_surrogates, text_no_surrogates, max_size=8))
def test_dump_parse_recovers_items(items):
    text = dump_properties(items.items())
    assert text.count("\n") == len(items)
    assert parse_properties(text) == items
