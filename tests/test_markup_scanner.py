from __future__ import annotations

from threatrelay.services.markup_scanner import MarkupFragment, tokenize


def test_tokenize_reassembles_source_exactly() -> None:
    source = "intro <div class='a'>x<br/>y &amp; z</div>\n<!-- note --><p>tail"
    tokens = tokenize(source)

    assert "".join(token.raw for token in tokens) == source
    assert tokens[0].kind == "text"
    assert tokens[0].raw == "intro "
    assert [token.kind for token in tokens[1:6]] == ["start", "text", "start", "text", "end"]
    assert tokens[4].raw == "y &amp; z"


def test_tokenize_reports_offsets_across_lines() -> None:
    source = "<div>\n  <span class='Value'>v</span>\n</div>"
    tokens = tokenize(source)
    span = next(token for token in tokens if token.is_start("span"))

    assert span.offset == source.index("<span")
    assert span.has_class("value")
    assert span.attr("class") == "Value"


def test_tokenize_lowercases_tags_and_keeps_attribute_text() -> None:
    tokens = tokenize('<A HREF="https://example.com/?a=1&amp;b=2&region=eu">link</A>')

    assert tokens[0].is_start("a")
    assert tokens[0].attr("href") == "https://example.com/?a=1&amp;b=2&region=eu"
    assert tokens[-1].is_end("a")


def test_tokenize_empty_source() -> None:
    assert tokenize("") == []


def test_close_index_honors_same_tag_nesting() -> None:
    fragment = MarkupFragment.parse(
        "<div id='outer'><div>inner</div><span>s</span></div><div>after</div>"
    )

    assert fragment.close_index(0) == 7
    assert fragment.close_index(1) == 3


def test_close_index_ignores_self_closing_tags() -> None:
    fragment = MarkupFragment.parse("<div class='a'><div/>x</div>")

    assert fragment.close_index(0) == 3


def test_close_index_returns_none_for_unclosed_element() -> None:
    fragment = MarkupFragment.parse("<div><p>text")

    assert fragment.close_index(0) is None


def test_next_significant_skips_blank_text_and_comments() -> None:
    fragment = MarkupFragment.parse("<span>A</span> <!-- c --> <b>B</b>")

    index = fragment.next_significant(2)
    assert index is not None
    assert fragment[index].is_start("b")


def test_iter_starts_filters_by_tag_and_class() -> None:
    fragment = MarkupFragment.parse(
        "<div class='card'>1</div><div class='card wide'>2</div><span class='card'>3</span>"
    )

    assert list(fragment.iter_starts("div", "card")) == [0, 3]
    assert fragment.first_start("span") == 6
    assert fragment.first_start("img") is None
    assert fragment.has_class_marker("WIDE")
    assert not fragment.has_class_marker("narrow")


def test_between_returns_inner_tokens() -> None:
    fragment = MarkupFragment.parse("<p>a<b>b</b></p>")

    assert [token.raw for token in fragment.between(0, 5)] == ["a", "<b>", "b", "</b>"]
    assert len(fragment) == 6
    assert fragment.source() == "<p>a<b>b</b></p>"


def test_attribute_quoting_styles() -> None:
    tokens = tokenize(
        "<img SRC=https://cdn.example.com/a.png?w=1&copy=2 alt='it&#39;s' data-x = \"a > b\" hidden>"
    )

    assert tokens[0].attrs == {
        "src": "https://cdn.example.com/a.png?w=1&copy=2",
        "alt": "it&#39;s",
        "data-x": "a > b",
        "hidden": "",
    }


def test_self_closing_tag_attributes() -> None:
    tokens = tokenize('<br class="gap"/><img src="x.png" />')

    assert tokens[0].attr("class") == "gap"
    assert tokens[1].attrs == {"src": "x.png"}
