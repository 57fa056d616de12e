"""Tests for note markup rendering and plain-text stripping."""

import pytest

from entity_notes.services.note_formatting import (
    TokenKind,
    render_html,
    to_plain_text,
    tokenize,
)


# =============================================================================
# Tokenizer
# =============================================================================

def test_tokenize_recognizes_three_constructs():
    tokens = tokenize("a **b** *c* [d](http://e)")
    kinds = [t.kind for t in tokens]
    assert kinds == [
        TokenKind.TEXT,
        TokenKind.BOLD,
        TokenKind.TEXT,
        TokenKind.ITALIC,
        TokenKind.TEXT,
        TokenKind.LINK,
    ]
    assert tokens[1].text == "b"
    assert tokens[3].text == "c"
    assert tokens[5].text == "d"
    assert tokens[5].target == "http://e"


def test_unmatched_markers_stay_literal():
    tokens = tokenize("**unclosed and [x](")
    assert all(t.kind is TokenKind.TEXT for t in tokens)
    assert "".join(t.text for t in tokens) == "**unclosed and [x]("


def test_empty_markers_are_not_constructs():
    assert all(t.kind is TokenKind.TEXT for t in tokenize("[](x) [a]() ****"))


def test_tokenize_empty():
    assert tokenize("") == []
    assert tokenize(None) == []


# =============================================================================
# HTML
# =============================================================================

def test_render_bold_and_italic():
    html = render_html("**bold** and *it*")
    assert "<strong>bold</strong>" in html
    assert "<em>it</em>" in html


def test_render_exactly_one_of_each_construct():
    html = render_html("**bold** and *italic* and [link](http://x)")
    assert html.count("<strong>") == 1
    assert html.count("<em>") == 1
    assert html.count("<a ") == 1
    assert html.count("<") == 6  # three opening and three closing tags


def test_render_link_opens_new_context_without_opener():
    html = render_html("[docs](http://x)")
    assert html.count("<a ") == 1
    assert 'href="http://x"' in html
    assert 'target="_blank"' in html
    assert "noopener" in html
    assert "noreferrer" in html
    assert ">docs</a>" in html


@pytest.mark.parametrize(
    "content",
    [
        "<script>alert(1)</script>",
        "<img src=x onerror=alert(1)>",
        '**<iframe src="evil">**',
        "[<b>x</b>](http://x)",
    ],
)
def test_render_never_emits_raw_input_html(content):
    html = render_html(content)
    for tag in ("<script", "<img", "<iframe", "<b>"):
        assert tag not in html


def test_render_drops_javascript_urls():
    html = render_html("[click](javascript:alert(1))")
    assert "javascript:" not in html


def test_render_does_not_promote_other_markdown():
    html = render_html("# Title\n- item\n```code```")
    for tag in ("<h1", "<ul", "<li", "<code", "<pre", "<p>", "<br"):
        assert tag not in html
    assert "# Title" in html


def test_render_empty():
    assert render_html("") == ""
    assert render_html(None) == ""


# =============================================================================
# Plain text
# =============================================================================

def test_plain_text_strips_markup():
    assert to_plain_text("**bold** *it* [docs](http://x)") == "bold it docs (http://x)"


def test_plain_text_status_change():
    assert (
        to_plain_text("Status changed from **open** to **resolved**")
        == "Status changed from open to resolved"
    )


@pytest.mark.parametrize(
    "content",
    [
        "plain",
        "**bold**",
        "****x****",
        "**[a](b)**",
        "*[**x**](y)*",
        "[**a**](*b*)",
        "**unclosed *mixed [x](y",
    ],
)
def test_plain_text_is_idempotent_and_marker_free(content):
    once = to_plain_text(content)
    assert to_plain_text(once) == once
    assert all(t.kind is TokenKind.TEXT for t in tokenize(once))


def test_plain_text_empty():
    assert to_plain_text("") == ""
    assert to_plain_text(None) == ""
