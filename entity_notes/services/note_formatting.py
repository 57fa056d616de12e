"""Restricted markup for note content.

Only three constructs are recognized, in a single non-nesting pass:

    **bold**        -> <strong>bold</strong>
    *italic*        -> <em>italic</em>
    [text](target)  -> <a href="target" target="_blank" rel="noopener noreferrer">text</a>

Everything else (line breaks, headers, lists, code fences) stays plain text
and is never promoted to an HTML element. Keeping the grammar this small
keeps the injectable HTML surface small; do not extend it casually.
"""

import html
from dataclasses import dataclass
from enum import Enum

import nh3


# Final allowlist applied to rendered output
ALLOWED_TAGS = {"strong", "em", "a"}
ALLOWED_ATTRIBUTES = {"a": {"href", "target", "rel"}}

LINK_TARGET = "_blank"
LINK_REL = "noopener noreferrer"


class TokenKind(str, Enum):
    TEXT = "text"
    BOLD = "bold"
    ITALIC = "italic"
    LINK = "link"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    target: str | None = None


# =============================================================================
# Tokenizer
# =============================================================================

def _match_bold(content: str, start: int) -> tuple[Token, int] | None:
    if not content.startswith("**", start):
        return None
    end = content.find("**", start + 2)
    if end <= start + 2:
        return None
    return Token(TokenKind.BOLD, content[start + 2:end]), end + 2


def _match_italic(content: str, start: int) -> tuple[Token, int] | None:
    if content[start] != "*":
        return None
    end = content.find("*", start + 1)
    if end <= start + 1:
        return None
    # A closing '*' that opens '**' belongs to a bold marker
    if content.startswith("**", end):
        return None
    return Token(TokenKind.ITALIC, content[start + 1:end]), end + 1


def _match_link(content: str, start: int) -> tuple[Token, int] | None:
    if content[start] != "[":
        return None
    middle = content.find("](", start + 1)
    if middle <= start + 1:
        return None
    label = content[start + 1:middle]
    if "]" in label:
        return None
    end = content.find(")", middle + 2)
    if end <= middle + 2:
        return None
    return Token(TokenKind.LINK, label, content[middle + 2:end]), end + 1


def tokenize(content: str | None) -> list[Token]:
    """Split content into text, bold, italic and link tokens.

    Bold is tried before italic so '**' is never read as two italic markers.
    Unmatched marker characters are kept as literal text.
    """
    if not content:
        return []

    tokens: list[Token] = []
    buffer: list[str] = []
    pos = 0
    while pos < len(content):
        char = content[pos]
        match = None
        if char == "*":
            match = _match_bold(content, pos) or _match_italic(content, pos)
        elif char == "[":
            match = _match_link(content, pos)

        if match is None:
            buffer.append(char)
            pos += 1
            continue

        if buffer:
            tokens.append(Token(TokenKind.TEXT, "".join(buffer)))
            buffer = []
        token, pos = match
        tokens.append(token)

    if buffer:
        tokens.append(Token(TokenKind.TEXT, "".join(buffer)))
    return tokens


# =============================================================================
# Renderers
# =============================================================================

def sanitize_html(value: str) -> str:
    """Sanitize HTML to prevent XSS, allowing only the note markup elements."""
    return nh3.clean(
        value,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        link_rel=None,
    )


def render_html(content: str | None) -> str:
    """Render note content to sanitized HTML.

    All literal text is escaped; the only elements emitted are <strong>,
    <em> and <a>. Links open in a new browsing context without an opener
    reference.
    """
    parts: list[str] = []
    for token in tokenize(content):
        text = html.escape(token.text)
        if token.kind is TokenKind.BOLD:
            parts.append(f"<strong>{text}</strong>")
        elif token.kind is TokenKind.ITALIC:
            parts.append(f"<em>{text}</em>")
        elif token.kind is TokenKind.LINK:
            href = html.escape(token.target or "", quote=True)
            parts.append(
                f'<a href="{href}" target="{LINK_TARGET}" rel="{LINK_REL}">{text}</a>'
            )
        else:
            parts.append(text)
    if not parts:
        return ""
    return sanitize_html("".join(parts))


def _strip_once(content: str) -> str:
    parts: list[str] = []
    for token in tokenize(content):
        if token.kind is TokenKind.LINK:
            parts.append(f"{token.text} ({token.target})")
        else:
            parts.append(token.text)
    return "".join(parts)


def to_plain_text(content: str | None) -> str:
    """Strip markup for export: bold/italic yield their text, links 'text (url)'.

    Repeats until stable so the result never contains a recognizable marker
    and stripping twice equals stripping once. Each pass that changes the
    text makes it shorter, so this terminates.
    """
    if not content:
        return ""
    text = _strip_once(content)
    while True:
        stripped = _strip_once(text)
        if stripped == text:
            return text
        text = stripped
