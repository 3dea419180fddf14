"""Markdown cleanup for scraped and generated answers.

Scraped pages leave reference numbers and ``[n]`` citation markers behind,
and model output is inconsistent about bullets, emphasis and blank lines.
``normalize`` strips the noise and re-serializes the text through mdformat so
every answer reaches the client in one house style.
"""
from __future__ import annotations

import re

import mdformat
import mdformat.plugins
from loguru import logger
from markdown_it import MarkdownIt
from mdformat.renderer import RenderContext, RenderTreeNode
from mdit_py_plugins.dollarmath import dollarmath_plugin

_REFERENCE_LINE = re.compile(r"^[ \t]*\d+[ \t]*(?:\n|\Z)", re.MULTILINE)
_CITATION_MARKER = re.compile(r"[ \t]*\[\d+\]")
_TRAILING_SPACE = re.compile(r"[ \t]+\n")
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

_STYLE_EXTENSION = "chainchat_style"
_EXTENSIONS = ("gfm", "tables", _STYLE_EXTENSION)
_OPTIONS = {"wrap": "keep", "number": False, "end_of_line": "lf"}


def _render_children(node: RenderTreeNode, context: RenderContext) -> str:
    return "".join(child.render(context) for child in node.children)


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def _underscore_safe(node: RenderTreeNode) -> bool:
    # "_" does not open or close emphasis inside a word.
    prev_node = node.previous_sibling
    if prev_node is not None and prev_node.type == "text" and prev_node.content:
        if _is_word_char(prev_node.content[-1]):
            return False
    next_node = node.next_sibling
    if next_node is not None and next_node.type == "text" and next_node.content:
        if _is_word_char(next_node.content[0]):
            return False
    return True


def _render_em(node: RenderTreeNode, context: RenderContext) -> str:
    indicator = "_" if _underscore_safe(node) else "*"
    return indicator + _render_children(node, context) + indicator


def _render_strong(node: RenderTreeNode, context: RenderContext) -> str:
    return "**" + _render_children(node, context) + "**"


def _render_math_inline(node: RenderTreeNode, context: RenderContext) -> str:
    return "$" + node.content + "$"


def _render_math_inline_double(node: RenderTreeNode, context: RenderContext) -> str:
    return "$$" + node.content + "$$"


def _render_math_block(node: RenderTreeNode, context: RenderContext) -> str:
    return "$$\n" + node.content.strip("\n") + "\n$$"


class ChatStyleExtension:
    """mdformat parser extension: LaTeX passthrough and emphasis markers."""

    CHANGES_AST = False
    POSTPROCESSORS: dict = {}
    RENDERERS = {
        "em": _render_em,
        "strong": _render_strong,
        "math_inline": _render_math_inline,
        "math_inline_double": _render_math_inline_double,
        "math_block": _render_math_block,
    }

    @staticmethod
    def update_mdit(mdit: MarkdownIt) -> None:
        # No spaces inside the delimiters, so "$5 and $10" stays prose.
        mdit.use(
            dollarmath_plugin,
            allow_labels=False,
            allow_space=False,
            allow_digits=False,
            double_inline=True,
        )


mdformat.plugins.PARSER_EXTENSIONS.setdefault(_STYLE_EXTENSION, ChatStyleExtension)


def clean_text(raw: str) -> str:
    """Apply the regex cleanup rules without re-serializing."""
    cleaned = raw.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _REFERENCE_LINE.sub("\n", cleaned)
    cleaned = _CITATION_MARKER.sub("", cleaned)
    cleaned = _TRAILING_SPACE.sub("\n", cleaned)
    cleaned = _EXCESS_BLANK_LINES.sub("\n\n", cleaned)
    return cleaned


def normalize(raw: str | None) -> str:
    """Clean citations and whitespace, then re-serialize as GFM markdown."""
    if not isinstance(raw, str) or not raw.strip():
        return ""

    cleaned = clean_text(raw)
    try:
        formatted = mdformat.text(cleaned, options=_OPTIONS, extensions=_EXTENSIONS)
    except Exception as e:
        logger.warning(f"Markdown re-serialization failed, returning cleaned text: {e}")
        formatted = cleaned
    return formatted.strip()
