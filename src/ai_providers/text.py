"""Markdown-aware text cleanup and chunking for retrieval.

Documents are cleaned (front matter, fenced code and trailing whitespace
removed), split into blank-line separated blocks, and packed greedily into
chunks of at most ``MAX_CHUNK_CHARS`` characters.  A block made only of
headings is glued to the block after it so a heading never ends up alone.
"""

from __future__ import annotations

import re

MAX_CHUNK_CHARS = 1000

_FRONTMATTER_PATTERN = re.compile(r"\A---\s*\n.*?\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_CODE_BLOCK_PATTERN = re.compile(r"```.*?```", re.DOTALL)
_TRAILING_SPACE_PATTERN = re.compile(r"[ \t]+$", re.MULTILINE)
_HEADING_PATTERN = re.compile(r"^#{1,6}\s+\S")


def preprocess_content(content: str) -> str:
    """Strip front matter, fenced code blocks and trailing whitespace."""
    if not content:
        return ""
    text = _FRONTMATTER_PATTERN.sub("", content, count=1)
    text = _CODE_BLOCK_PATTERN.sub("", text)
    text = _TRAILING_SPACE_PATTERN.sub("", text)
    return text.strip()


def _split_blocks(content: str) -> list[str]:
    blocks: list[str] = []
    current: list[str] = []
    for line in content.split("\n"):
        if line.strip():
            current.append(line.rstrip())
        elif current:
            blocks.append("\n".join(current))
            current = []
    if current:
        blocks.append("\n".join(current))
    return blocks


def _is_heading_only(block: str) -> bool:
    return all(_HEADING_PATTERN.match(line) for line in block.split("\n"))


def _attach_headings(blocks: list[str]) -> list[str]:
    merged: list[str] = []
    pending: list[str] = []
    for block in blocks:
        if _is_heading_only(block):
            pending.append(block)
            continue
        merged.append("\n\n".join(pending + [block]))
        pending = []
    if pending:
        # Headings at the very end stay with the last block
        if merged:
            merged[-1] = "\n\n".join([merged[-1]] + pending)
        else:
            merged.append("\n\n".join(pending))
    return merged


def _split_line(line: str, max_chars: int) -> list[str]:
    """Cut *line* into pieces, preferring whitespace boundaries."""
    pieces: list[str] = []
    rest = line
    while len(rest) > max_chars:
        cut = rest.rfind(" ", 0, max_chars + 1)
        if cut <= 0:
            cut = max_chars
        pieces.append(rest[:cut].rstrip())
        rest = rest[cut:].lstrip()
    if rest:
        pieces.append(rest)
    return pieces


def _pack(parts: list[str], separator: str, max_chars: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for part in parts:
        if not current:
            current = part
        elif len(current) + len(separator) + len(part) <= max_chars:
            current = current + separator + part
        else:
            chunks.append(current)
            current = part
    if current:
        chunks.append(current)
    return chunks


def _split_block(block: str, max_chars: int) -> list[str]:
    lines: list[str] = []
    for line in block.split("\n"):
        lines.extend(_split_line(line, max_chars))
    return _pack(lines, "\n", max_chars)


def split_content(content: str, max_chars: int = MAX_CHUNK_CHARS) -> list[str]:
    """Split *content* into chunks of at most *max_chars* characters.

    Returns ``[""]`` for empty input so callers always get one chunk.
    """
    if len(content) <= max_chars:
        return [content.rstrip()]

    parts: list[str] = []
    for block in _attach_headings(_split_blocks(content)):
        if len(block) <= max_chars:
            parts.append(block)
        else:
            parts.extend(_split_block(block, max_chars))

    chunks = [chunk.rstrip() for chunk in _pack(parts, "\n\n", max_chars)]
    return [chunk for chunk in chunks if chunk] or [""]
