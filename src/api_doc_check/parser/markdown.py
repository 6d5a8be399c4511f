"""Markdown page reader.

Walks a documentation page line by line, tracking the heading above each
block, and yields the two kinds of blocks the checker cares about:
pipe tables and fenced pseudo-HTTP code blocks. It is not a renderer; it
only recognises as much markdown as those blocks need.
"""

import re
from pathlib import Path

from pydantic import BaseModel

_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_FENCE = re.compile(r"^(```|~~~)\s*([\w.+-]*)")
_TABLE_DIVIDER = re.compile(r"^\|?\s*:?-{2,}:?\s*(\|\s*:?-{2,}:?\s*)*\|?\s*$")
_LINK = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_EMPHASIS = re.compile(r"(\*\*|\*|`)(.+?)\1")

HTTP_FENCE_LANGUAGES = ("http", "https")


def strip_markdown(text: str | None) -> str:
    """Remove inline formatting (links, emphasis, code spans, &nbsp;) from a cell."""
    if not text:
        return ""
    text = text.replace("&nbsp;", " ")
    text = _LINK.sub(r"\1", text)
    previous = None
    while previous != text:
        previous = text
        text = _EMPHASIS.sub(r"\2", text)
    return text.strip()


class MarkdownTable(BaseModel):
    """Column headers and raw cell text of a pipe table."""

    column_headers: list[str]
    rows: list[list[str]]


class TableBlock(BaseModel):
    heading: str | None
    table: MarkdownTable
    line_number: int


class CodeBlock(BaseModel):
    heading: str | None
    language: str
    text: str
    line_number: int

    @property
    def is_http(self) -> bool:
        return self.language.lower() in HTTP_FENCE_LANGUAGES


class MarkdownPage(BaseModel):
    tables: list[TableBlock] = []
    code_blocks: list[CodeBlock] = []

    @property
    def http_blocks(self) -> list[CodeBlock]:
        return [b for b in self.code_blocks if b.is_http]


def split_table_row(line: str) -> list[str]:
    line = line.strip()
    if line.startswith("|"):
        line = line[1:]
    if line.endswith("|") and not line.endswith("\\|"):
        line = line[:-1]
    cells = re.split(r"(?<!\\)\|", line)
    return [c.strip().replace("\\|", "|") for c in cells]


def extract_page(text: str) -> MarkdownPage:
    """Extract tables and fenced code blocks, each tagged with its nearest heading."""
    page = MarkdownPage()
    lines = text.replace("\r\n", "\n").split("\n")
    heading = None
    i = 0
    while i < len(lines):
        line = lines[i]
        fence = _FENCE.match(line.strip())
        if fence:
            marker, language = fence.group(1), fence.group(2)
            start = i
            body = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith(marker):
                body.append(lines[i])
                i += 1
            page.code_blocks.append(CodeBlock(heading=heading, language=language, text="\n".join(body), line_number=start + 1))
            i += 1
            continue

        match = _HEADING.match(line)
        if match:
            heading = strip_markdown(match.group(2))
            i += 1
            continue

        if "|" in line and i + 1 < len(lines) and _TABLE_DIVIDER.match(lines[i + 1].strip()):
            start = i
            headers = [strip_markdown(h) for h in split_table_row(line)]
            rows = []
            i += 2
            while i < len(lines) and lines[i].strip() and "|" in lines[i]:
                rows.append(split_table_row(lines[i]))
                i += 1
            table = MarkdownTable(column_headers=headers, rows=rows)
            page.tables.append(TableBlock(heading=heading, table=table, line_number=start + 1))
            continue

        i += 1
    return page


def extract_page_file(file_path: Path) -> MarkdownPage:
    return extract_page(file_path.read_text(encoding="utf-8"))
