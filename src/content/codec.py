"""Markdown-with-frontmatter wire format.

    ---
    title: "About Us"
    slug: about-us
    tags: [company, team]
    ---

    # Body starts here

The frontmatter block is a small YAML subset: ``key: value`` lines,
``#`` comments, quoted strings and keys, booleans, null, numbers
(``.inf``/``.nan`` included), nested inline lists, block lists
(``- item``), and indented multi-line strings.  Lines that do not fit are
skipped rather than rejected.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime

from folio.content.models import ContentItem, Scalar

logger = logging.getLogger(__name__)

DELIMITER = "---"

_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(\d+\.\d*|\.\d+|\d+(?=[eE]))([eE][-+]?\d+)?$")
_BARE_KEY_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")
_QUOTED_KEY_RE = re.compile(r'^"((?:[^"\\]|\\.)*)"\s*:(.*)$')
_SPECIAL_FLOATS = {".inf": math.inf, "+.inf": math.inf, "-.inf": -math.inf, ".nan": math.nan}
# Characters that make a bare string ambiguous on re-parse.
_NEEDS_QUOTES_RE = re.compile(r"[:#,\[\]{}\"'\\&*!|>%@`\s]")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}
_BLOCK_SCALARS = {"|": "\n", "|-": "\n", ">": " ", ">-": " "}
# YAML 1.1 booleans.
_YAML_WORDS = frozenset({"yes", "no", "on", "off"})


# ── Parsing ──────────────────────────────────────────────────────────


def parse(raw: str, modified_at: datetime | None = None) -> ContentItem:
    """Split ``raw`` into frontmatter and body and build a ContentItem.

    Without an opening ``---`` line and a matching closing one, the whole
    input is the body and frontmatter is empty.
    """
    frontmatter: dict[str, Scalar] = {}
    body = raw

    lines = raw.split("\n")
    if lines and lines[0].rstrip("\r") == DELIMITER:
        for index in range(1, len(lines)):
            if lines[index].rstrip("\r") == DELIMITER:
                frontmatter = parse_frontmatter("\n".join(lines[1:index]))
                rest = lines[index + 1 :]
                if len(rest) > 1 and not rest[0].strip():
                    rest = rest[1:]
                body = "\n".join(rest)
                break

    if modified_at is None:
        return ContentItem(body, frontmatter)
    return ContentItem(body, frontmatter, modified_at=modified_at)


def parse_frontmatter(block: str) -> dict[str, Scalar]:
    """Parse the lines between the delimiters into an ordered mapping."""
    result: dict[str, Scalar] = {}
    pending_key: str | None = None
    pending_joiner = "\n"
    pending_lines: list[str] = []

    def flush() -> None:
        if pending_key is None:
            return
        if pending_lines and all(line.startswith("- ") or line == "-" for line in pending_lines):
            result[pending_key] = [parse_value(line[1:].strip()) for line in pending_lines]
        else:
            result[pending_key] = pending_joiner.join(pending_lines).strip()

    for line in block.split("\n"):
        line = line.rstrip("\r")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        if pending_key is not None and (line[:1] in (" ", "\t") or stripped.startswith("- ")):
            pending_lines.append(stripped)
            continue

        flush()
        pending_key = None
        pending_lines = []

        if ":" not in stripped:
            logger.debug("Skipping malformed frontmatter line: %r", line)
            continue

        quoted = _QUOTED_KEY_RE.match(stripped)
        if quoted:
            key = _unescape(quoted.group(1))
            value = quoted.group(2).strip()
        else:
            key, value = stripped.split(":", 1)
            key = key.strip()
            value = value.strip()
            if not key:
                continue

        if not value or value in _BLOCK_SCALARS:
            pending_key = key
            pending_joiner = _BLOCK_SCALARS.get(value, "\n")
            continue

        result[key] = parse_value(value)

    flush()
    return result


def parse_value(value: str) -> Scalar:
    """Convert one raw frontmatter value into a typed scalar."""
    value = value.strip()
    lowered = value.lower()

    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "~"):
        return None
    if lowered in _SPECIAL_FLOATS:
        return _SPECIAL_FLOATS[lowered]
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return _unescape(value[1:-1])
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1].strip()
        if not inner:
            return []
        return [parse_value(item) for item in _split_items(inner)]
    return value


def _unescape(text: str) -> str:
    out: list[str] = []
    chars = iter(text)
    for char in chars:
        if char == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(char)
    return "".join(out)


def _split_items(inner: str) -> list[str]:
    """Split the inside of an inline list on top-level commas.

    Commas inside quoted items and nested ``[...]`` lists do not split.
    """
    items: list[str] = []
    current: list[str] = []
    depth = 0
    quote = ""
    prev = ""
    chars = iter(inner)
    for char in chars:
        if quote:
            current.append(char)
            if quote == '"' and char == "\\":
                current.append(next(chars, ""))
            elif char == quote:
                quote = ""
                prev = char
            continue
        if not char.isspace():
            opens_item = prev in ("", "[", ",")
            prev = char
        else:
            opens_item = False
        if char in "\"'" and opens_item:
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            items.append("".join(current))
            current = []
            continue
        current.append(char)
    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]


# ── Serialization ────────────────────────────────────────────────────


def serialize(item: ContentItem) -> str:
    """Render an item as frontmatter block, one blank line, then the body."""
    lines = [DELIMITER]
    for key, value in item.frontmatter.items():
        lines.append(f"{format_key(key)}: {format_value(value)}")
    lines.append(DELIMITER)
    return "\n".join(lines) + "\n\n" + item.content


def format_value(value: Scalar) -> str:
    """Format one scalar so that :func:`parse_value` reads it back unchanged."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            if math.isnan(value):
                return ".nan"
            return ".inf" if value > 0 else "-.inf"
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v) for v in value) + "]"

    text = str(value)
    return _quote(text) if _needs_quotes(text) else text


def format_key(key: str) -> str:
    """Leave plain identifiers bare; double-quote anything else."""
    return key if _BARE_KEY_RE.match(key) else _quote(key)


def _quote(text: str) -> str:
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def _needs_quotes(text: str) -> bool:
    if not text or text != text.strip():
        return True
    if _NEEDS_QUOTES_RE.search(text):
        return True
    if text.startswith(("-", "?")) or text.lower() in _YAML_WORDS:
        return True
    return parse_value(text) != text or not isinstance(parse_value(text), str)
