"""Parser for the legacy ``prompt.txt`` catalog.

Before structured templates existed, every style prompt lived in one flat
text file.  This module turns that file into :class:`TemplateRecord` values
for the migration service.  The file format is a fixed external contract;
existing catalogs must parse exactly as they always have.

Catalog Format
--------------
Each entry starts on a line beginning with its number and a dot.  The text
before the first full-width colon is the title, the rest is the prompt body.
Any following non-blank lines continue the body::

    1. 雨夜等车：胶片质感，三宫格构图，雨夜的公交车站，
       女孩撑着透明雨伞等车，霓虹灯在积水中倒映。
    2. 征服高山：站在山峰之巅俯瞰云海，逆光剪影。[tags: 户外, 旅行]

Rules, applied to each line after stripping surrounding whitespace:

- ``^(\\d+)\\.\\s*(.+)`` starts a new entry with that index
- without a ``：`` the title is derived from the start of the text
- blank lines are ignored; lines before the first entry are ignored
- continuation lines are joined to the body with a single space
- a bracketed tag list, ``[tags: a, b]`` or ``【标签：a，b】``, adds explicit
  tags and is removed from the body

Derived Fields
--------------
- **id**: ``template_<index>_<hash>``, where ``<hash>`` is the legacy 32-bit
  string hash of ``title + str(index)`` in base 36.  Unchanged entries always
  get the same id, which keeps repeated migrations idempotent and matches ids
  stored by earlier releases.
- **tags**: explicit tags, then tags inferred from :data:`TAG_KEYWORDS`
  (at most :data:`MAX_TAGS`; ``通用`` when nothing matches)
- **description**: leading excerpt of the body
- **thumbnail_path**: see :mod:`stylestudio.core.thumbnails`

Malformed Entries
-----------------
An entry with an empty title or body, a non-positive index, or a cleaned body
outside 10-5000 characters is skipped.  The reason is recorded as a
:class:`~stylestudio.core.errors.ParseError` in :attr:`LegacyCatalogParser.errors`;
the rest of the catalog is still parsed.

Usage Example
-------------
    >>> parser = LegacyCatalogParser(Path("prompt/prompt.txt"))
    >>> templates = list(parser)
    >>> len(parser.errors)
    0

The parser is a restartable iterable: each ``iter()`` re-reads the source
lazily, line by line, so large catalogs are never held in memory twice.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

import pydantic

from stylestudio.core.errors import ParseError
from stylestudio.core.models import TemplateRecord, utc_now_iso
from stylestudio.core.thumbnails import match_thumbnail

logger = logging.getLogger(__name__)

ENTRY_START = re.compile(r"^(\d+)\.\s*(.+)")
TITLE_SEPARATOR = "："
TAG_MARKER = re.compile(r"[\[【]\s*(?:tags?|标签)\s*[:：]\s*([^\]】]*)[\]】]", re.IGNORECASE)
TAG_SEPARATOR = re.compile(r"[,，、]")

MIN_CONTENT_LENGTH = 10
MAX_CONTENT_LENGTH = 5000
DESCRIPTION_LENGTH = 100
MAX_TAGS = 8
DEFAULT_TAG = "通用"
UNTITLED = "未命名模板"

_TITLE_HEAD = re.compile(r"^([^。：，,.]{1,20})")
_TITLE_HEAD_LONG = re.compile(r"^([^。]{1,30})")
_TITLE_PREFIXES = re.compile(r"^(将图片编辑为|输出一张|参考|基于|生成)")
_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# Keyword found in title or body -> tags it contributes.
TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    # Scenes
    "雨夜": ("雨夜", "城市", "夜景"),
    "酒店": ("酒店", "室内", "人像"),
    "高山": ("高山", "自然", "风景"),
    "草原": ("草原", "自然", "风景"),
    "星空": ("星空", "夜景", "自然"),
    "花海": ("花海", "自然", "浪漫"),
    "沙漠": ("沙漠", "自然", "风景"),
    "校园": ("校园", "青春", "人像"),
    "圣诞": ("圣诞", "节日", "人像"),
    "职场": ("职场", "现代", "人像"),
    "雪景": ("雪景", "冬天", "自然"),
    "旗袍": ("旗袍", "古典", "人像"),
    "室内": ("室内", "人像", "艺术"),
    # Styles
    "胶片": ("胶片", "复古", "艺术"),
    "三宫格": ("三宫格", "拼图", "艺术"),
    "电影感": ("电影", "艺术", "专业"),
    "写真": ("写真", "人像", "摄影"),
    "艺术感": ("艺术", "创意", "专业"),
    # Moods
    "孤独": ("孤独", "情感", "深沉"),
    "浪漫": ("浪漫", "温馨", "情感"),
    "神秘": ("神秘", "深沉", "艺术"),
    "清新": ("清新", "自然", "青春"),
    "优雅": ("优雅", "高贵", "人像"),
    # Techniques
    "逆光": ("逆光", "光影", "技术"),
    "虚化": ("虚化", "景深", "技术"),
    "过度曝光": ("过曝", "技术", "艺术"),
    "颗粒感": ("颗粒", "质感", "复古"),
}

_PORTRAIT_WORDS = ("人物", "女性", "男性", "人像")
_LANDSCAPE_WORDS = ("风景", "自然", "户外")
_INDOOR_WORDS = ("室内", "酒店", "房间")


@dataclass
class CatalogEntry:
    """One numbered entry as read from the catalog, before conversion."""

    index: int
    title: str
    body: str


# ---------------------------------------------------------------------------
# Field derivation helpers.
# ---------------------------------------------------------------------------


def legacy_string_hash(text: str) -> str:
    """Hash ``text`` the way the legacy frontend did.

    A 31-multiplier rolling hash over UTF-16 code units, wrapped to a signed
    32-bit integer, made non-negative and written in base 36.

    Args:
        text: String to hash

    Returns:
        Base-36 digest
    """
    value = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF

    if value >= 0x80000000:
        value -= 0x100000000
    value = abs(value)

    digits = ""
    while True:
        value, remainder = divmod(value, 36)
        digits = _BASE36[remainder] + digits
        if value == 0:
            return digits


def generate_template_id(index: int, title: str) -> str:
    """Return the deterministic id for catalog entry ``index`` titled ``title``."""
    return f"template_{index}_{legacy_string_hash(title + str(index))}"


def extract_title(text: str) -> str:
    """Derive a title from entry text that has no ``：`` separator.

    Args:
        text: First-line text of the entry

    Returns:
        A short title, or ``未命名模板`` if nothing usable is found
    """
    if not text:
        return UNTITLED

    head = _TITLE_HEAD.match(text)
    if not head:
        return text[:20] + ("..." if len(text) > 20 else "")

    title = _TITLE_PREFIXES.sub("", head.group(1).strip())
    title = title.removesuffix(TITLE_SEPARATOR)

    # Too short once prefixes are gone; take up to the first full stop instead
    if len(title) < 3:
        longer = _TITLE_HEAD_LONG.match(text)
        if longer:
            title = longer.group(1).strip()

    return title or UNTITLED


def clean_content(text: str) -> str:
    """Normalise whitespace and punctuation in a prompt body."""
    if not text:
        return ""
    cleaned = re.sub(r"\s+", " ", text).strip()
    cleaned = re.sub("。{2,}", "。", cleaned)
    cleaned = re.sub("，{2,}", "，", cleaned)
    return _ZERO_WIDTH.sub("", cleaned)


def generate_description(content: str) -> str:
    """Return a short excerpt of ``content`` for template cards."""
    if not content:
        return ""

    description = content[:DESCRIPTION_LENGTH]
    period = description.rfind("。")
    if period > 20:
        description = description[: period + 1]
    elif len(description) == DESCRIPTION_LENGTH and len(content) > DESCRIPTION_LENGTH:
        description += "..."
    return description.strip()


def extract_tag_markers(body: str) -> tuple[str, list[str]]:
    """Pull bracketed tag lists out of an entry body.

    Args:
        body: Raw entry body

    Returns:
        Tuple of (body without the markers, explicit tags in order)
    """
    tags: list[str] = []
    for marker in TAG_MARKER.finditer(body):
        tags.extend(tag.strip() for tag in TAG_SEPARATOR.split(marker.group(1)) if tag.strip())
    return TAG_MARKER.sub("", body), tags


def infer_tags(title: str, content: str, explicit: Iterable[str] = ()) -> list[str]:
    """Combine explicit tags with tags inferred from keywords.

    Args:
        title: Entry title
        content: Entry body
        explicit: Tags listed in the entry itself; they come first

    Returns:
        At most :data:`MAX_TAGS` distinct tags
    """
    tags = dict.fromkeys(explicit)
    text = f"{title} {content}".lower()

    for keyword, keyword_tags in TAG_KEYWORDS.items():
        if keyword in text:
            tags.update(dict.fromkeys(keyword_tags))

    if any(word in text for word in _PORTRAIT_WORDS):
        tags["人像"] = None
    if any(word in text for word in _LANDSCAPE_WORDS):
        tags["风景"] = None
    if any(word in text for word in _INDOOR_WORDS):
        tags["室内"] = None

    if not tags:
        tags[DEFAULT_TAG] = None

    return list(tags)[:MAX_TAGS]


# ---------------------------------------------------------------------------
# Entry splitting and conversion.
# ---------------------------------------------------------------------------


def split_entries(lines: Iterable[str]) -> Iterator[CatalogEntry]:
    """Group catalog lines into numbered entries.

    Entries are yielded even when their body is empty so that the caller can
    report them; nothing here validates content.

    Args:
        lines: Catalog lines, with or without line terminators

    Yields:
        CatalogEntry per numbered entry, in file order
    """
    current: CatalogEntry | None = None

    for raw_line in lines:
        line = raw_line.strip()
        start = ENTRY_START.match(line)

        if start:
            if current is not None:
                yield current

            text = start.group(2)
            colon = text.find(TITLE_SEPARATOR)
            if colon != -1:
                title = text[:colon].strip()
                body = text[colon + 1 :].strip()
            else:
                title = extract_title(text)
                body = text
            current = CatalogEntry(index=int(start.group(1)), title=title, body=body)

        elif current is not None and line:
            current.body += " " + line

    if current is not None:
        yield current


def entry_to_template(entry: CatalogEntry, timestamp: str | None = None) -> TemplateRecord:
    """Convert one catalog entry into a template.

    Args:
        entry: Entry produced by :func:`split_entries`
        timestamp: ISO-8601 creation time; defaults to now

    Returns:
        The template built from the entry

    Raises:
        ParseError: If the entry is malformed
    """
    body, explicit_tags = extract_tag_markers(entry.body)
    content = clean_content(body)
    title = entry.title.strip()

    problems = []
    if not title:
        problems.append("missing title")
    if not content:
        problems.append("missing content")
    elif len(content) < MIN_CONTENT_LENGTH:
        problems.append(f"content shorter than {MIN_CONTENT_LENGTH} characters")
    elif len(content) > MAX_CONTENT_LENGTH:
        problems.append(f"content longer than {MAX_CONTENT_LENGTH} characters")
    if entry.index <= 0:
        problems.append("index must be positive")
    if problems:
        raise ParseError(", ".join(problems), index=entry.index)

    timestamp = timestamp or utc_now_iso()
    try:
        return TemplateRecord(
            id=generate_template_id(entry.index, title),
            title=title,
            description=generate_description(content),
            content=content,
            tags=infer_tags(title, content, explicit_tags),
            thumbnail_path=match_thumbnail(title, content).path,
            created_at=timestamp,
            updated_at=timestamp,
            version=1,
        )
    except pydantic.ValidationError as e:
        reasons = ", ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
        raise ParseError(reasons, index=entry.index) from e


class LegacyCatalogParser:
    """Restartable, lazy parser over a legacy catalog file or string.

    Attributes
    ----------
    path : Path | None
        Catalog file, when parsing from disk
    text : str | None
        Catalog contents, when parsing from memory
    errors : list[ParseError]
        Malformed entries found by the most recent pass
    entries_seen : int
        Number of numbered entries found by the most recent pass

    Notes
    -----
    - Each ``iter()`` starts a fresh pass and resets ``errors``
    - File errors (missing, unreadable) propagate as ``OSError`` on the first
      ``next()``; they concern the whole catalog, not a single entry
    - Files are decoded as UTF-8 and a leading byte-order mark is ignored
    """

    def __init__(self, path: Path | str | None = None, *, text: str | None = None):
        if (path is None) == (text is None):
            raise ValueError("Provide exactly one of path or text")
        self.path = Path(path) if path is not None else None
        self.text = text
        self.errors: list[ParseError] = []
        self.entries_seen = 0

    @property
    def skipped(self) -> int:
        """Number of entries skipped as malformed in the most recent pass."""
        return len(self.errors)

    @property
    def source(self) -> str:
        return str(self.path) if self.path is not None else "<text>"

    def _lines(self) -> Iterator[str]:
        if self.text is not None:
            yield from self.text.split("\n")
            return

        with open(self.path, encoding="utf-8-sig") as handle:
            yield from handle

    def __iter__(self) -> Iterator[TemplateRecord]:
        self.errors = []
        self.entries_seen = 0
        timestamp = utc_now_iso()

        for entry in split_entries(self._lines()):
            self.entries_seen += 1
            try:
                yield entry_to_template(entry, timestamp)
            except ParseError as e:
                logger.warning("Skipping entry in %s: %s", self.source, e)
                self.errors.append(e)

        logger.info(
            "Parsed %s: %d entries, %d skipped",
            self.source,
            self.entries_seen,
            len(self.errors),
        )
