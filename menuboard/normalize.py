# menuboard/normalize.py
"""
Turn whatever an extraction backend produced into canonical menu items.

Backends answer with a JSON array (vision models, when they behave), a JSON
array buried in prose, or plain lines (OCR, local models). Everything funnels
into either a flat ``list[str]`` or a ``list[MenuSection]`` when the board
was split into meal times. Nothing here raises on bad input: when no item
survives, the result is the single sentinel item so a human looks at it.
"""
from __future__ import annotations
import ast
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

logger = logging.getLogger("menuboard.normalize")

SENTINEL = "메뉴 파싱 실패 - 수동 확인 필요"
DEFAULT_SECTION = "메뉴"

# canonical label, display rank
SECTION_VOCAB: Dict[str, tuple] = {
    "조식": ("조식", 0), "아침": ("조식", 0), "breakfast": ("조식", 0),
    "중식": ("중식", 1), "점심": ("중식", 1), "lunch": ("중식", 1),
    "석식": ("석식", 2), "저녁": ("석식", 2), "dinner": ("석식", 2),
}
OTHER_RANK = 3

HEADER_RX = re.compile(r"^[\[\(<【\s]*(조식|중식|석식|아침|점심|저녁|breakfast|lunch|dinner)(?!\w)", re.I)
LIST_RX = re.compile(r"\[.*\]", re.S)

DATE_RXS = [
    re.compile(r"\d{4}\s*[-/.년]\s*\d{1,2}\s*[-/.월]\s*\d{1,2}"),
    re.compile(r"\d{1,2}월\s*\d{1,2}일"),
    re.compile(r"\d{4}년"),
]
WEEKDAY_RX = re.compile(r"[월화수목금토일]요일|^\(?[월화수목금토일]\)?$")
MEAL_RX = re.compile(r"breakfast|lunch|dinner|조식|중식|석식", re.I)
MENU_RX = re.compile(r"menu|메뉴", re.I)
VENUE_RX = re.compile(r"구내식당")

ENUM_RX = re.compile(r"^\s*(?:\d{1,2}\s*[.)](?!\d)|\(\d{1,2}\)|[-–—*•·▪◦‣●○■□※>]+)\s*")
PRICE_RX = re.compile(r"[₩￦]\s*\d[\d,]*|\d{1,3}(?:,\d{3})+\s*원?|\d+\s*원")
BRACKETED_RX = re.compile(r"[\(\[<【][^\)\]>】]*[\)\]>】]")
NOISE_CHARS = " \t\"'`“”‘’,;:|*#~_=-•·"
_ws_re = re.compile(r"\s+")


@dataclass
class MenuSection:
    label: str
    items: List[str] = field(default_factory=list)

    @property
    def marker(self) -> str:
        return f"[{self.label}]"

    def to_public(self) -> Dict[str, Any]:
        return {"label": self.label, "items": list(self.items)}


MenuResult = Union[List[str], List[MenuSection]]


# ---------- cleanup ----------

def _collapse(s: str) -> str:
    return _ws_re.sub(" ", s or "").strip()


def is_noise(line: str) -> bool:
    """Dates, weekdays, meal-time words, venue names and the word 'menu' are never items."""
    return (
        any(rx.search(line) for rx in DATE_RXS)
        or bool(WEEKDAY_RX.search(line))
        or bool(MEAL_RX.search(line))
        or bool(MENU_RX.search(line))
        or bool(VENUE_RX.search(line))
    )


def clean_item(text: Any) -> Optional[str]:
    s = _collapse(str(text) if text is not None else "")
    s = ENUM_RX.sub("", s).strip(NOISE_CHARS)
    if not s or is_noise(s):
        return None
    s = _collapse(PRICE_RX.sub(" ", s)).strip(NOISE_CHARS)
    if len(s) < 2:
        return None
    return s


def _dedup(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for it in items:
        if it in seen:
            continue
        seen.add(it)
        out.append(it)
    return out


def clean_items(raw_items: Iterable[Any]) -> List[str]:
    return _dedup(c for c in (clean_item(i) for i in raw_items) if c)


# ---------- list parsing ----------

def _flatten(values: list) -> List[str]:
    out: List[str] = []
    for v in values:
        if isinstance(v, list):
            out.extend(str(x) for x in v if isinstance(x, (str, int, float)))
        elif isinstance(v, (str, int, float)):
            out.append(str(v))
    return out


def _load_list(text: str) -> Optional[List[str]]:
    try:
        value = json.loads(text)
    except (ValueError, RecursionError):
        try:
            # single-quoted python-style lists show up from smaller models
            value = ast.literal_eval(text)
        except (ValueError, SyntaxError, TypeError, RecursionError, MemoryError):
            return None
    if not isinstance(value, list):
        return None
    return _flatten(value) or None


def parse_list(text: str) -> Optional[List[str]]:
    """Structured parse when the whole reply is an array, else the first array-shaped substring."""
    t = text.strip()
    if t.startswith("[") and t.endswith("]"):
        items = _load_list(t)
        if items:
            return items
    m = LIST_RX.search(t)
    if m:
        items = _load_list(m.group(0))
        if items:
            logger.debug("Recovered embedded list of %d entries", len(items))
            return items
    return None


def line_items(lines: Iterable[str]) -> List[str]:
    out = []
    for line in lines:
        if "[" in line or "]" in line or len(line.strip()) < 2:
            continue
        c = clean_item(line.replace('"', "").replace("'", ""))
        if c:
            out.append(c)
    return _dedup(out)


# ---------- sections ----------

def header_label(line: str) -> Optional[str]:
    m = HEADER_RX.match(ENUM_RX.sub("", _collapse(line)))
    return m.group(1).lower() if m else None


def _header_remainder(line: str) -> Optional[str]:
    s = ENUM_RX.sub("", _collapse(line))
    m = HEADER_RX.match(s)
    rest = BRACKETED_RX.sub(" ", s[m.end():]) if m else ""
    rest = re.sub(r"\d{1,2}:\d{2}\s*[~-]?\s*(\d{1,2}:\d{2})?", " ", rest)
    rest = rest.strip(NOISE_CHARS + "])>】")
    c = clean_item(rest) if rest else None
    return c if c and len(c) > 2 else None


def sections_from_lines(lines: Iterable[str]) -> Optional[List[MenuSection]]:
    """
    Group lines under the meal-time header they follow.

    Returns None when no meal-time section collected an item, so the caller
    can fall back to a flat list.
    """
    buckets: Dict[str, List[str]] = {}
    ranks: Dict[str, int] = {}
    current: Optional[str] = None

    def add(label: str, item: str) -> None:
        if label not in buckets:
            buckets[label] = []
            ranks[label] = SECTION_VOCAB.get(label, (label, OTHER_RANK))[1]
        if item not in buckets[label]:
            buckets[label].append(item)

    for line in lines:
        label = header_label(line)
        if label:
            current = SECTION_VOCAB[label][0]
            buckets.setdefault(current, [])
            ranks.setdefault(current, SECTION_VOCAB[label][1])
            rest = _header_remainder(line)
            if rest:
                add(current, rest)
            continue
        s = _collapse(line)
        if not s or is_noise(s):
            continue
        item = clean_item(s)
        if not item or len(item) <= 2:
            continue
        add(current or DEFAULT_SECTION, item)

    first_seen = {label: i for i, label in enumerate(buckets)}
    ordered = sorted((lbl for lbl in buckets if buckets[lbl]), key=lambda lbl: (ranks[lbl], first_seen[lbl]))
    if not any(lbl in ("조식", "중식", "석식") for lbl in ordered):
        return None
    return [MenuSection(label=lbl, items=buckets[lbl]) for lbl in ordered]


# ---------- entry point ----------

def normalize(raw: Union[str, MenuResult, None]) -> MenuResult:
    """
    Canonical menu from raw backend output.

    Priority: whole-text array, embedded array, meal-time sections, plain
    lines. A previous result can be passed back in and comes out unchanged.
    Falls back to ``[SENTINEL]``; never raises and never returns an empty list.
    """
    if isinstance(raw, list):
        if any(isinstance(e, MenuSection) for e in raw):
            raw = render_lines(raw)
        parsed: Optional[List[str]] = _flatten(raw)
        text = "\n".join(parsed)
    else:
        text = (raw or "").strip()
        parsed = parse_list(text) if text else None

    if parsed:
        if any(header_label(p) for p in parsed):
            sections = sections_from_lines(parsed)
            if sections:
                return sections
        items = clean_items(parsed)
        if items:
            return items

    lines = text.splitlines()
    if any(header_label(ln) for ln in lines):
        sections = sections_from_lines(lines)
        if sections:
            return sections

    items = line_items(lines)
    if items:
        return items

    logger.warning("No menu items recovered from %d chars of text; emitting sentinel", len(text))
    return [SENTINEL]


# ---------- views ----------

def flatten(result: MenuResult) -> List[str]:
    out: List[str] = []
    for entry in result:
        if isinstance(entry, MenuSection):
            out.extend(entry.items)
        else:
            out.append(entry)
    return out


def render_lines(result: MenuResult) -> List[str]:
    """Items with each section prefixed by its marker line."""
    out: List[str] = []
    for entry in result:
        if isinstance(entry, MenuSection):
            out.append(entry.marker)
            out.extend(entry.items)
        else:
            out.append(entry)
    return out


def sections_of(result: MenuResult) -> List[MenuSection]:
    return [e for e in result if isinstance(e, MenuSection)]


def is_sentinel(result: MenuResult) -> bool:
    return list(result) == [SENTINEL]
