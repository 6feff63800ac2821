from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from .candidates import CaptionCandidate, DocumentSnapshot, ImageCandidate, MatchedPost

logger = logging.getLogger("menuboard.proximity")

NO_DATE_CAPTION = "날짜 정보 없음"

BG_URL_RX = re.compile(r"""url\(\s*['"]?([^'")]+)['"]?\s*\)""")
DATE_RX = re.compile(r"(\d{1,2})월\s*(\d{1,2})일")
DATE_UNITS = ("월", "일")
_ws_re = re.compile(r"\s+")


@dataclass(frozen=True)
class MatchPolicy:
    image_signature: str = "kakaocdn"
    keyword: str = "메뉴"
    caption_max_len: int = 100
    tie_break: str = "first"        # "first" | "last" among equidistant images


def _collapse(text: str) -> str:
    return _ws_re.sub(" ", text or "").strip()


def background_url(value: Optional[str]) -> Optional[str]:
    if not value or value == "none":
        return None
    m = BG_URL_RX.search(value)
    if m:
        return m.group(1).strip()
    # renderers that already resolved the url hand it over bare
    return value.strip() if value.strip().startswith(("http://", "https://", "//")) else None


def parse_date_code(text: str, year: Optional[int] = None) -> Optional[str]:
    m = DATE_RX.search(text or "")
    if not m:
        return None
    yy = (year if year is not None else date.today().year) % 100
    return f"{yy:02d}{int(m.group(1)):02d}{int(m.group(2)):02d}"


def image_candidates(snapshot: DocumentSnapshot, policy: MatchPolicy) -> List[ImageCandidate]:
    out: List[ImageCandidate] = []
    for el in snapshot.elements:
        url = background_url(el.background_image)
        if not url or policy.image_signature not in url:
            continue
        out.append(ImageCandidate(image_ref=url, rect=el.rect, index=len(out)))
    return out


def caption_candidates(snapshot: DocumentSnapshot, policy: MatchPolicy, year: Optional[int] = None) -> List[CaptionCandidate]:
    out: List[CaptionCandidate] = []
    seen = set()
    for el in snapshot.elements:
        raw = el.text or ""
        if len(raw) >= policy.caption_max_len:
            continue
        if policy.keyword not in raw or not any(u in raw for u in DATE_UNITS):
            continue
        text = _collapse(raw)
        if text in seen:
            continue
        seen.add(text)
        out.append(CaptionCandidate(text=text, rect=el.rect, date_code=parse_date_code(text, year)))
    return out


def nearest_image(caption: CaptionCandidate, images: List[ImageCandidate], tie_break: str = "first") -> Tuple[Optional[ImageCandidate], float]:
    best: Optional[ImageCandidate] = None
    best_d = float("inf")
    for img in images:
        d = caption.rect.manhattan(img.rect)
        if d < best_d or (tie_break == "last" and d == best_d):
            best, best_d = img, d
    return best, best_d


def locate(snapshot: DocumentSnapshot, policy: Optional[MatchPolicy] = None, year: Optional[int] = None) -> List[MatchedPost]:
    """
    Pair each dated menu caption with the nearest menu image on the page.

    Returns posts sorted by date code, most recent first; dateless posts last.
    An empty list means the page carried nothing usable.
    """
    policy = policy or MatchPolicy()
    images = image_candidates(snapshot, policy)
    captions = caption_candidates(snapshot, policy, year)
    logger.info("Found %d image candidate(s), %d caption candidate(s)", len(images), len(captions))

    if not images:
        return []

    if not captions:
        logger.info("No captions; falling back to first image %s", images[0].image_ref)
        return [MatchedPost(image_ref=images[0].image_ref, caption_text=NO_DATE_CAPTION, date_code=None)]

    pairings = []
    for order, cap in enumerate(captions):
        img, dist = nearest_image(cap, images, policy.tie_break)
        pairings.append((dist, order, cap, img))

    # lowest distance claims its image first; caption order breaks ties
    claimed = set()
    kept = []
    for dist, order, cap, img in sorted(pairings, key=lambda p: (p[0], p[1])):
        if img.image_ref in claimed:
            logger.debug("Dropping duplicate claim on %s by %r", img.image_ref, cap.text)
            continue
        claimed.add(img.image_ref)
        kept.append((order, MatchedPost(image_ref=img.image_ref, caption_text=cap.text, date_code=cap.date_code)))
        logger.info("Matched %r -> %s (distance=%.1f)", cap.text, img.image_ref, dist)

    posts = [p for _, p in sorted(kept, key=lambda k: k[0])]
    dated = sorted((p for p in posts if p.date_code), key=lambda p: p.date_code, reverse=True)
    return dated + [p for p in posts if not p.date_code]
