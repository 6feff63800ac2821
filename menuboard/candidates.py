from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List, Iterable


@dataclass(frozen=True)
class Rect:
    top: float
    left: float
    width: float = 0.0
    height: float = 0.0

    def manhattan(self, other: "Rect") -> float:
        # top-left corner to top-left corner
        return abs(self.top - other.top) + abs(self.left - other.left)


@dataclass(frozen=True)
class Element:
    text: str
    rect: Rect
    background_image: Optional[str] = None   # computed CSS value, e.g. 'url("https://...")' or "none"


@dataclass(frozen=True)
class DocumentSnapshot:
    elements: tuple

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "DocumentSnapshot":
        """Build a snapshot from the per-element dicts the renderer script returns."""
        out: List[Element] = []
        for r in records:
            out.append(Element(
                text=r.get("text") or "",
                rect=Rect(
                    top=float(r.get("top") or 0),
                    left=float(r.get("left") or 0),
                    width=float(r.get("width") or 0),
                    height=float(r.get("height") or 0),
                ),
                background_image=r.get("background") or None,
            ))
        return cls(elements=tuple(out))


@dataclass(frozen=True)
class ImageCandidate:
    image_ref: str
    rect: Rect
    index: int              # document order among image candidates


@dataclass(frozen=True)
class CaptionCandidate:
    text: str               # whitespace-collapsed
    rect: Rect
    date_code: Optional[str] = None   # YYMMDD


@dataclass(frozen=True)
class MatchedPost:
    image_ref: str
    caption_text: str
    date_code: Optional[str] = None

    def to_public(self) -> Dict[str, Any]:
        return asdict(self)
