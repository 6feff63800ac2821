from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .candidates import DocumentSnapshot, MatchedPost
from .errors import ConnectivityError, ErrorKind, MenuboardError, NoContentFound
from .normalize import flatten, is_sentinel, normalize, sections_of
from .orchestrator import ExtractionOrchestrator
from .proximity import MatchPolicy, locate
from .storage import Storage, build_record, menu_key, save_record
from .strategies import ExtractionStrategy
from .util import to_date_code

logger = logging.getLogger("menuboard.pipeline")


@dataclass
class PostResult:
    date_code: Optional[str]
    caption_text: str
    image_ref: str
    items: List[str] = field(default_factory=list)
    sections: List[Dict[str, Any]] = field(default_factory=list)
    success: bool = False
    error: Optional[str] = None               # human-readable reason
    error_kind: Optional[ErrorKind] = None
    strategy_used: Optional[str] = None
    attempts: int = 0
    storage_key: Optional[str] = None

    @property
    def needs_review(self) -> bool:
        return self.error_kind is ErrorKind.PARSE_FAILURE


@dataclass
class RunResult:
    entries: List[PostResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    duration: float = 0.0

    @property
    def succeeded(self) -> int:
        return sum(1 for e in self.entries if e.success)

    @property
    def failed(self) -> int:
        return sum(1 for e in self.entries if not e.success)

    @property
    def needs_review(self) -> int:
        return sum(1 for e in self.entries if e.needs_review)

    @property
    def total_items(self) -> int:
        return sum(len(e.items) for e in self.entries if e.success)

    @property
    def success(self) -> bool:
        return bool(self.entries) and self.failed == 0


class PipelineRunner:
    """
    Match -> extract -> normalize -> store, one dated post at a time.

    Only a missing storage backend or a page without any menu content ends a
    run early; every per-post failure is recorded and the run moves on.
    """

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        storage: Optional[Storage] = None,
        storage_prefix: str = "data/menu_",
        policy: Optional[MatchPolicy] = None,
        post_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        year: Optional[int] = None,
        today: Optional[date] = None,
    ):
        self.orchestrator = orchestrator
        self.storage = storage
        self.storage_prefix = storage_prefix
        self.policy = policy or MatchPolicy()
        self.post_delay = post_delay
        self.sleep = sleep
        self.year = year
        self.today = today

    def _process(self, post: MatchedPost, strategy) -> PostResult:
        entry = PostResult(date_code=post.date_code, caption_text=post.caption_text, image_ref=post.image_ref)

        outcome = self.orchestrator.run(post, strategy)
        entry.attempts = outcome.attempts
        entry.strategy_used = outcome.strategy_used
        if not outcome.ok:
            entry.error_kind = outcome.error
            entry.error = f"extraction failed after {outcome.attempts} attempt(s): {outcome.error_message}"
            return entry

        result = normalize(outcome.raw_text)
        outcome.items = flatten(result)
        entry.items = outcome.items
        entry.sections = [s.to_public() for s in sections_of(result)]
        if is_sentinel(result):
            entry.error_kind = ErrorKind.PARSE_FAILURE
            entry.error = "no menu items recognised; manual review required"
            logger.warning("Post %s degraded to sentinel item", post.date_code)

        if self.storage is not None:
            code = post.date_code or to_date_code(self.today or date.today())
            key = menu_key(self.storage_prefix, code)
            record = build_record(code, post.caption_text, entry.items, entry.sections, entry.strategy_used)
            try:
                save_record(self.storage, key, record)
            except MenuboardError as e:
                entry.error_kind = e.kind
                entry.error = f"storage write failed: {e}"
                logger.error("Could not store %s: %s", key, e)
                return entry
            entry.storage_key = key
            logger.info("Stored %s (%d items)", key, len(entry.items))

        entry.success = True
        return entry

    def run_all(self, snapshot: DocumentSnapshot,
                strategy: Union[ExtractionStrategy, Sequence[ExtractionStrategy]]) -> RunResult:
        started = time.monotonic()
        if self.storage is not None and not self.storage.ping():
            raise ConnectivityError("storage backend is unreachable")

        posts = locate(snapshot, self.policy, year=self.year)
        if not posts:
            raise NoContentFound("no menu image or dated caption found on the page")
        logger.info("Processing %d post(s): %s", len(posts), [p.date_code for p in posts])

        run = RunResult()
        for i, post in enumerate(posts, start=1):
            logger.info("%d/%d %s (%s)", i, len(posts), post.caption_text, post.date_code)
            try:
                run.entries.append(self._process(post, strategy))
            except Exception as e:
                logger.exception("Unexpected failure on post %s", post.date_code)
                run.entries.append(PostResult(
                    date_code=post.date_code, caption_text=post.caption_text, image_ref=post.image_ref,
                    error=f"{type(e).__name__}: {e}", error_kind=ErrorKind.FATAL,
                ))
            if i < len(posts) and self.post_delay > 0:
                self.sleep(self.post_delay)

        run.duration = time.monotonic() - started
        logger.info("Run finished: %d ok, %d failed, %d need review", run.succeeded, run.failed, run.needs_review)
        return run
