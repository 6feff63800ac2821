from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

from .candidates import MatchedPost
from .errors import ErrorKind, ExtractionError, FatalError, TransientError
from .strategies import ExtractionStrategy

logger = logging.getLogger("menuboard.orchestrator")


class State(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base: float = 1.0       # seconds
    cap: float = 10.0       # seconds

    def delay(self, attempt: int) -> float:
        """Wait after the given (1-based) failed attempt."""
        return min(self.base * (2 ** (attempt - 1)), self.cap)


@dataclass
class ExtractionOutcome:
    raw_text: Optional[str] = None
    items: List[str] = field(default_factory=list)
    strategy_used: Optional[str] = None
    attempts: int = 0
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    state: State = State.PENDING

    @property
    def ok(self) -> bool:
        return self.state is State.SUCCESS


def classify(exc: Exception) -> ExtractionError:
    if isinstance(exc, ExtractionError):
        return exc
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return TransientError(str(exc) or type(exc).__name__)
    return FatalError(f"{type(exc).__name__}: {exc}")


class ExtractionOrchestrator:
    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep):
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def _attempt_loop(self, post: MatchedPost, strategy: ExtractionStrategy, outcome: ExtractionOutcome,
                      max_attempts: int) -> bool:
        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            outcome.attempts += 1
            outcome.state = State.ATTEMPTING
            try:
                raw = strategy.extract(post.image_ref, post.caption_text)
            except Exception as e:
                err = classify(e)
                if not isinstance(e, ExtractionError):
                    logger.exception("Unclassified error from %s", strategy.name)
                outcome.error = err.kind
                outcome.error_message = str(err)
                if isinstance(err, FatalError):
                    logger.error("%s: fatal on attempt %d: %s", strategy.name, attempt, err)
                    return False
                if attempt >= max_attempts:
                    logger.error("%s: giving up after %d attempt(s): %s", strategy.name, attempt, err)
                    return False
                wait = self.policy.delay(attempt)
                outcome.state = State.RETRYING
                logger.warning("%s: transient error on attempt %d (%s); retrying in %.1fs", strategy.name, attempt, err, wait)
                self.sleep(wait)
                continue

            outcome.raw_text = raw
            outcome.strategy_used = strategy.name
            outcome.error = None
            outcome.error_message = None
            outcome.state = State.SUCCESS
            logger.info("%s: extracted %d chars on attempt %d", strategy.name, len(raw or ""), attempt)
            return True
        return False

    def run(self, post: MatchedPost, strategy: Union[ExtractionStrategy, Sequence[ExtractionStrategy]],
            max_attempts: Optional[int] = None) -> ExtractionOutcome:
        """
        Drive one strategy, or an ordered fallback chain, for a single post.

        Each strategy gets its own budget of max_attempts (the policy value
        unless overridden here). A failed strategy hands over to the next; the
        outcome keeps the last error when all fail.
        """
        budget = max_attempts if max_attempts is not None else self.policy.max_attempts
        if budget < 1:
            raise ValueError("max_attempts must be at least 1")
        chain = [strategy] if isinstance(strategy, ExtractionStrategy) else list(strategy)
        outcome = ExtractionOutcome()
        if not chain:
            outcome.state = State.FAILED
            outcome.error = ErrorKind.FATAL
            outcome.error_message = "no extraction strategy configured"
            return outcome

        for strat in chain:
            if self._attempt_loop(post, strat, outcome, budget):
                return outcome
            outcome.strategy_used = strat.name
            logger.warning("Strategy %s failed for %s", strat.name, post.date_code or post.image_ref)

        outcome.state = State.FAILED
        return outcome
