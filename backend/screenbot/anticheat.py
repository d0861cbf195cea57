"""
Heuristic integrity scoring for typed answers.

Everything here is a pure function of its inputs: the caller supplies the
prompt timestamp, the receive timestamp and the sampled answer history.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from screenbot.similarity import similarity, tokenize


class FlagCode(str, Enum):
    SELFIE_CODE_MISMATCH = "selfie_code_mismatch"
    LOW_QUALITY_SELFIE = "low_quality_selfie"
    TOO_SHORT_VOICE = "too_short_voice"
    TOO_FAST = "too_fast"
    COPY_PASTE_LIKELY = "copy_paste_likely"
    DUPLICATE_ANSWER = "duplicate_answer"


class Severity(int, Enum):
    ADVISORY = 1
    SERIOUS = 2


class Signal(str, Enum):
    TOO_FAST = FlagCode.TOO_FAST.value
    COPY_PASTE_LIKELY = FlagCode.COPY_PASTE_LIKELY.value
    DUPLICATE_ANSWER = FlagCode.DUPLICATE_ANSWER.value


@dataclass(frozen=True)
class Flag:
    code: FlagCode
    severity: Severity
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoringPolicy:
    too_fast_ms: int = 1500
    long_answer_chars: int = 180
    long_answer_ms: int = 5000
    paste_chars: int = 250
    paste_chars_ms: int = 4000
    paste_words: int = 60
    paste_words_ms: int = 5000
    sample_size: int = 200
    duplicate_threshold: float = 0.9


DEFAULT_POLICY = ScoringPolicy()


@dataclass(frozen=True)
class RecentAnswer:
    candidate_id: int
    text: str


@dataclass(frozen=True)
class SimilarityHit:
    hit: bool = False
    score: float = 0.0
    candidate_id: Optional[int] = None


@dataclass(frozen=True)
class AnswerScore:
    signals: List[Signal]
    similarity: SimilarityHit
    latency_ms: int

    @property
    def duplicate_flag(self) -> Optional[Flag]:
        if not self.similarity.hit:
            return None
        return Flag(
            FlagCode.DUPLICATE_ANSWER,
            Severity.SERIOUS,
            {"withCandidateId": self.similarity.candidate_id, "score": self.similarity.score},
        )


def too_fast(prompt_sent_at: int, now: int, text: Optional[str], policy: ScoringPolicy = DEFAULT_POLICY) -> bool:
    elapsed = now - prompt_sent_at
    if elapsed < policy.too_fast_ms:
        return True
    return len(text or "") > policy.long_answer_chars and elapsed < policy.long_answer_ms


def copy_paste_likely(
    prompt_sent_at: int, now: int, text: Optional[str], policy: ScoringPolicy = DEFAULT_POLICY
) -> bool:
    elapsed = now - prompt_sent_at
    if len(text or "") > policy.paste_chars and elapsed < policy.paste_chars_ms:
        return True
    return len(tokenize(text)) > policy.paste_words and elapsed < policy.paste_words_ms


def best_match(
    text: Optional[str], sample: Sequence[RecentAnswer], policy: ScoringPolicy = DEFAULT_POLICY
) -> SimilarityHit:
    """Highest-scoring earlier answer; ties keep the newest (first seen) row."""
    best = SimilarityHit()
    for row in sample:
        score = similarity(text, row.text)
        if score > best.score:
            best = SimilarityHit(hit=score > policy.duplicate_threshold, score=score, candidate_id=row.candidate_id)
    return best


def score_answer(
    prompt_sent_at: int,
    now: int,
    text: Optional[str],
    sample: Sequence[RecentAnswer],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> AnswerScore:
    signals: List[Signal] = []
    if too_fast(prompt_sent_at, now, text, policy):
        signals.append(Signal.TOO_FAST)
    if copy_paste_likely(prompt_sent_at, now, text, policy):
        signals.append(Signal.COPY_PASTE_LIKELY)
    hit = best_match(text, sample[: policy.sample_size], policy)
    if hit.hit:
        signals.append(Signal.DUPLICATE_ANSWER)
    return AnswerScore(signals=signals, similarity=hit, latency_ms=now - prompt_sent_at)
