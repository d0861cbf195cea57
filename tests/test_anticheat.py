from screenbot.anticheat import (
    FlagCode,
    RecentAnswer,
    ScoringPolicy,
    Severity,
    Signal,
    best_match,
    copy_paste_likely,
    score_answer,
    too_fast,
)

T0 = 1_000_000


def words(n: int) -> str:
    return " ".join(f"word{i}" for i in range(n))


class TestTooFast:
    def test_under_one_and_a_half_seconds(self):
        assert too_fast(T0, T0 + 1499, "ok")
        assert not too_fast(T0, T0 + 1500, "ok")

    def test_long_answer_under_five_seconds(self):
        text = "x" * 181
        assert too_fast(T0, T0 + 4999, text)
        assert not too_fast(T0, T0 + 5000, text)
        assert not too_fast(T0, T0 + 4999, "x" * 180)

    def test_monotonic_in_elapsed_time(self):
        text = "x" * 200
        for elapsed in range(0, 8000, 250):
            if too_fast(T0, T0 + elapsed, text):
                assert all(too_fast(T0, T0 + shorter, text) for shorter in range(0, elapsed, 50))


class TestCopyPaste:
    def test_many_characters_quickly(self):
        text = "y" * 251
        assert copy_paste_likely(T0, T0 + 3999, text)
        assert not copy_paste_likely(T0, T0 + 4000, text)

    def test_many_words_quickly(self):
        text = words(61)
        assert copy_paste_likely(T0, T0 + 4999, text)
        assert not copy_paste_likely(T0, T0 + 5000, text)
        assert not copy_paste_likely(T0, T0 + 100, words(60)[:250])

    def test_word_count_uses_comparator_tokens(self):
        # punctuation-joined words split into separate tokens
        text = ",".join(["a"] * 61)
        assert len(text) < 250
        assert copy_paste_likely(T0, T0 + 4500, text)


class TestSimilarity:
    def test_best_match_picks_highest_score(self):
        sample = [
            RecentAnswer(candidate_id=1, text="completely unrelated words here"),
            RecentAnswer(candidate_id=2, text="i enjoy solving hard problems"),
            RecentAnswer(candidate_id=3, text="i enjoy solving problems"),
        ]
        hit = best_match("I enjoy solving hard problems.", sample)
        assert hit.hit
        assert hit.candidate_id == 2
        assert hit.score == 1.0

    def test_below_threshold_reports_score_without_hit(self):
        sample = [RecentAnswer(candidate_id=7, text="a b c d e f g h i j")]
        hit = best_match("a b c d e f g h i k", sample)
        assert not hit.hit
        assert hit.candidate_id == 7
        assert 0 < hit.score <= 0.9

    def test_empty_sample(self):
        hit = best_match("anything", [])
        assert not hit.hit
        assert hit.score == 0.0
        assert hit.candidate_id is None


class TestScoreAnswer:
    def test_long_fast_answer_raises_both_timing_signals(self):
        # 300 characters, under 60 words, 1200 ms after the prompt
        text = " ".join(["abcdefg"] * 40)[:299] + "h"
        assert len(text) == 300
        score = score_answer(T0, T0 + 1200, text, [])
        assert score.signals == [Signal.TOO_FAST, Signal.COPY_PASTE_LIKELY]
        assert score.latency_ms == 1200
        assert score.duplicate_flag is None

    def test_duplicate_of_another_candidate(self):
        answer = words(50)
        score = score_answer(T0, T0 + 60_000, answer, [RecentAnswer(candidate_id=5, text=answer)])
        assert score.signals == [Signal.DUPLICATE_ANSWER]
        assert score.similarity.score == 1.0
        flag = score.duplicate_flag
        assert flag.code is FlagCode.DUPLICATE_ANSWER
        assert flag.severity is Severity.SERIOUS
        assert flag.details == {"withCandidateId": 5, "score": 1.0}

    def test_slow_original_answer_is_clean(self):
        score = score_answer(T0, T0 + 30_000, "A thoughtful answer", [RecentAnswer(1, "something else")])
        assert score.signals == []

    def test_sample_is_bounded_by_policy(self):
        policy = ScoringPolicy(sample_size=1)
        sample = [RecentAnswer(1, "other text"), RecentAnswer(2, "same answer")]
        score = score_answer(T0, T0 + 60_000, "same answer", sample, policy)
        assert Signal.DUPLICATE_ANSWER not in score.signals

    def test_signal_values_are_flag_codes(self):
        assert {s.value for s in Signal} <= {c.value for c in FlagCode}
