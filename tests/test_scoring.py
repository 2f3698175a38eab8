import pytest

from cartoonlingo.scoring import (
    CLOSE,
    CORRECT,
    INCORRECT,
    UNREAD,
    ReferenceText,
    WordFeedback,
    best_match,
    classify,
    dedupe_transcript,
    levenshtein,
    normalize_word,
    progress,
    score,
    similarity,
    summarize,
)


def statuses(feedback):
    return [f.status for f in feedback]


def test_normalize_strips_punctuation_and_case():
    assert normalize_word("Hello!") == "hello"
    assert normalize_word('"(Don\'t)"') == "dont"
    assert normalize_word("2021?") == "2021"


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("abc", "") == 3
    assert levenshtein("same", "same") == 0


def test_similarity_bounds():
    assert similarity("Cat.", "cat") == 1.0
    assert similarity("!!", "?") == 1.0
    assert similarity("abc", "xyz") == 0.0
    assert similarity("sad", "sat") == pytest.approx(2 / 3)


def test_similarity_is_symmetric():
    assert similarity("pandemic", "pandemik") == similarity("pandemik", "pandemic")


@pytest.mark.parametrize(
    "sim,expected",
    [(1.0, CORRECT), (0.9, CORRECT), (0.89, CLOSE), (0.6, CLOSE), (0.59, INCORRECT), (0.31, INCORRECT)],
)
def test_classify_thresholds(sim, expected):
    assert classify(sim) == expected


def test_best_match_prefers_earliest_on_ties():
    assert best_match("the", ["The", "cat", "the"]) == (0, 1.0)


def test_best_match_ignores_unrelated_words():
    assert best_match("xyz", ["cat", "dog"]) is None


def test_reference_text_splits_title_and_body():
    ref = ReferenceText.from_lesson("My Day", "The  cat\nsat.")
    assert ref.words == ("My", "Day", "The", "cat", "sat.")
    assert ref.title_word_count == 2
    assert ref.title == ["My", "Day"]
    assert ref.body == ["The", "cat", "sat."]
    assert len(ref) == 5


def test_score_classifies_each_matched_word():
    words = ["The", "cat", "sat."]
    result = score("the cat sad", words)
    assert statuses(result) == [CORRECT, CORRECT, CLOSE]
    assert [f.word for f in result] == words


def test_score_leaves_unmatched_words_unread():
    result = score("cat", ["The", "cat", "sat."])
    assert statuses(result) == [UNREAD, CORRECT, UNREAD]


def test_score_keeps_previous_status_for_words_not_heard_again():
    words = ["The", "cat", "sat."]
    first = score("the", words)
    second = score("sat", words, first)
    assert statuses(second) == [CORRECT, UNREAD, CORRECT]
    # inputs are not mutated
    assert statuses(first) == [CORRECT, UNREAD, UNREAD]


def test_score_ignores_previous_feedback_of_wrong_length():
    previous = [WordFeedback("The", CORRECT)]
    assert statuses(score("", ["The", "cat"], previous)) == [UNREAD, UNREAD]


def test_score_keep_best_within_a_pass():
    assert statuses(score("cat cap", ["cat"])) == [CORRECT]
    assert statuses(score("cap cat", ["cat"])) == [CORRECT]


def test_score_last_match_wins_when_keep_best_disabled():
    assert statuses(score("cat cap", ["cat"], keep_best=False)) == [CLOSE]


def test_score_empty_reference():
    assert score("hello", []) == []


def test_progress():
    assert progress("a b", 4) == 50.0
    assert progress("a b c d e f", 4) == 100.0
    assert progress("", 4) == 0.0
    assert progress("a b", 0) == 0.0


def test_summarize_counts_statuses():
    feedback = score("the cat sad", ["The", "cat", "sat.", "down"])
    assert summarize(feedback) == {UNREAD: 1, CORRECT: 2, CLOSE: 1, INCORRECT: 0}


def test_dedupe_transcript_collapses_repeats():
    assert dedupe_transcript("how will  how will we eat eat") == "how will we eat"
    assert dedupe_transcript("the pandemic has the pandemic has changed") == "the pandemic has changed"
    assert dedupe_transcript("   ") == ""
    assert dedupe_transcript(None) == ""


def test_reading_scenario():
    words = ["Hello", "world", "today"]
    assert similarity("world", "word") == pytest.approx(0.8)
    assert statuses(score("hello word", words)) == [CORRECT, CLOSE, UNREAD]
    assert progress("hello word", len(words)) == pytest.approx(66.67, abs=0.01)


def test_words_below_match_threshold_change_nothing():
    words = ["Hello", "world"]
    previous = score("hello", words)
    assert statuses(score("zzz qqq", words, previous)) == statuses(previous)


def test_progress_never_drops_as_transcript_grows():
    transcript = ""
    last = 0.0
    for word in "one two three four five six".split():
        transcript = f"{transcript} {word}".strip()
        current = progress(transcript, 4)
        assert current >= last
        last = current
    assert last == 100.0
