"""Transcript scoring for reading practice.

Turns the cumulative speech-recognition transcript into per-word feedback on
the reference text and a coarse completion percentage. Matching is a lexical
heuristic (normalized Levenshtein similarity per word), not phonetic analysis.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

UNREAD = "unread"
CORRECT = "correct"
CLOSE = "close"
INCORRECT = "incorrect"

STATUSES = (UNREAD, CORRECT, CLOSE, INCORRECT)

# A spoken word must be strictly more similar than this to touch any reference word
MATCH_THRESHOLD = 0.3
CORRECT_THRESHOLD = 0.9
CLOSE_THRESHOLD = 0.6

STRIP_CHARS = ".,/#!$%^&*;:{}=-_`~()?\"'"
_STRIP_RE = re.compile("[" + re.escape(STRIP_CHARS) + "]")


@dataclass
class WordFeedback:
    """Feedback for one reference word.

    Attributes:
        word: The reference word as displayed (punctuation kept)
        status: One of "unread", "correct", "close", "incorrect"
    """
    word: str
    status: str = UNREAD


@dataclass(frozen=True)
class ReferenceText:
    """Words of a lesson's title followed by its body.

    ``title_word_count`` marks where the body starts, so a global word index
    can be mapped back onto the title or body segment.
    """
    words: tuple
    title_word_count: int = 0

    @classmethod
    def from_lesson(cls, title: str, body: str) -> "ReferenceText":
        title_words = split_words(title)
        return cls(words=tuple(title_words + split_words(body)), title_word_count=len(title_words))

    def __len__(self) -> int:
        return len(self.words)

    @property
    def title(self) -> List[str]:
        return list(self.words[: self.title_word_count])

    @property
    def body(self) -> List[str]:
        return list(self.words[self.title_word_count :])


def split_words(text: Optional[str]) -> List[str]:
    return (text or "").split()


def normalize_word(word: str) -> str:
    """Lowercase a word and drop the punctuation set used for comparison."""
    return _STRIP_RE.sub("", word.lower())


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    # two rolling rows of the dp table
    prev = list(range(len(b) + 1))
    for i in range(1, len(a) + 1):
        cur = [i] + [0] * len(b)
        for j in range(1, len(b) + 1):
            cost_sub = 0 if a[i - 1] == b[j - 1] else 1
            cur[j] = min(
                prev[j] + 1,
                cur[j - 1] + 1,
                prev[j - 1] + cost_sub,
            )
        prev = cur
    return prev[len(b)]


def similarity(a: str, b: str) -> float:
    """Normalized similarity of two words in [0, 1].

    Both words are lowercased and stripped of punctuation first. Identical
    words (including two empty ones) score 1.0; otherwise the score is
    ``1 - distance / max(len(a), len(b))``.

    Args:
        a: Spoken word
        b: Reference word

    Returns:
        Similarity between 0.0 and 1.0
    """
    na = normalize_word(a)
    nb = normalize_word(b)
    if na == nb:
        return 1.0
    longest = max(len(na), len(nb))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(na, nb) / longest


def classify(sim: float) -> str:
    if sim >= CORRECT_THRESHOLD:
        return CORRECT
    if sim >= CLOSE_THRESHOLD:
        return CLOSE
    return INCORRECT


def initial_feedback(reference_words: Sequence[str]) -> List[WordFeedback]:
    return [WordFeedback(word=w) for w in reference_words]


def best_match(spoken: str, reference_words: Sequence[str]) -> Optional[tuple]:
    """Return ``(index, similarity)`` of the closest reference word, or None.

    Only similarities strictly above MATCH_THRESHOLD count; ties keep the
    earliest index.
    """
    best_index: Optional[int] = None
    best_sim = MATCH_THRESHOLD
    for index, ref in enumerate(reference_words):
        sim = similarity(spoken, ref)
        if sim > best_sim:
            best_sim = sim
            best_index = index
    if best_index is None:
        return None
    return best_index, best_sim


def score(
    transcript: str,
    reference_words: Sequence[str],
    previous_feedback: Optional[Sequence[WordFeedback]] = None,
    *,
    keep_best: bool = True,
) -> List[WordFeedback]:
    """Score a transcript against the reference words.

    Every spoken word is matched to its most similar reference word (above
    the match threshold) and that word is classified correct / close /
    incorrect. Reference words no spoken word matched keep their previous
    status, so a word read correctly earlier stays correct.

    Args:
        transcript: Cumulative recognized text of the listening session
        reference_words: The lesson words, in order
        previous_feedback: Feedback from the previous pass (same length as
            reference_words); all-unread when omitted or mismatched
        keep_best: When two spoken words hit the same reference word in one
            pass, keep the higher similarity. When False the later match wins.

    Returns:
        A new feedback list, one entry per reference word
    """
    if previous_feedback is not None and len(previous_feedback) == len(reference_words):
        result = [WordFeedback(word=ref, status=prev.status) for ref, prev in zip(reference_words, previous_feedback)]
    else:
        result = initial_feedback(reference_words)

    best_in_pass = {}
    for spoken in split_words(transcript):
        match = best_match(spoken, reference_words)
        if match is None:
            continue
        index, sim = match
        if keep_best and index in best_in_pass and sim <= best_in_pass[index]:
            continue
        best_in_pass[index] = sim
        result[index].status = classify(sim)
    return result


def progress(transcript: str, total_reference_words: int) -> float:
    """Share of the text read, as a percentage clamped to 100.

    This counts spoken words only; it says nothing about how well they were
    pronounced.
    """
    if total_reference_words <= 0:
        return 0.0
    spoken = len(split_words(transcript))
    return min(100.0, 100.0 * spoken / total_reference_words)


def summarize(feedback: Sequence[WordFeedback]) -> dict:
    counts = {status: 0 for status in STATUSES}
    for entry in feedback:
        counts[entry.status] = counts.get(entry.status, 0) + 1
    return counts


def dedupe_transcript(text: Optional[str]) -> str:
    """Collapse repeated 1-3 word phrases and extra whitespace in a transcript.

    Recognizers often repeat a phrase when interim and final results overlap.
    """
    s = re.sub(r"\s+", " ", text or "").strip()
    if not s:
        return s
    patterns = [
        (r"\b(\w+\s+\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
        (r"\b(\w+\s+\w+)(?:\s+\1\b)+", r"\1"),
        (r"\b(\w+)(?:\s+\1\b)+", r"\1"),
    ]
    for pat, rep in patterns:
        s = re.sub(pat, rep, s, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", s).strip()
