"""Deterministic text heuristics for turning stored chunks into displayable results.

Sentences are split on runs of ``.``, ``!`` and ``?``, everywhere. The
heuristics are approximate by nature; keeping one splitter keeps them
reproducible.
"""

import math
import re

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_CAPITALIZED_RE = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_SENTENCE_END_RE = re.compile(r"[.!?]")

_KEYWORD_STOPLIST = frozenset(
    {"The", "This", "That", "These", "Those", "When", "Where", "What", "How", "Why"}
)

MAX_HIGHLIGHTS = 3


def split_sentences(text: str) -> list[str]:
    """Sentence fragments with surrounding whitespace removed; empties kept out."""
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def estimate_tokens(text: str) -> int:
    """Rough token count used by the RAG context budget: one token per four characters."""
    return math.ceil(len(text) / 4)


def extract_title(text: str) -> str:
    """First of the leading three sentences that looks like a title, else a 50-char prefix."""
    for sentence in split_sentences(text)[:3]:
        if 10 < len(sentence) < 100 and sentence[0].isupper():
            return sentence
    prefix = text[:50].strip()
    return prefix + "..." if len(text) > 50 else prefix


def extract_description(text: str, max_length: int = 200) -> str:
    """Leading ``max_length`` characters, cut at a sentence end or word boundary if possible."""
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    ends = [m.start() for m in _SENTENCE_END_RE.finditer(truncated)]
    if ends and ends[-1] > max_length // 2:
        return truncated[: ends[-1] + 1]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 3 // 4:
        return truncated[:last_space] + "..."
    return truncated + "..."


def truncate_text(text: str, max_length: int) -> str:
    """Cut to ``max_length``, preferring a word boundary in the last fifth."""
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space] + "..."
    return truncated + "..."


def generate_highlights(text: str, tokens: tuple[str, ...] | list[str]) -> list[str]:
    """Up to three sentences containing query tokens, with matches wrapped in ``<em>``.

    Falls back to a single "semantic highlight" (the first substantial
    sentence) when no sentence matches a token.
    """
    candidates = [t for t in tokens if len(t) > 2]
    highlights: list[str] = []
    for sentence in split_sentences(text):
        lower = sentence.lower()
        matching = [t for t in candidates if t.lower() in lower]
        if not matching or len(sentence) <= 20:
            continue
        highlighted = sentence
        for token in matching:
            highlighted = re.sub(
                rf"\b{re.escape(token)}\b",
                lambda m: f"<em>{m.group(0)}</em>",
                highlighted,
                flags=re.IGNORECASE,
            )
        highlights.append(highlighted)
        if len(highlights) >= MAX_HIGHLIGHTS:
            break
    if not highlights:
        fallback = semantic_highlight(text)
        if fallback:
            highlights.append(fallback)
    return highlights


def semantic_highlight(text: str) -> str | None:
    """First sentence longer than 30 characters, terminated with a period."""
    for sentence in split_sentences(text):
        if len(sentence) > 30:
            return sentence + "."
    return None


def first_sentence(text: str) -> str | None:
    """The first sentence when it has a displayable length (10-200 chars)."""
    sentences = split_sentences(text)
    if sentences and 10 < len(sentences[0]) < 200:
        return sentences[0] + "."
    return None


def extract_keywords(text: str, limit: int = 5) -> list[str]:
    """Capitalized words and phrases, lower-cased, as cheap topic tags."""
    words = [
        w
        for w in _CAPITALIZED_RE.findall(text)
        if 3 < len(w) < 30 and w not in _KEYWORD_STOPLIST
    ]
    return [w.lower() for w in words[:limit]]


def content_url(content_id: str, course_id: str | None = None, module_id: str | None = None) -> str:
    """Link to a content item, nested under its course and module when known."""
    if course_id and module_id:
        return f"/courses/{course_id}/modules/{module_id}/content/{content_id}"
    if course_id:
        return f"/courses/{course_id}/content/{content_id}"
    return f"/content/{content_id}"


def unique(items: list[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(items))
