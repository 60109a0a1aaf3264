"""Answer generation over retrieved RAG contexts."""

import json
import logging
import re

from content_search.errors import RAGError
from content_search.llm.provider import LLMProvider
from content_search.models.search import RAGContext, RAGResponse

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_LIST_MARKER_RE = re.compile(r"^(?:\d+[.)]|[-*])\s*")

_SYSTEM_PROMPT = """\
You are an intelligent educational assistant. Answer questions based on the \
provided context from course materials. If the context doesn't contain enough \
information to answer the question completely, say so clearly. When referencing \
information, mention the source number in brackets [1], [2], etc. Be concise but \
comprehensive in your answers.

Output a single JSON object:
{
  "answer": "your answer",
  "confidence": 0.0 to 1.0, how well the context supports the answer
}\
"""

_FOLLOW_UP_PROMPT = """\
Based on this educational Q&A, suggest 2-3 relevant follow-up questions that a \
student might ask:

Original Question: {question}
Answer: {answer}...

Generate follow-up questions (one per line):\
"""

MAX_FOLLOW_UPS = 3
FOLLOW_UP_TEMPERATURE = 0.7
FOLLOW_UP_MAX_TOKENS = 200


class AnswerGenerator:
    """Turns a question plus ranked contexts into a RAGResponse."""

    def __init__(
        self,
        llm: LLMProvider,
        *,
        default_confidence: float = 0.8,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> None:
        """Initialize with a generation provider and answer sampling settings."""
        self._llm = llm
        self._default_confidence = default_confidence
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        """Model identifier reported on every response."""
        return self._llm.model

    async def generate(self, question: str, contexts: list[RAGContext]) -> RAGResponse:
        """Generate an answer. Raises RAGError if the backend produces nothing."""
        prompt = self._build_prompt(question, contexts)
        raw = await self._llm.generate(
            prompt,
            system=_SYSTEM_PROMPT,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if raw is None or not raw.strip():
            raise RAGError(
                "Generation backend returned no answer",
                details={"model": self.model, "contexts": len(contexts)},
            )
        answer, confidence = self._parse_answer(raw)
        follow_ups = await self.follow_up_questions(question, answer)
        return RAGResponse(
            answer=answer,
            sources=contexts,
            confidence=confidence,
            model=self.model,
            reasoning=f"Generated using {len(contexts)} context sources",
            follow_up_questions=follow_ups,
        )

    async def follow_up_questions(self, question: str, answer: str) -> list[str]:
        """Ask for follow-up questions. Returns [] on any failure."""
        prompt = _FOLLOW_UP_PROMPT.format(question=question, answer=answer[:500])
        raw = await self._llm.generate(
            prompt, temperature=FOLLOW_UP_TEMPERATURE, max_tokens=FOLLOW_UP_MAX_TOKENS
        )
        if raw is None:
            return []
        return parse_follow_ups(raw)

    @staticmethod
    def _build_prompt(question: str, contexts: list[RAGContext]) -> str:
        context_text = "\n\n".join(f"[{i + 1}] {ctx.text}" for i, ctx in enumerate(contexts))
        return f"Context:\n{context_text}\n\nQuestion: {question}\n\nAnswer:"

    def _parse_answer(self, raw: str) -> tuple[str, float]:
        """Extract (answer, confidence); plain text falls back to the default confidence."""
        text = raw
        fence_match = _FENCE_RE.search(text)
        if fence_match:
            text = fence_match.group(1)

        obj_match = _JSON_OBJECT_RE.search(text)
        if obj_match:
            try:
                data = json.loads(obj_match.group(0))
            except json.JSONDecodeError:
                logger.debug("Generation output is not JSON, using raw text")
                data = None
            if isinstance(data, dict) and isinstance(data.get("answer"), str):
                return data["answer"].strip(), _clamp_confidence(
                    data.get("confidence"), self._default_confidence
                )
        return raw.strip(), self._default_confidence


def parse_follow_ups(raw: str) -> list[str]:
    """Keep lines that look like questions, strip list markers, cap at three."""
    questions: list[str] = []
    for line in raw.splitlines():
        line = line.strip()
        if len(line) <= 10 or "?" not in line:
            continue
        questions.append(_LIST_MARKER_RE.sub("", line).strip())
        if len(questions) == MAX_FOLLOW_UPS:
            break
    return questions


def _clamp_confidence(value: object, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return min(max(float(value), 0.0), 1.0)
