"""
Answer Synthesizer

Builds the grounding prompt from retrieved notes, makes exactly one
generation call and returns the answer with its citations.

Failures are never retried or papered over: a generation error surfaces as
SynthesisError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from ..core.errors import SynthesisError
from ..index.models import RetrievedDocument
from ..indexing.normalizer import truncate
from ..llm.client import LLMClient
from ..prompts import NOTES_QA_PROMPT

CONTEXT_EXCERPT_CHARS = 500


@dataclass
class SynthesizedAnswer:
    answer: str
    citations: List[RetrievedDocument] = field(default_factory=list)


def build_prompt(query: str, docs: Sequence[RetrievedDocument]) -> str:
    context = "\n\n".join(doc.content for doc in docs)
    return NOTES_QA_PROMPT.format(context=context, query=query)


class AnswerSynthesizer:
    def __init__(
        self,
        llm: LLMClient,
        excerpt_chars: int = CONTEXT_EXCERPT_CHARS,
    ) -> None:
        self._llm = llm
        self._excerpt_chars = excerpt_chars

    def excerpt(self, doc: RetrievedDocument) -> RetrievedDocument:
        content = truncate(doc.content, self._excerpt_chars)
        if content == doc.content:
            return doc
        return doc.model_copy(update={"content": content})

    async def synthesize(
        self,
        query: str,
        docs: Sequence[RetrievedDocument],
    ) -> SynthesizedAnswer:
        """
        Every document passed in is cited, in the order given, with the
        excerpted content the model actually saw.
        """
        citations = [self.excerpt(doc) for doc in docs]
        prompt = build_prompt(query, citations)

        try:
            answer = await self._llm.generate(prompt)
        except SynthesisError:
            raise
        except Exception as exc:
            raise SynthesisError(f"Generation failed: {type(exc).__name__}") from exc

        return SynthesizedAnswer(answer=answer, citations=citations)
