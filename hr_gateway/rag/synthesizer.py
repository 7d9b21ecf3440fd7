"""Grounded answer generation from retrieved context."""
from typing import List

import structlog

from hr_gateway.llm_client import OllamaClient

logger = structlog.get_logger()

INSUFFICIENT_CONTEXT_ANSWER = (
    "I don't have enough context to answer that question. "
    "Please try rephrasing or ask about topics covered in the handbook."
)

NOT_IN_CONTEXT_ANSWER = "I don't have information about that."

PROMPT_TEMPLATE = """You are an HR assistant. Answer ONLY using the context below. If the answer is not in the context, say "{decline}"

Context:
{context}

Question: {question}

Answer:"""


def build_prompt(question: str, context_chunks: List[str]) -> str:
    """Build the strict grounding prompt; chunks are separated by blank lines."""
    context = "\n\n".join(context_chunks)
    return PROMPT_TEMPLATE.format(
        decline=NOT_IN_CONTEXT_ANSWER,
        context=context,
        question=question,
    )


class AnswerSynthesizer:
    """Answers questions from retrieved chunks with the chat model."""

    def __init__(self, client: OllamaClient, model: str = None):
        self.client = client
        self.model = model

    async def synthesize_answer(self, question: str, context_chunks: List[str]) -> str:
        """Return the model's answer, or a canned reply when there is no context.

        Generation failures are not retried.
        """
        if not context_chunks:
            logger.info("no_relevant_context_found")
            return INSUFFICIENT_CONTEXT_ANSWER

        prompt = build_prompt(question, context_chunks)
        return await self.client.generate(prompt, model=self.model)
