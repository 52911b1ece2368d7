"""RAG answering pipeline: embed question, retrieve files, stream a grounded answer.

Pipeline:
  1. Embed the question with the model used at ingestion time.
  2. Retrieve the closest source files (``retriever.search``).
  3. Build a context block from the ranked files and a grounded prompt.
  4. Start streaming the completion in a background task and return at once.

The caller gets ``Answer(citations, stream)``: citations are final, the stream
is still in progress. Consume it with ``async for``. A provider failure,
before or after some chunks, surfaces as ``StreamFailed`` once every chunk
already received has been delivered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from repoqa.concurrency import RetryExecutor
from repoqa.db.repository import Repository
from repoqa.errors import ProjectNotFound, StreamFailed
from repoqa.rag import llm_client
from repoqa.rag.retriever import RetrieverConfig, ScoredFile, search

logger = logging.getLogger(__name__)

NO_ANSWER = "I apologize, but I don't have enough information to answer this question"

_SYSTEM_PROMPT = """\
You are an AI code assistant who answers questions about a codebase. Your \
target audience is a technical intern who is new to the project.
You are a well-behaved, helpful and articulate assistant with expert \
knowledge of the codebase.

Rules:
- Answer ONLY from the CONTEXT BLOCK below. Do not use outside knowledge.
- If the context does not provide the answer, say: "{no_answer}".
- Never invent anything that is not drawn directly from the context.
- Answer in markdown syntax, with code snippets where they help. Be as \
detailed as possible when explaining code.

START CONTEXT BLOCK
{context}
END OF CONTEXT BLOCK"""


@dataclass
class AnswerConfig:
    generation_model: str = "gemini/gemini-1.5-flash"
    max_tokens: int = 2048
    temperature: float = 0.0


# ------------------------------------------------------------------
# Prompt construction
# ------------------------------------------------------------------


def format_context(citations: list[ScoredFile]) -> str:
    """Concatenate the retrieved files in ranked order."""
    return "".join(
        f"source: {c.record.file_name}\n"
        f"code content: {c.record.source_code}\n"
        f"summary of file: {c.record.summary}\n\n"
        for c in citations
    )


def build_prompt(question: str, citations: list[ScoredFile]) -> list[dict]:
    """Return the OpenAI-style message list for a grounded answer."""
    system = _SYSTEM_PROMPT.format(
        no_answer=NO_ANSWER,
        context=format_context(citations),
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": question},
    ]


# ------------------------------------------------------------------
# Streaming
# ------------------------------------------------------------------

_DONE = object()


class AnswerStream:
    """Async iterator over answer text deltas, fed by a background task.

    ``status`` is ``"streaming"`` until the producer finishes, then ``"done"``
    or ``"error"``. Chunks are delivered in arrival order; a producer failure
    is raised as ``StreamFailed`` after the chunks that preceded it.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._finished = False
        self.status = "streaming"
        self.error: BaseException | None = None
        self.text = ""

    def start(self, deltas) -> None:
        """Begin draining the async iterable *deltas* in the background."""
        self._task = asyncio.ensure_future(self._produce(deltas))

    async def _produce(self, deltas) -> None:
        try:
            async for delta in deltas:
                self.text += delta
                await self._queue.put(delta)
        except Exception as exc:
            logger.error("Answer stream failed: %s", exc)
            self.error = exc
            self.status = "error"
            await self._queue.put(exc)
            return
        self.status = "done"
        await self._queue.put(_DONE)

    def __aiter__(self) -> AnswerStream:
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _DONE:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._finished = True
            raise StreamFailed(f"Answer generation failed: {item}") from item
        return item

    async def collect(self) -> str:
        """Consume the remaining stream and return the full answer text."""
        async for _ in self:
            pass
        return self.text

    async def aclose(self) -> None:
        """Cancel the producer if it is still running."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._finished = True


@dataclass
class Answer:
    citations: list[ScoredFile]
    stream: AnswerStream


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------


async def answer_question(
    question: str,
    project_id: str,
    repo: Repository,
    retriever_config: RetrieverConfig | None = None,
    answer_config: AnswerConfig | None = None,
    executor: RetryExecutor | None = None,
) -> Answer:
    """Retrieve context for *question* and start streaming a grounded answer.

    Args:
        question: Free-text question about the project's code.
        project_id: Project whose files are searched.
        repo: Open Repository instance.
        retriever_config: Embedding model + similarity threshold + top_k.
        answer_config: Generation model settings.
        executor: RetryExecutor wrapping the question embedding call.

    Returns:
        Answer whose ``stream`` is already being fed in the background.

    Raises:
        ProjectNotFound: Unknown project id.
        EmbeddingModelMismatch: Project embedded with a different model.
    """
    retriever_config = retriever_config or RetrieverConfig()
    answer_config = answer_config or AnswerConfig()
    executor = executor or RetryExecutor()

    if repo.get_project(project_id) is None:
        raise ProjectNotFound(project_id)

    query_embedding = await executor.execute(
        lambda: llm_client.embed(retriever_config.embedding_model, question)
    )
    citations = search(repo, query_embedding, project_id, retriever_config)
    logger.info("Retrieved %d files for question", len(citations))

    messages = build_prompt(question, citations)
    stream = AnswerStream()
    stream.start(
        llm_client.stream_completion(
            answer_config.generation_model,
            messages,
            max_tokens=answer_config.max_tokens,
            temperature=answer_config.temperature,
        )
    )
    return Answer(citations=citations, stream=stream)
