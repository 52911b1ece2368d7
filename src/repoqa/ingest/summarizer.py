"""Code summarizer: commit-diff and source-file summaries via LiteLLM.

Two prompts:
- commit diffs: the full unified diff goes in verbatim; errors propagate so the
  commit pipeline can record its failure sentinel.
- source files: content truncated to ``max_file_chars``; errors return "" so
  the file is skipped without halting the embedding pipeline.
"""

from __future__ import annotations

import logging

from repoqa.concurrency import RetryExecutor
from repoqa.rag import llm_client

logger = logging.getLogger(__name__)

_DIFF_PROMPT = """\
You are an expert programmer analyzing a git diff for summarization.

Git Diff Format Guide:
1. File Metadata Format:
   Example metadata block:
   diff --git a/lib/index.js b/lib/index.js
   index aadf091..bfef003 100644
   --- a/lib/index.js
   +++ b/lib/index.js

   This indicates that 'lib/index.js' was modified. (This is just an example)

2. Line Modification Indicators:
   - Lines starting with '+': Added content
   - Lines starting with '-': Removed content
   - Lines without '+' or '-': Contextual code (not part of changes)

Output Format:
- Write concise, clear summaries of the changes
- Include relevant filenames in [square brackets] when mentioning 2 files or fewer
- Omit filenames if more than 2 files were modified for that change
- Focus on the actual changes, not the context lines

Example Summary Format:
- "Increased max recordings limit from 10 to 100 [packages/server/recordings_api.ts], [packages/server/constants.ts]"
- "Fixed GitHub action name typo [.github/workflows/gpt-commit-summarizer.yml]"
- "Relocated octokit initialization [src/octokit.ts], [src/index.ts]"
- "Implemented OpenAI completions API [packages/utils/apis/openai.ts]"
- "Adjusted numeric tolerance in test suite" (multiple files affected)

Note: These examples are for format reference only. Please provide your own \
original summary based on the actual diff content.

Please summarize the following diff:

{diff}"""

_FILE_SYSTEM = (
    "You are an intelligent senior software engineer who specialises in "
    "onboarding junior software engineers onto projects."
)

_FILE_PROMPT = """\
You are onboarding a junior software engineer and explaining to them the \
purpose of the {file_name} file.

Here is the code:
---
{code}
---

Give a summary no more than 100 words of the code above."""

_DEFAULT_MODEL = "gemini/gemini-1.5-flash"
_DEFAULT_MAX_FILE_CHARS = 10_000


class CodeSummarizer:
    """Summarize commit diffs and source files with an LLM.

    Args:
        model:          LiteLLM model string for summary generation.
        executor:       RetryExecutor wrapping every LLM call (backoff on 429).
        max_file_chars: Source content is truncated to this many characters
                        before summarization.
        max_tokens:     Maximum tokens in a generated summary.
    """

    def __init__(
        self,
        model: str = _DEFAULT_MODEL,
        executor: RetryExecutor | None = None,
        max_file_chars: int = _DEFAULT_MAX_FILE_CHARS,
        max_tokens: int = 512,
    ) -> None:
        self._model = model
        self._executor = executor or RetryExecutor()
        self._max_file_chars = max_file_chars
        self._max_tokens = max_tokens

    async def summarize_diff(self, diff: str) -> str:
        """Summarize a unified diff. Errors propagate to the caller."""
        prompt = _DIFF_PROMPT.format(diff=diff)
        summary = await self._executor.execute(
            lambda: llm_client.complete(
                self._model,
                [{"role": "user", "content": prompt}],
                max_tokens=self._max_tokens,
            )
        )
        return summary.strip()

    async def summarize_file(self, file_name: str, content: str) -> str:
        """Summarize one source file in at most 100 words.

        Returns "" if generation fails (non-fatal: the file is skipped).
        """
        prompt = _FILE_PROMPT.format(
            file_name=file_name,
            code=content[: self._max_file_chars],
        )
        try:
            summary = await self._executor.execute(
                lambda: llm_client.complete(
                    self._model,
                    [
                        {"role": "system", "content": _FILE_SYSTEM},
                        {"role": "user", "content": prompt},
                    ],
                    max_tokens=self._max_tokens,
                )
            )
        except Exception as exc:
            logger.warning("Summary failed for %s: %s", file_name, exc)
            return ""
        return summary.strip()
