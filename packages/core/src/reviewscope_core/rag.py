"""Retrieval contract for repository-wide context.

The retriever may return nothing at any time (index not built, provider
error). The pipeline treats an empty result or a raised error the same way:
no extra context, lower confidence, never a failed job.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from reviewscope_core.diff import ParsedFile
    from reviewscope_core.job import ReviewJob
    from reviewscope_core.plans import PlanLimits
    from reviewscope_store.models import Repository

logger = logging.getLogger(__name__)

# Vector search is not worth a round trip for a PR this small.
MIN_FILES_FOR_RAG = 2


@dataclass(frozen=True)
class Snippet:
    file: str
    content: str
    score: float = 0.0


class ContextRetriever(ABC):
    @abstractmethod
    def ensure_collection(self) -> None:
        """Create the backing collection if it does not exist yet."""

    @abstractmethod
    def retrieve(self, repo_key: str, query: str, k: int) -> list[Snippet]: ...


class NullRetriever(ContextRetriever):
    """Retriever for deployments without a vector store."""

    def ensure_collection(self) -> None:
        return None

    def retrieve(self, repo_key: str, query: str, k: int) -> list[Snippet]:
        return []


def fetch_rag_context(
    retriever: ContextRetriever,
    job: ReviewJob,
    repository: Repository,
    limits: PlanLimits,
    files: Sequence[ParsedFile],
) -> str:
    if len(files) < MIN_FILES_FOR_RAG:
        return ""
    if repository.indexed_at is None or not limits.allow_rag:
        return ""

    query = f"PR: {job.pr_title}\nFiles: {', '.join(f.path for f in files)}"
    try:
        retriever.ensure_collection()
        snippets = retriever.retrieve(str(job.repository_id), query, limits.rag_k)
    except Exception as e:
        logger.warning("RAG retrieval failed for %s: %s", job.repository_full_name, e)
        return ""

    return "\n\n".join(f"File: {s.file}\nRelevant Snippet:\n{s.content}" for s in snippets)
