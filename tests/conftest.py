"""
Pytest configuration and fixtures for the ingestion / RAG pipeline tests.
"""

import hashlib
import uuid
from typing import Any, Dict, List, Optional

import pytest
from langchain_core.documents import Document as LCDocument
from langchain_core.language_models.llms import LLM
from pydantic import Field

from common.config import LLMConfig, RetrievalConfig
from docstore.document_store import DocumentStore
from ingestion.document_models import initial_operation_state
from ingestion.hash_utils import sha256_text
from ingestion.pipeline_runner import (
    DEFAULT_STAGE_ORDER,
    PipelineRunner,
    build_default_registry,
)
from models.llm import LlmService


# =============================================================================
# Test doubles
# =============================================================================


class EchoLLM(LLM):
    """Deterministic completion model: one distinct answer per distinct prompt."""

    prompts: List[str] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "echo"

    def _call(self, prompt: str, stop=None, run_manager=None, **kwargs: Any) -> str:
        self.prompts.append(prompt)
        digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16]
        return f"<think>drafting an answer</think>\nSummary {digest}"


class FailingLLM(LLM):
    @property
    def _llm_type(self) -> str:
        return "failing"

    def _call(self, prompt: str, stop=None, run_manager=None, **kwargs: Any) -> str:
        raise RuntimeError("model unavailable")


class ConstantLLM(LLM):
    """Gives the same answer to every prompt."""

    answer: str = "This file defines helpers."

    @property
    def _llm_type(self) -> str:
        return "constant"

    def _call(self, prompt: str, stop=None, run_manager=None, **kwargs: Any) -> str:
        return self.answer


class FakeVectorIndex:
    """
    In-memory stand-in for ChromaStore. Search ranks entries by the number of
    query words found in their content, entries without any are not returned.
    """

    def __init__(self):
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.fail_on_add = False

    def add_document(self, content: str, metadata: Dict[str, Any]) -> str:
        if self.fail_on_add:
            raise ConnectionError("index unreachable")
        entry_id = str(uuid.uuid4())
        self.entries[entry_id] = {"content": content, "metadata": dict(metadata)}
        return entry_id

    def _matches(self, metadata: Dict[str, Any], where: Dict[str, Any]) -> bool:
        return all(metadata.get(k) == v for k, v in where.items())

    def delete_by_filter(self, where: Dict[str, Any]) -> int:
        ids = [i for i, e in self.entries.items() if self._matches(e["metadata"], where)]
        for i in ids:
            del self.entries[i]
        return len(ids)

    def delete_by_source(self, source_name: str) -> int:
        return self.delete_by_filter({"source_name": source_name})

    def similarity_search(
        self, query: str, k: int = 5, where: Optional[Dict[str, Any]] = None
    ) -> List[LCDocument]:
        words = set(query.lower().split())
        scored = []
        for e in self.entries.values():
            if where and not self._matches(e["metadata"], where):
                continue
            score = len(words & set(e["content"].lower().split()))
            if score:
                scored.append((score, e))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            LCDocument(page_content=e["content"], metadata=dict(e["metadata"]))
            for _, e in scored[:k]
        ]

    def by_hash(self, content_hash: str) -> List[Dict[str, Any]]:
        return [
            e for e in self.entries.values() if e["metadata"].get("content_hash") == content_hash
        ]

    def as_hit(self, content_hash: str) -> LCDocument:
        entry = self.by_hash(content_hash)[0]
        return LCDocument(page_content=entry["content"], metadata=dict(entry["metadata"]))


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def store():
    """Fresh in-memory SQLite document store."""
    s = DocumentStore.from_url("sqlite://")
    yield s
    s.close()


@pytest.fixture
def vector_index():
    return FakeVectorIndex()


@pytest.fixture
def echo_llm():
    return EchoLLM()


@pytest.fixture
def llm_service(echo_llm):
    return LlmService(LLMConfig(), llm_factory=lambda name: echo_llm)


@pytest.fixture
def failing_llm_service():
    return LlmService(LLMConfig(), llm_factory=lambda name: FailingLLM())


@pytest.fixture
def constant_llm_service():
    return LlmService(LLMConfig(), llm_factory=lambda name: ConstantLLM())


@pytest.fixture
def registry(store, llm_service, vector_index):
    return build_default_registry(
        store, llm_service, vector_index, chunk_size=2000, chunk_overlap=200
    )


@pytest.fixture
def runner(store, registry):
    return PipelineRunner(store, registry, stage_order=DEFAULT_STAGE_ORDER)


@pytest.fixture
def retrieval_cfg():
    return RetrievalConfig(k=5, refine_query=False)


# =============================================================================
# Sample data fixtures
# =============================================================================


@pytest.fixture
def make_root(store):
    """Create a root record the way the ingestion coordinator does."""

    def _make(
        content: str,
        source_name: str = "/src/app/module.py",
        language: Optional[str] = "python",
        extension: str = "py",
        stages=DEFAULT_STAGE_ORDER,
    ):
        return store.create(
            content_hash=sha256_text(content),
            source_name=source_name,
            parent_hash=None,
            content=content,
            meta={"language": language, "file_extension": extension},
            operation_state=initial_operation_state(stages),
        )

    return _make


@pytest.fixture
def long_text():
    """About 5400 characters of prose with unique, newline-separated lines."""
    return "\n".join(
        f"Line {i:03d}: the ingestion service records event number {i} in the audit log."
        for i in range(70)
    )


@pytest.fixture
def source_tree(tmp_path):
    root = tmp_path / "source-code"
    (root / "pkg" / "sub").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "pkg" / "main.py").write_text("def main():\n    return 42\n")
    (root / "pkg" / "sub" / "util.js").write_text("export const answer = () => 42;\n")
    (root / "docs" / "README.md").write_text("# Project\n\nHow to run the service.\n")
    (root / "docs" / "notes.txt").write_text("plain text notes\n")
    (root / "pkg" / "image.png").write_bytes(b"\x89PNG\r\n")
    return root
