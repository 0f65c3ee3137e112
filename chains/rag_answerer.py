from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

from langchain_core.documents import Document

from chains.prompts import ANSWER_FROM_CONTEXT_TEMPLATE, REFINE_QUERY_TEMPLATE
from common.config import RetrievalConfig
from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.cleaners import clean_search_query, strip_reasoning
from models.llm import LlmService
from retrieval.context_assembler import RetrievalContextAssembler

log = get_logger(__name__)

NO_CONTEXT_ANSWER = "I don't know. No relevant context was found."


@dataclass(frozen=True)
class RagAnswer:
    question: str
    refined_query: str
    context: str
    answer: str
    sources: List[Dict[str, Any]] = field(default_factory=list)


def _format_sources(docs: Sequence[Document]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for d in docs:
        out.append(
            {
                "source_name": d.metadata.get("source_name"),
                "content_hash": d.metadata.get("content_hash"),
                "summary_of": d.metadata.get("summary_of"),
                "from_line": d.metadata.get("from_line"),
                "to_line": d.metadata.get("to_line"),
                "snippet": d.page_content[:300],
            }
        )
    return out


class RagAnswerer:
    """
    Question answering over the indexed documents:
      1) optionally rewrite the question into a search query
      2) similarity search in the vector index
      3) rebuild a deduplicated context (summaries next to their chunks)
      4) answer the ORIGINAL question from that context only

    Defaults come from the retrieval config, explicit ask() args override.
    """

    def __init__(
        self,
        llm: LlmService,
        vector_index,
        store: DocumentStore,
        cfg: Optional[RetrievalConfig] = None,
    ):
        self.llm = llm
        self.vector_index = vector_index
        self.cfg = cfg or RetrievalConfig()
        self.assembler = RetrievalContextAssembler(store)

    def refine_query(self, question: str, model: Optional[str] = None) -> str:
        raw = self.llm.generate(
            REFINE_QUERY_TEMPLATE,
            {"user_question": question},
            model=model or self.llm.refine_model,
        )
        refined = clean_search_query(raw)
        if not refined:
            log.warning("Query refinement returned nothing, searching with the question")
            return question
        log.info("Refined query: %s", refined)
        return refined

    def retrieve(
        self,
        question: str,
        *,
        refine_query: Optional[bool] = None,
        k: Optional[int] = None,
        model: Optional[str] = None,
    ) -> tuple[str, List[Document], str]:
        """(search query, hits, assembled context)"""
        refine = self.cfg.refine_query if refine_query is None else refine_query
        query = self.refine_query(question, model=model) if refine else question
        docs = self.vector_index.similarity_search(query, k=k or self.cfg.k)
        context = self.assembler.assemble(docs)
        return query, docs, context

    def ask(
        self,
        question: str,
        *,
        refine_query: Optional[bool] = None,
        k: Optional[int] = None,
        model: Optional[str] = None,
    ) -> RagAnswer:
        query, docs, context = self.retrieve(
            question, refine_query=refine_query, k=k, model=model
        )
        if not docs:
            return RagAnswer(question, query, "", NO_CONTEXT_ANSWER, [])

        try:
            answer = self.llm.generate(
                ANSWER_FROM_CONTEXT_TEMPLATE,
                {"user_query": question, "context_data": context},
                model=model or self.cfg.model,
            )
        except Exception as e:
            log.error("QA LLM invocation failed: %s", e, exc_info=True)
            raise

        return RagAnswer(
            question=question,
            refined_query=query,
            context=context,
            answer=strip_reasoning(str(answer)),
            sources=_format_sources(docs),
        )

    def ask_stream(
        self,
        question: str,
        *,
        refine_query: Optional[bool] = None,
        k: Optional[int] = None,
        model: Optional[str] = None,
    ) -> Iterator[str]:
        """Same flow as ask(), the answer arrives token by token."""
        _, docs, context = self.retrieve(
            question, refine_query=refine_query, k=k, model=model
        )
        if not docs:
            yield NO_CONTEXT_ANSWER
            return
        prompt = ANSWER_FROM_CONTEXT_TEMPLATE.format(
            user_query=question, context_data=context
        )
        yield from self.llm.stream(prompt, model=model or self.cfg.model)
