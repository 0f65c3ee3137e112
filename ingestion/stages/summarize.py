from __future__ import annotations

from typing import Sequence

from chains.prompts import (
    SUMMARIZE_CODE_TEMPLATE,
    SUMMARIZE_TEXT_TEMPLATE,
    format_context_info,
)
from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.cleaners import clean_llm_output
from ingestion.document_models import Document, initial_operation_state
from ingestion.hash_utils import sha256_text
from ingestion.languages import is_code_language
from ingestion.stages.base import StageOptions, StageResult
from models.llm import LlmService

log = get_logger(__name__)

SUMMARIZE_STAGE = "summarize_content"

# chunk metadata carried over to its summary
_INHERITED_META = (
    "language",
    "file_extension",
    "from_line",
    "to_line",
    "split_num",
    "split_total",
)


class SummarizeStage:
    name = SUMMARIZE_STAGE

    def __init__(
        self,
        store: DocumentStore,
        llm: LlmService,
        child_stages: Sequence[str],
        model: str | None = None,
    ):
        self.store = store
        self.llm = llm
        self.child_stages = list(child_stages)
        self.model = model

    def summarize(self, document: Document) -> str:
        template = (
            SUMMARIZE_CODE_TEMPLATE
            if is_code_language(document.language)
            else SUMMARIZE_TEXT_TEMPLATE
        )
        raw = self.llm.generate(
            template,
            {
                "context_info": format_context_info(
                    document.language, document.source_name
                ),
                "input_text": document.content,
            },
            model=self.model,
        )
        return clean_llm_output(raw)

    def apply(self, document: Document, options: StageOptions) -> StageResult:
        if not document.source_name:
            raise ValueError(f"Document {document.id} has no source_name to summarize.")

        if not (document.content or "").strip():
            return StageResult.success(self.name, "Skipped: content is empty.")

        summary = self.summarize(document)
        if not summary:
            raise ValueError(f"The model returned an empty summary for document {document.id}.")

        content_hash = sha256_text(summary)
        existing = self.store.get_by_hash(content_hash)
        if existing is not None:
            if existing.summary_of == document.content_hash:
                return StageResult.success(
                    self.name,
                    f"The summary of {document.source_name} ({content_hash[:12]}) already exists.",
                )
            # identical text was already stored for another record: link to it
            if existing.add_shared_owner(document.source_name):
                self.store.save(existing)
            document.link_summary(content_hash)
            self.store.save(document)
            log.info(
                "Summary of %s (%s) is identical to %s, linked",
                document.source_name,
                document.content_hash[:12],
                content_hash[:12],
            )
            return StageResult.success(self.name, f"Linked to summary {content_hash[:12]}")

        if document.linked_summary:
            document.link_summary(None)
            self.store.save(document)

        meta = {k: (document.meta or {}).get(k) for k in _INHERITED_META}
        meta["summary_of"] = document.content_hash

        self.store.create(
            content_hash=content_hash,
            source_name=document.source_name,
            parent_hash=document.content_hash,
            content=summary,
            meta=meta,
            operation_state=initial_operation_state(self.child_stages),
        )
        log.info("Summarized %s (%s)", document.source_name, document.content_hash[:12])
        return StageResult.success(self.name, "Summarized")
