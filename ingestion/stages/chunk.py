from __future__ import annotations

from typing import Any, Dict, List, Sequence

from langchain_core.documents import Document as LCDocument
from langchain_text_splitters import RecursiveCharacterTextSplitter

from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import Document, initial_operation_state
from ingestion.hash_utils import sha256_text
from ingestion.languages import splitter_language
from ingestion.stages.base import StageOptions, StageResult

log = get_logger(__name__)

CHUNK_STAGE = "chunk_content"


def build_splitter(
    language: str | None, chunk_size: int, chunk_overlap: int
) -> RecursiveCharacterTextSplitter:
    """
    Language-aware separators when LangChain knows the language, plain
    paragraph/line/word separators otherwise.
    """
    lang = splitter_language(language)
    if lang is not None:
        try:
            return RecursiveCharacterTextSplitter.from_language(
                lang,
                chunk_size=chunk_size,
                chunk_overlap=chunk_overlap,
                add_start_index=True,
            )
        except ValueError:
            log.warning("No separators for language %s, using the text splitter", lang)
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        separators=["\n\n", "\n", " ", ""],
        add_start_index=True,
    )


def _line_range(content: str, start: int, piece: str) -> Dict[str, int]:
    if start < 0:
        return {}
    from_line = content.count("\n", 0, start) + 1
    return {"from_line": from_line, "to_line": from_line + piece.count("\n")}


class ChunkStage:
    """
    Split a document into overlapping, content-addressed child documents.
    A document that fits in one chunk is left alone: its own content is
    summarized and indexed downstream.
    """

    name = CHUNK_STAGE

    def __init__(
        self,
        store: DocumentStore,
        child_stages: Sequence[str],
        chunk_size: int = 2000,
        chunk_overlap: int = 200,
    ):
        self.store = store
        self.child_stages = list(child_stages)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, document: Document, options: StageOptions) -> List[LCDocument]:
        size = options.get("chunk_size")
        overlap = options.get("chunk_overlap")
        splitter = build_splitter(
            document.language,
            self.chunk_size if size is None else int(size),
            self.chunk_overlap if overlap is None else int(overlap),
        )
        return splitter.create_documents([document.content or ""])

    def apply(self, document: Document, options: StageOptions) -> StageResult:
        splits = self.split(document, options)
        if len(splits) <= 1:
            return StageResult.success(
                self.name, f"Total split is {len(splits)}. Skipping it."
            )

        if not document.source_name:
            raise ValueError(f"Document {document.id} has no source_name to chunk.")

        content = document.content or ""
        total = len(splits)
        created = 0
        for num, split in enumerate(splits, start=1):
            piece = split.page_content
            content_hash = sha256_text(piece)

            if self.store.exists(document.source_name, content_hash):
                continue
            existing = self.store.get_by_hash(content_hash)
            if existing is not None:
                # this source is reopened when the owner of the record is superseded
                if existing.add_shared_owner(document.source_name):
                    self.store.save(existing)
                log.info(
                    "Chunk %s of %s already stored under %s, sharing it",
                    num,
                    document.source_name,
                    existing.source_name,
                )
                continue

            meta: Dict[str, Any] = {
                "language": document.language,
                "file_extension": (document.meta or {}).get("file_extension"),
                "start_index": split.metadata.get("start_index", -1),
                "split_num": num,
                "split_total": total,
            }
            meta.update(_line_range(content, meta["start_index"], piece))

            self.store.create(
                content_hash=content_hash,
                source_name=document.source_name,
                parent_hash=document.content_hash,
                content=piece,
                meta=meta,
                operation_state=initial_operation_state(self.child_stages),
            )
            created += 1

        log.info(
            "Chunked %s into %d pieces (%d new)", document.source_name, total, created
        )
        return StageResult.success(self.name, f"Chunks created: {created}/{total}")
