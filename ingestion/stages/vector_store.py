from __future__ import annotations

from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import Document
from ingestion.stages.base import StageOptions, StageResult

log = get_logger(__name__)

VECTOR_STORE_STAGE = "store_in_vector_db"


class VectorStoreStage:
    """
    Index a document's content. Existing entries for the same content_hash
    are dropped first so reprocessing never leaves duplicates in the index.
    Index errors are not caught here: they must fail the stage.
    """

    name = VECTOR_STORE_STAGE

    def __init__(self, store: DocumentStore, vector_index):
        self.store = store
        self.vector_index = vector_index

    def apply(self, document: Document, options: StageOptions) -> StageResult:
        metadata = dict(document.meta or {})
        metadata["content_hash"] = document.content_hash
        metadata["source_name"] = document.source_name
        metadata["parent_hash"] = document.parent_hash

        self.vector_index.delete_by_filter({"content_hash": document.content_hash})
        entry_id = self.vector_index.add_document(document.content or "", metadata)

        document.vector_store_id = entry_id
        self.store.save(document)
        return StageResult.success(self.name, f"Data stored in vector DB: {entry_id}")
