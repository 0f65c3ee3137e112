from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
from langchain_chroma.vectorstores import Chroma
from langchain_core.documents import Document as LCDocument
from langchain_core.embeddings import Embeddings
from tenacity import retry, stop_after_attempt, wait_exponential

from common.config import yaml_config
from common.logger import get_logger
from retrieval.filters import normalize_where

log = get_logger(__name__)

_SCALARS = (str, int, float, bool)


@dataclass
class VectorEntry:
    id: str
    metadata: Dict[str, Any]
    content: Optional[str]


def clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Chroma only stores scalar metadata: drop None, serialize the rest to JSON."""
    out: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, _SCALARS):
            out[key] = value
        else:
            out[key] = orjson.dumps(value, default=str).decode("utf-8")
    return out


class ChromaStore:
    def __init__(
        self,
        persist_dir: Path | str | None = None,
        collection_name: str | None = None,
        embeddings: Embeddings | None = None,
        embedding_model: str | None = None,
        ephemeral: bool = False,
    ):
        """
        Wrapper for Chroma vector store with HuggingFace embeddings.
        Uses config/config.yaml for defaults; ephemeral=True keeps the
        collection in memory.
        """
        self.persist_dir = (
            None if ephemeral else str(persist_dir or yaml_config.vectorstore.persist_dir)
        )
        self.collection_name = collection_name or yaml_config.vectorstore.collection
        if embeddings is None:
            from langchain_huggingface.embeddings import HuggingFaceEmbeddings

            embeddings = HuggingFaceEmbeddings(
                model_name=embedding_model or yaml_config.vectorstore.embedding_model
            )
        self.embeddings = embeddings
        self._db = Chroma(
            collection_name=self.collection_name,
            embedding_function=self.embeddings,
            persist_directory=self.persist_dir,
            collection_metadata={"hnsw:space": "cosine"},
        )

    @property
    def db(self) -> Chroma:
        return self._db

    @retry(
        reraise=True,
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
    )
    def add_document(self, content: str, metadata: Dict[str, Any]) -> str:
        """Embed and store one text, return its entry id."""
        entry_id = str(uuid.uuid4())
        ids = self._db.add_texts(
            texts=[content], metadatas=[clean_metadata(metadata)], ids=[entry_id]
        )
        return ids[0] if ids else entry_id

    def similarity_search(
        self, query: str, k: int = 5, where: Optional[Dict[str, Any]] = None
    ) -> List[LCDocument]:
        return self._db.similarity_search(
            query, k=k, filter=normalize_where(where) if where else None
        )

    def delete_by_filter(self, where: Dict[str, Any]) -> int:
        """
        Delete all entries whose metadata matches the filter. Accepts a Chroma
        filter or the shorthand {"content_hash": "..."}.
        """
        where = normalize_where(where)
        if not where:
            raise ValueError("Refusing to delete with an empty filter, use reset().")
        res = self._db.get(where=where, include=[])
        ids = res.get("ids", [])
        if ids:
            self._db.delete(ids=ids)
        log.debug("Deleted %d entries matching %s", len(ids), where)
        return len(ids)

    def delete_by_source(self, source_name: str) -> int:
        """
        Delete all entries whose metadata.source_name matches the given path.
        """
        n = self.delete_by_filter({"source_name": source_name})
        log.info("Deleted %d entries for source '%s'", n, source_name)
        return n

    def count(self) -> int:
        return len(self._db.get(include=[]).get("ids", []))

    def list_recent(self, limit: int = 50) -> List[VectorEntry]:
        """The last `limit` entries in insertion order."""
        offset = max(0, self.count() - limit)
        res = self._db.get(
            limit=limit, offset=offset, include=["metadatas", "documents"]
        )
        docs = res.get("documents") or []
        return [
            VectorEntry(
                id=entry_id,
                metadata=(res.get("metadatas") or [])[i] or {},
                content=docs[i] if i < len(docs) else None,
            )
            for i, entry_id in enumerate(res.get("ids", []))
        ]

    def reset(self) -> None:
        """Drop and recreate the collection."""
        log.info("Resetting collection '%s'", self.collection_name)
        self._db.reset_collection()
