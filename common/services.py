from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from chains.rag_answerer import RagAnswerer
from common.config import GlobalYAMLConfig, yaml_config
from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.ingest_pipeline import IngestionCoordinator
from ingestion.pipeline_runner import PipelineRunner, build_default_registry
from models.llm import LlmService
from vectorstore.chroma_store import ChromaStore

log = get_logger(__name__)


@dataclass
class Services:
    """The capabilities one process works with, built once and passed down."""

    cfg: GlobalYAMLConfig
    store: DocumentStore
    vector_index: ChromaStore
    llm: LlmService

    def runner(self) -> PipelineRunner:
        stages = self.cfg.pipeline.stages
        registry = build_default_registry(
            self.store,
            self.llm,
            self.vector_index,
            stage_order=stages,
            chunk_size=self.cfg.chunking.chunk_size,
            chunk_overlap=self.cfg.chunking.chunk_overlap,
        )
        return PipelineRunner(self.store, registry, stage_order=stages)

    def coordinator(self, roots=None, extensions=None) -> IngestionCoordinator:
        return IngestionCoordinator(
            self.store,
            roots=roots or self.cfg.app.scan_roots,
            extensions=extensions or self.cfg.app.extensions,
            vector_index=self.vector_index,
            manifest_path=Path(self.cfg.app.cache_dir)
            / f"manifest_{self.cfg.vectorstore.collection}.json",
        )

    def answerer(self) -> RagAnswerer:
        return RagAnswerer(self.llm, self.vector_index, self.store, self.cfg.retrieval)

    def close(self) -> None:
        self.store.close()


def build_services(cfg: Optional[GlobalYAMLConfig] = None) -> Services:
    cfg = cfg or yaml_config
    Path(cfg.app.data_dir).mkdir(parents=True, exist_ok=True)
    Path(cfg.app.cache_dir).mkdir(parents=True, exist_ok=True)

    store = DocumentStore.from_url(cfg.database.url, echo=cfg.database.echo)
    vector_index = ChromaStore(
        persist_dir=cfg.vectorstore.persist_dir,
        collection_name=cfg.vectorstore.collection,
        embedding_model=cfg.vectorstore.embedding_model,
    )
    llm = LlmService(cfg.llm)
    log.info(
        "Services ready: db=%s collection=%s llm=%s",
        cfg.database.url,
        cfg.vectorstore.collection,
        cfg.llm.default_model,
    )
    return Services(cfg=cfg, store=store, vector_index=vector_index, llm=llm)
