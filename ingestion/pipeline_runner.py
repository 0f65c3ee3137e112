from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import Document, DocumentStatus, OperationStatus
from ingestion.stages.base import Stage, StageOptions, StageResult, run_stage
from ingestion.stages.chunk import CHUNK_STAGE, ChunkStage
from ingestion.stages.summarize import SUMMARIZE_STAGE, SummarizeStage
from ingestion.stages.vector_store import VECTOR_STORE_STAGE, VectorStoreStage

log = get_logger(__name__)

DEFAULT_STAGE_ORDER = (CHUNK_STAGE, SUMMARIZE_STAGE, VECTOR_STORE_STAGE)


class PipelineError(Exception):
    pass


class UnknownStageError(PipelineError):
    def __init__(self, names: Iterable[str]):
        self.names = sorted(set(names))
        super().__init__(f"Operations not registered: {', '.join(self.names)}")


class DocumentLockedError(PipelineError):
    """Another runner holds the document."""

    def __init__(self, document: Document):
        self.document_id = document.id
        super().__init__(f"The document record {document.id} is locked at the current time.")


@dataclass
class RunResult:
    document_id: Optional[int]
    success: bool
    message: Optional[str] = None
    results: List[StageResult] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "success": self.success,
            "message": self.message,
            "results": [r.as_dict() for r in self.results],
        }


StageFactory = Callable[[], Stage]


class StageRegistry:
    """Stage name -> factory. Names are checked when a runner is assembled."""

    def __init__(self) -> None:
        self._factories: Dict[str, StageFactory] = {}

    def register(self, name: str, factory: StageFactory) -> None:
        if name in self._factories:
            log.warning("Operation '%s' is already registered. Overwriting.", name)
        self._factories[name] = factory

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def names(self) -> List[str]:
        return list(self._factories)

    def validate(self, names: Iterable[str]) -> None:
        missing = [n for n in names if n not in self._factories]
        if missing:
            raise UnknownStageError(missing)

    def create(self, name: str) -> Stage:
        self.validate([name])
        return self._factories[name]()


def build_default_registry(
    store: DocumentStore,
    llm,
    vector_index,
    stage_order: Sequence[str] = DEFAULT_STAGE_ORDER,
    chunk_size: int = 2000,
    chunk_overlap: int = 200,
    summary_model: str | None = None,
) -> StageRegistry:
    """
    Registry with the chunk / summarize / index stages. Child records only
    get the stages that come after their creator in stage_order.
    """

    def after(name: str) -> List[str]:
        order = list(stage_order)
        return order[order.index(name) + 1 :] if name in order else []

    registry = StageRegistry()
    registry.register(
        CHUNK_STAGE,
        lambda: ChunkStage(
            store, after(CHUNK_STAGE), chunk_size=chunk_size, chunk_overlap=chunk_overlap
        ),
    )
    registry.register(
        SUMMARIZE_STAGE,
        lambda: SummarizeStage(store, llm, after(SUMMARIZE_STAGE), model=summary_model),
    )
    registry.register(VECTOR_STORE_STAGE, lambda: VectorStoreStage(store, vector_index))
    return registry


class PipelineRunner:
    """
    Run a document's stages one after the other in a fixed order.

    - a record already locked is rejected with DocumentLockedError
    - stages marked success are skipped, so a later run resumes where the
      previous one stopped
    - the first failing stage ends the run
    - the lock is always released
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: StageRegistry,
        stage_order: Sequence[str] = DEFAULT_STAGE_ORDER,
        options: Optional[StageOptions] = None,
    ):
        registry.validate(stage_order)
        self.store = store
        self.registry = registry
        self.stage_order = list(stage_order)
        self.options = dict(options or {})
        self._stages: Dict[str, Stage] = {n: registry.create(n) for n in self.stage_order}

    def ordered_stage_names(self, document: Document) -> List[str]:
        ops = document.operation_state or {}
        known = [n for n in self.stage_order if n in ops]
        unknown = [n for n in ops if n not in self._stages]
        return known + unknown

    def run(self, document: Document, options: Optional[StageOptions] = None) -> RunResult:
        if not document.operation_state:
            if document.is_status(DocumentStatus.PENDING):
                # nothing to run counts as done, keeps run_pending from looping
                document.status = DocumentStatus.COMPLETED.value
                self.store.save(document)
            return RunResult(document.id, success=True, message="No operation set")

        if document.is_locked or not self.store.try_lock(document):
            raise DocumentLockedError(document)

        opts = {**self.options, **(options or {})}
        result = RunResult(document.id, success=True)
        log.info("Starting processing for record ID: %s", document.id)

        try:
            for name in self.ordered_stage_names(document):
                if document.stage_status(name) == OperationStatus.SUCCESS.value:
                    result.results.append(StageResult.already_done(name))
                    continue

                stage = self._stages.get(name)
                if stage is None:
                    err = UnknownStageError([name])
                    document.operation_error(name)
                    self.store.save(document)
                    result.results.append(StageResult.failure(name, str(err), err))
                    result.success = False
                    break

                stage_result = run_stage(stage, document, self.store, opts)
                result.results.append(stage_result)
                if not stage_result.ok:
                    log.error(
                        "Error executing operation '%s' for record ID %s: %s",
                        name,
                        document.id,
                        stage_result.message,
                    )
                    result.success = False
                    break
        finally:
            self._release(document)

        result.message = "Completed" if result.success else "Stopped on failure"
        log.info(
            "Finished processing for record ID: %s (status=%s)", document.id, document.status
        )
        return result

    def _release(self, document: Document) -> None:
        if document.is_locked:
            document.refresh_status()
            self.store.save(document)

    def run_pending(
        self,
        include_failed: bool = False,
        max_errors: int = 3,
        limit: Optional[int] = None,
        options: Optional[StageOptions] = None,
    ) -> List[RunResult]:
        """
        Work through random pending records (and failed ones below max_errors
        when include_failed) until none are left.
        """
        results: List[RunResult] = []
        while limit is None or len(results) < limit:
            doc = self.store.random_to_process(
                include_failed=include_failed, max_errors=max_errors
            )
            if doc is None:
                break
            try:
                results.append(self.run(doc, options))
            except DocumentLockedError as e:
                log.warning("%s Skipping it.", e)
                continue
        log.info("Processed %d records", len(results))
        return results
