from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

import orjson
from tqdm import tqdm

from common.logger import get_logger
from docstore.document_store import DocumentStore
from ingestion.document_models import Document, DocumentStatus, initial_operation_state
from ingestion.hash_utils import sha256_text
from ingestion.languages import ext_to_lang, normalize_extension
from ingestion.scanner import ContentScanner
from ingestion.stages.chunk import CHUNK_STAGE
from ingestion.stages.summarize import SUMMARIZE_STAGE

log = get_logger(__name__)


class IngestionCoordinator:
    """
    Scan the configured folders and keep one root Document per file:
    - unchanged file (same path, same hash) -> nothing is written
    - new or changed file -> every record of that path (root, chunks,
      summaries) and its index entries are dropped, a fresh root is created
    - other files that shared a dropped record are reopened so they own it again
    """

    def __init__(
        self,
        store: DocumentStore,
        roots: Iterable[Path | str],
        extensions: Iterable[str],
        vector_index=None,
        scanner: Optional[ContentScanner] = None,
        manifest_path: Optional[Path] = None,
        show_progress: bool = True,
    ):
        self.store = store
        self.roots = [Path(r).resolve() for r in roots]
        self.extensions = [normalize_extension(e) for e in extensions if e.strip()]
        self.vector_index = vector_index
        self.scanner = scanner or ContentScanner()
        self.manifest_path = manifest_path
        self.show_progress = show_progress

    def discover_files(self) -> List[str]:
        """Every matching file under every root, each path once."""
        seen = set()
        paths: List[str] = []
        for root in self.roots:
            for p in self.scanner.scan(root, self.extensions):
                if p not in seen:
                    seen.add(p)
                    paths.append(p)
        return paths

    def load_master_data(
        self, stage_names: Sequence[str], registry=None
    ) -> List[Document]:
        """
        Create root records for new and changed files, each with every stage
        in stage_names set to unset. Returns the created records.
        """
        if registry is not None:
            registry.validate(stage_names)

        files = self.discover_files()
        log.info("Discovered %d files", len(files))

        iterator = tqdm(files, desc="Loading files") if self.show_progress else files
        created: List[Document] = []
        deferred: List[str] = []
        for path in iterator:
            doc = self._ingest_file(path, stage_names, deferred)
            if doc is not None:
                created.append(doc)

        # duplicates of a file that was superseded later in this same pass
        for path in deferred:
            doc = self._ingest_file(path, stage_names)
            if doc is not None:
                created.append(doc)

        log.info("Master data load finished. %d entries created/updated.", len(created))
        if self.manifest_path is not None:
            self._write_manifest(created)
        return created

    def _ingest_file(
        self, path: str, stage_names: Sequence[str], deferred: Optional[List[str]] = None
    ) -> Optional[Document]:
        content = self.scanner.read_content(path)
        content_hash = sha256_text(content)

        if self.store.get_root(path, content_hash) is not None:
            return None  # unchanged

        # changed or new: drop the old version and everything derived from it
        self._supersede(path)

        if self.store.exists_hash(content_hash):
            other = self.store.get_by_hash(content_hash)
            log.warning(
                "Content of %s already ingested as %s, skipping",
                path,
                other.source_name if other else content_hash[:12],
            )
            if deferred is not None:
                deferred.append(path)
            return None

        ext = normalize_extension(Path(path).suffix)
        return self.store.create(
            content_hash=content_hash,
            source_name=path,
            parent_hash=None,
            content=content,
            meta={"language": ext_to_lang(ext), "file_extension": ext},
            status=DocumentStatus.PENDING.value,
            operation_state=initial_operation_state(stage_names),
        )

    def _supersede(self, path: str) -> int:
        stale = self.store.get_by_source(path)
        if not stale:
            return 0
        lost = {d.content_hash for d in stale}
        co_owners = sorted({s for d in stale for s in d.shared_with if s != path})

        deleted = self.store.delete_by_source(path)
        if self.vector_index is not None:
            self.vector_index.delete_by_source(path)

        for source_name in co_owners:
            self._reopen_shared(source_name, lost)
        return deleted

    def _reopen_shared(self, source_name: str, lost: Set[str]) -> None:
        """
        Another source relied on records that were just deleted: rechunk its
        roots and resummarize records linked to a deleted summary.
        """
        reopened = 0
        for doc in self.store.get_by_source(source_name):
            changed = False
            if doc.is_root:
                changed = doc.reopen(CHUNK_STAGE)
            if doc.linked_summary in lost:
                doc.link_summary(None)
                doc.reopen(SUMMARIZE_STAGE)
                changed = True
            if changed:
                self.store.save(doc)
                reopened += 1
        if reopened:
            log.info("Reopened %d records of %s that shared deleted content", reopened, source_name)

    def _write_manifest(self, docs: List[Document]) -> None:
        out = Path(self.manifest_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(
            orjson.dumps([d.to_manifest() for d in docs], option=orjson.OPT_INDENT_2)
        )
        log.info("Wrote manifest to %s", out)
