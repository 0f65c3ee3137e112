from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from common.logger import get_logger
from docstore.database import init_db, make_engine, make_session_factory
from ingestion.document_models import Document, DocumentStatus

log = get_logger(__name__)


class DocumentStore:
    """
    Repository around the documents table.

    Every write commits immediately: a stage that created a child record must
    see it on the next existence check, even if a later stage of the same run
    fails.
    """

    def __init__(self, session: Session):
        self.session = session

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "DocumentStore":
        engine = make_engine(url, echo=echo)
        init_db(engine)
        return cls(make_session_factory(engine)())

    def close(self) -> None:
        self.session.close()

    # --- writes ----------------------------------------------------------

    def create(self, **fields: Any) -> Document:
        fields.setdefault("meta", {})
        fields.setdefault("operation_state", {})
        fields.setdefault("status", DocumentStatus.PENDING.value)
        fields.setdefault("error_count", 0)
        doc = Document(**fields)
        self.session.add(doc)
        self.session.commit()
        log.debug("Created %r", doc)
        return doc

    def save(self, doc: Document) -> Document:
        self.session.add(doc)
        self.session.commit()
        return doc

    def try_lock(self, doc: Document) -> bool:
        """
        Claim a record for one runner: compare-and-set on the persisted
        status, so two runners racing on the same row cannot both win.
        """
        res = self.session.execute(
            update(Document)
            .where(
                Document.id == doc.id,
                Document.status != DocumentStatus.LOCKED.value,
            )
            .values(status=DocumentStatus.LOCKED.value)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(doc)
        return res.rowcount == 1

    def delete_by_source(self, source_name: str) -> int:
        """Delete a file's root record and everything derived from it."""
        res = self.session.execute(
            delete(Document)
            .where(Document.source_name == source_name)
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()
        if res.rowcount:
            log.info("Deleted %d records for source '%s'", res.rowcount, source_name)
        return res.rowcount

    def purge(self) -> int:
        res = self.session.execute(delete(Document))
        self.session.commit()
        log.info("Purged %d records", res.rowcount)
        return res.rowcount

    # --- reads -----------------------------------------------------------

    def get(self, doc_id: int) -> Optional[Document]:
        return self.session.get(Document, doc_id)

    def get_by_hash(self, content_hash: str) -> Optional[Document]:
        return self.session.scalars(
            select(Document).where(Document.content_hash == content_hash)
        ).first()

    def get_root(self, source_name: str, content_hash: str) -> Optional[Document]:
        if not source_name.strip():
            raise ValueError("Invalid source_name provided to get_root.")
        return self.session.scalars(
            select(Document).where(
                Document.source_name == source_name,
                Document.content_hash == content_hash,
                Document.parent_hash.is_(None),
            )
        ).first()

    def get_by_source(self, source_name: str) -> List[Document]:
        return list(
            self.session.scalars(
                select(Document)
                .where(Document.source_name == source_name)
                .order_by(Document.id)
            )
        )

    def get_children(self, parent_hash: str) -> List[Document]:
        return list(
            self.session.scalars(
                select(Document)
                .where(Document.parent_hash == parent_hash)
                .order_by(Document.id)
            )
        )

    def get_summary_of(self, content_hash: str) -> Optional[Document]:
        """
        The generated summary whose meta.summary_of points at content_hash,
        else the identical summary the record was linked to.
        """
        summary = self.session.scalars(
            select(Document).where(
                Document.meta["summary_of"].as_string() == content_hash
            )
        ).first()
        if summary is not None:
            return summary
        doc = self.get_by_hash(content_hash)
        if doc is not None and doc.linked_summary:
            return self.get_by_hash(doc.linked_summary)
        return None

    def exists(self, source_name: str, content_hash: str) -> bool:
        if not source_name.strip():
            raise ValueError("Invalid source_name provided to exists.")
        if not content_hash.strip():
            raise ValueError("Invalid content_hash provided to exists.")
        found = self.session.scalar(
            select(Document.id).where(
                Document.source_name == source_name,
                Document.content_hash == content_hash,
            )
        )
        return found is not None

    def exists_hash(self, content_hash: str) -> bool:
        found = self.session.scalar(
            select(Document.id).where(Document.content_hash == content_hash)
        )
        return found is not None

    def random_to_process(
        self, include_failed: bool = False, max_errors: int = 3
    ) -> Optional[Document]:
        """
        Random pending record; with include_failed also records in error
        that failed fewer than max_errors times.
        """
        cond = Document.status == DocumentStatus.PENDING.value
        if include_failed:
            cond = cond | (
                (Document.status == DocumentStatus.ERROR.value)
                & (Document.error_count < max_errors)
            )
        return self.session.scalars(
            select(Document).where(cond).order_by(func.random()).limit(1)
        ).first()

    def status_counts(self) -> Dict[str, int]:
        rows = self.session.execute(
            select(Document.status, func.count(Document.id)).group_by(Document.status)
        )
        return {status: n for status, n in rows}

    def count(self) -> int:
        return self.session.scalar(select(func.count(Document.id))) or 0
