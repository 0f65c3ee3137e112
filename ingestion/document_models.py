from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import JSON, Column, Index, Integer, String, Text

from docstore.database import Base


class DocumentStatus(str, Enum):
    PENDING = "pending"
    LOCKED = "locked"
    COMPLETED = "completed"
    ERROR = "error"


class OperationStatus(str, Enum):
    UNSET = "unset"
    SUCCESS = "success"
    ERROR = "error"


def initial_operation_state(stage_names: Iterable[str]) -> Dict[str, str]:
    return {name: OperationStatus.UNSET.value for name in stage_names}


class Document(Base):
    """
    One unit of content: a scanned file (root), a chunk of it, or a generated
    summary of a chunk, together with its processing state.

    - content_hash is the dedup key and the cross-reference id
    - parent_hash is None for roots
    - meta["summary_of"] marks a summary and points at the summarized chunk
    - meta["summary_hash"] links a chunk to an identical summary made for another record
    - meta["shared_with"] lists other sources that produced this same content
    - operation_state maps stage name -> unset | success | error
    """

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content_hash = Column(String(64), nullable=False, unique=True)
    source_name = Column(String(1024), nullable=True, index=True)
    parent_hash = Column(String(64), nullable=True)
    vector_store_id = Column(String(64), nullable=True)
    content = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    status = Column(
        String(20), nullable=False, default=DocumentStatus.PENDING.value, index=True
    )
    error_count = Column(Integer, nullable=False, default=0)
    operation_state = Column(JSON, nullable=False, default=dict)

    __table_args__ = (Index("idx_parent_hash", "parent_hash", "content_hash"),)

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} hash={(self.content_hash or '')[:12]} "
            f"source={self.source_name!r} status={self.status}>"
        )

    # --- relations -------------------------------------------------------

    @property
    def is_root(self) -> bool:
        return self.parent_hash is None

    @property
    def summary_of(self) -> Optional[str]:
        return (self.meta or {}).get("summary_of")

    @property
    def is_summary(self) -> bool:
        return self.summary_of is not None

    @property
    def language(self) -> Optional[str]:
        return (self.meta or {}).get("language")

    @property
    def linked_summary(self) -> Optional[str]:
        """Hash of a summary record produced for another document but identical to ours."""
        return (self.meta or {}).get("summary_hash")

    @property
    def shared_with(self) -> List[str]:
        """Other sources whose content also produced this exact record."""
        return list((self.meta or {}).get("shared_with") or [])

    def _set_meta(self, key: str, value: Any) -> None:
        meta = dict(self.meta or {})
        if value is None:
            meta.pop(key, None)
        else:
            meta[key] = value
        self.meta = meta

    def add_shared_owner(self, source_name: str) -> bool:
        if not source_name or source_name == self.source_name:
            return False
        owners = self.shared_with
        if source_name in owners:
            return False
        self._set_meta("shared_with", owners + [source_name])
        return True

    def link_summary(self, summary_hash: Optional[str]) -> None:
        self._set_meta("summary_hash", summary_hash)

    # --- status ----------------------------------------------------------

    def is_status(self, status: DocumentStatus) -> bool:
        return self.status == status.value

    @property
    def is_locked(self) -> bool:
        return self.is_status(DocumentStatus.LOCKED)

    def stage_status(self, name: str) -> str:
        return (self.operation_state or {}).get(name, OperationStatus.UNSET.value)

    def all_operations_succeeded(self) -> bool:
        return all(
            v == OperationStatus.SUCCESS.value
            for v in (self.operation_state or {}).values()
        )

    def remaining_operations(self) -> List[str]:
        return [
            name
            for name, v in (self.operation_state or {}).items()
            if v != OperationStatus.SUCCESS.value
        ]

    def _set_operation(self, name: str, value: OperationStatus) -> None:
        # reassign so the JSON column registers the change
        ops = dict(self.operation_state or {})
        ops[name] = value.value
        self.operation_state = ops

    def operation_success(self, name: str) -> None:
        self._set_operation(name, OperationStatus.SUCCESS)
        if self.all_operations_succeeded():
            self.status = DocumentStatus.COMPLETED.value
        elif not self.is_locked:
            self.status = DocumentStatus.PENDING.value

    def operation_error(self, name: str) -> None:
        self._set_operation(name, OperationStatus.ERROR)
        self.status = DocumentStatus.ERROR.value
        self.error_count = (self.error_count or 0) + 1

    def reopen(self, name: str) -> bool:
        """Mark a stage to run again. False when the document never had it."""
        if name not in (self.operation_state or {}):
            return False
        self._set_operation(name, OperationStatus.UNSET)
        if not self.is_locked:
            self.status = DocumentStatus.PENDING.value
        return True

    def refresh_status(self) -> None:
        """Leave the transient locked state for the status the stages imply."""
        if self.all_operations_succeeded():
            self.status = DocumentStatus.COMPLETED.value
        elif OperationStatus.ERROR.value in (self.operation_state or {}).values():
            self.status = DocumentStatus.ERROR.value
        else:
            self.status = DocumentStatus.PENDING.value

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "source_name": self.source_name,
            "parent_hash": self.parent_hash,
            "language": self.language,
            "status": self.status,
            "len": len(self.content or ""),
        }
