from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from common.logger import get_logger
from ingestion.document_models import Document

log = get_logger(__name__)

StageOptions = Dict[str, Any]


@dataclass
class StageResult:
    name: str
    ok: bool
    message: Optional[str] = None
    error: Optional[BaseException] = None
    skipped: bool = False

    @classmethod
    def success(cls, name: str, message: str) -> "StageResult":
        return cls(name=name, ok=True, message=message)

    @classmethod
    def failure(
        cls, name: str, message: str, error: Optional[BaseException] = None
    ) -> "StageResult":
        return cls(name=name, ok=False, message=message, error=error)

    @classmethod
    def already_done(cls, name: str) -> "StageResult":
        return cls(
            name=name,
            ok=True,
            message="Operation already executed, skipping it.",
            skipped=True,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "skipped": self.skipped,
            "message": self.message,
            "error": repr(self.error) if self.error else None,
        }


class Stage(Protocol):
    """
    One named transformation over a single Document. Implementations must be
    idempotent: re-applying on the same content creates no duplicate records.
    """

    name: str

    def apply(self, document: Document, options: StageOptions) -> StageResult:
        ...


def run_stage(stage: Stage, document: Document, store, options: StageOptions) -> StageResult:
    """
    Apply one stage and record the outcome on the document. Exceptions from
    the stage (or the LLM / index / store behind it) become a failed result.
    """
    try:
        result = stage.apply(document, options)
    except Exception as e:
        log.error(
            "Stage '%s' raised on document %s: %s", stage.name, document.id, e,
            exc_info=True,
        )
        result = StageResult.failure(
            stage.name, "The operation terminated with error", e
        )

    if result.ok:
        document.operation_success(stage.name)
    else:
        document.operation_error(stage.name)
    store.save(document)
    return result
