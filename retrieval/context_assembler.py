from __future__ import annotations

from typing import List, Sequence, Set

from langchain_core.documents import Document as LCDocument

from common.logger import get_logger
from docstore.document_store import DocumentStore

log = get_logger(__name__)

BLOCK_SEPARATOR = "\n\n"


class RetrievalContextAssembler:
    """
    Turn ranked search hits into one context string.

    A chunk and its summary travel together, summary first, whichever of the
    two the search returned. Each underlying content hash is emitted at most
    once, so a chunk hit and its summary hit produce a single block.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def assemble(self, fragments: Sequence[LCDocument]) -> str:
        processed: Set[str] = set()
        blocks: List[str] = []

        for fragment in fragments:
            meta = fragment.metadata or {}
            content_hash = meta.get("content_hash")
            summary_of = meta.get("summary_of")

            if content_hash in processed or (summary_of and summary_of in processed):
                continue

            if summary_of:
                blocks.append(fragment.page_content)
                original = self.store.get_by_hash(summary_of)
                if original is not None:
                    blocks.append(original.content or "")
                else:
                    log.warning("Summarized record %s not found", summary_of[:12])
                processed.add(summary_of)
            elif content_hash:
                summary = self.store.get_summary_of(content_hash)
                if summary is not None and summary.content_hash not in processed:
                    blocks.append(summary.content or "")
                    processed.add(summary.content_hash)
                blocks.append(fragment.page_content)
            else:
                # hits indexed without a hash cannot be deduplicated
                blocks.append(fragment.page_content)

            if content_hash:
                processed.add(content_hash)

        return BLOCK_SEPARATOR.join(b for b in blocks if b)
