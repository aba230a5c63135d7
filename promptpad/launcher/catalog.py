"""In-memory prompt collection read by ranking and written by usage recording."""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from loguru import logger

from .errors import DocumentNotFoundError
from .models import Document, PromptIndex, utc_now


class PromptCatalog:
    """
    The live document collection.

    Documents are kept in insertion order (ranking ties follow it) and
    mutated in place by ``record_usage``, so results already holding a
    document see the new counters on the next ranking pass.
    """

    def __init__(self, documents: Optional[Iterable[Document]] = None):
        self._documents: Dict[str, Document] = {}
        for document in documents or []:
            self.add(document)

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._documents

    def documents(self) -> List[Document]:
        return list(self._documents.values())

    def get(self, document_id: str) -> Document:
        try:
            return self._documents[document_id]
        except KeyError:
            raise DocumentNotFoundError(f"Unknown prompt id {document_id}") from None

    def add(self, document: Document) -> None:
        """Add or replace a document, keyed by id."""
        self._documents[document.id] = document

    def replace_all(self, documents: Iterable[Document]) -> None:
        self._documents = {d.id: d for d in documents}
        logger.debug(f"Catalog now holds {len(self._documents)} prompts")

    def remove(self, document_id: str) -> Document:
        document = self.get(document_id)
        del self._documents[document_id]
        return document

    def record_usage(self, document_id: str, when: Optional[datetime] = None) -> Document:
        """Bump the use count and last-used time of one document."""
        document = self.get(document_id)
        document.use_count += 1
        document.last_used_at = when or utc_now()
        logger.debug(f"Recorded use of {document.name!r} (count={document.use_count})")
        return document

    @property
    def folders(self) -> List[str]:
        return sorted({d.folder for d in self._documents.values()})

    @property
    def tags(self) -> List[str]:
        return sorted({t for d in self._documents.values() for t in d.tags})

    def snapshot(self) -> PromptIndex:
        return PromptIndex(documents=self.documents())
