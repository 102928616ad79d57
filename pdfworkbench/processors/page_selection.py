"""Page selection state shared by the thumbnails grid and the tools."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from ..models.pdf_document import PDFDocument, PageKey

INSERTION_ORDER = "insertion"
NATURAL_ORDER = "natural"


class PageSelectionModel:
    """Track which pages of which documents are selected.

    Membership is kept in insertion order: the custom merge mode uses the order
    in which pages were clicked, while extraction asks for natural order
    (document order, then page number). Keys are never re-sorted in place.

    Keys for pages or documents the model has never heard of are accepted and
    simply stay in the set until the owning session clears them.
    """

    def __init__(self) -> None:
        self._selected: Dict[PageKey, None] = {}
        self._document_order: List[str] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Document bookkeeping
    # ------------------------------------------------------------------
    def register_document(self, document: PDFDocument) -> None:
        with self._lock:
            if document.id not in self._document_order:
                self._document_order.append(document.id)

    def reorder_documents(self, document_ids: Iterable[str]) -> None:
        with self._lock:
            self._document_order = list(document_ids)

    def remove_document(self, document_id: str) -> None:
        """Forget a document and every selected page that belongs to it."""

        with self._lock:
            if document_id in self._document_order:
                self._document_order.remove(document_id)
            self._selected = {
                key: None for key in self._selected if key.document_id != document_id
            }

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def toggle(self, key: PageKey) -> bool:
        """Flip membership of ``key`` and return the new state."""

        with self._lock:
            if key in self._selected:
                del self._selected[key]
                return False
            self._selected[key] = None
            return True

    def select(self, key: PageKey) -> None:
        with self._lock:
            self._selected.setdefault(key, None)

    def deselect(self, key: PageKey) -> None:
        with self._lock:
            self._selected.pop(key, None)

    def select_all(self, document: PDFDocument) -> None:
        """Select every page of one document, leaving other documents alone."""

        with self._lock:
            if document.id not in self._document_order:
                self._document_order.append(document.id)
            for key in document.page_keys():
                self._selected.setdefault(key, None)

    def clear(self, document: Optional[PDFDocument] = None) -> None:
        """Clear one document's selection, or everything when none is given."""

        with self._lock:
            if document is None:
                self._selected = {}
                return
            self._selected = {
                key: None for key in self._selected if key.document_id != document.id
            }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_selected(self, key: PageKey) -> bool:
        with self._lock:
            return key in self._selected

    def __len__(self) -> int:
        with self._lock:
            return len(self._selected)

    def ordered_selection(self, order: str = INSERTION_ORDER,
                          document_id: Optional[str] = None) -> List[PageKey]:
        with self._lock:
            keys = [
                key for key in self._selected
                if document_id is None or key.document_id == document_id
            ]
            if order == INSERTION_ORDER:
                return keys
            if order != NATURAL_ORDER:
                raise ValueError(f"Unknown selection order '{order}'")

            positions = {doc_id: index for index, doc_id in enumerate(self._document_order)}
            unknown = len(positions)
            return sorted(
                keys,
                key=lambda key: (positions.get(key.document_id, unknown), key.document_id, key.page_number),
            )

    def selected_page_numbers(self, document_id: str) -> List[int]:
        """Ascending page numbers selected in one document."""

        return [
            key.page_number
            for key in self.ordered_selection(NATURAL_ORDER, document_id=document_id)
        ]

    def to_dict(self) -> Dict[str, List[Dict[str, object]]]:
        return {"selected": [key.to_dict() for key in self.ordered_selection()]}
