import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..config import Settings
from ..errors import DocumentNotFound, InvalidOptions
from ..models.pdf_document import PDFDocument
from .batch_packager import BatchPackager
from .batch_runner import BatchRunner
from .document_assembler import DocumentAssembler
from .page_selection import PageSelectionModel
from .pdf_codec import PDFCodec
from .thumbnail_extractor import ThumbnailExtractor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class ToolSession:
    """
    Everything one user is working on: uploaded documents in display order,
    their thumbnails and the current page selection.
    """
    extractor: ThumbnailExtractor
    assembler: DocumentAssembler
    packager: BatchPackager
    runner: BatchRunner
    max_documents: int = 20
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    documents: List[PDFDocument] = field(default_factory=list)
    selection: PageSelectionModel = field(default_factory=PageSelectionModel)
    created_at: datetime = field(default_factory=datetime.now)
    last_used: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ToolSession":
        codec = PDFCodec(producer=settings.producer)
        return cls(
            extractor=ThumbnailExtractor(codec, dpi=settings.thumbnail_dpi,
                                         max_size=settings.thumbnail_size),
            assembler=DocumentAssembler(codec, producer=settings.producer),
            packager=BatchPackager(),
            runner=BatchRunner(settings.batch_max_workers),
            max_documents=settings.max_files_per_session,
        )

    def touch(self) -> None:
        self.last_used = datetime.now()

    def add_document(self, data: bytes, name: str, password: Optional[str] = None,
                     render_thumbnails: bool = True) -> PDFDocument:
        """
        Parse an upload and render its thumbnails.

        A document that fails to load is not added, and the session's other
        documents are unaffected.
        """
        if len(self.documents) >= self.max_documents:
            raise InvalidOptions(f"A session can hold at most {self.max_documents} files")

        document = self.extractor.open_document(data, name, password)
        if render_thumbnails:
            self.extractor.extract(document)

        self.documents.append(document)
        self.selection.register_document(document)
        self.touch()
        logger.info(f"Session {self.id}: added {name} ({document.page_count} pages)")
        return document

    def get_document(self, document_id: str) -> PDFDocument:
        for document in self.documents:
            if document.id == document_id:
                return document
        raise DocumentNotFound("Document not found")

    def remove_document(self, document_id: str) -> PDFDocument:
        document = self.get_document(document_id)
        self.documents.remove(document)
        self.selection.remove_document(document_id)
        self.touch()
        logger.info(f"Session {self.id}: removed {document.name}")
        return document

    def reorder_documents(self, document_ids: List[str]) -> None:
        """Put documents in the given order; the ids must be a permutation."""
        current = {document.id: document for document in self.documents}
        if sorted(document_ids) != sorted(current):
            raise InvalidOptions("New order must list every document exactly once")
        self.documents = [current[document_id] for document_id in document_ids]
        self.selection.reorder_documents(document_ids)
        self.touch()

    def to_dict(self, include_thumbnails: bool = False) -> Dict[str, object]:
        return {
            "session_id": self.id,
            "created_at": self.created_at.isoformat(),
            "documents": [document.to_dict(include_thumbnails) for document in self.documents],
            "selection": self.selection.to_dict()["selected"],
        }


class SessionRegistry:
    """Live sessions by id, expiring those idle longer than ``ttl``."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.ttl = timedelta(minutes=settings.session_ttl_minutes)
        self._sessions: Dict[str, ToolSession] = {}
        self._lock = threading.Lock()

    def create(self) -> ToolSession:
        session = ToolSession.from_settings(self.settings)
        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Created session {session.id}")
        return session

    def get(self, session_id: str) -> ToolSession:
        self.expire()
        with self._lock:
            session = self._sessions[session_id]
        session.touch()
        return session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed:
            logger.info(f"Deleted session {session_id}")
        return removed is not None

    def expire(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        with self._lock:
            stale = [sid for sid, session in self._sessions.items() if now - session.last_used > self.ttl]
            for session_id in stale:
                del self._sessions[session_id]
        if stale:
            logger.info(f"Expired {len(stale)} idle sessions")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
