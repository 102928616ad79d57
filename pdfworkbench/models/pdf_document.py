import base64
import io
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from PIL import Image


@dataclass(frozen=True)
class PageKey:
    """Identifies one page across every document uploaded to a session"""
    document_id: str
    page_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {"document_id": self.document_id, "page_number": self.page_number}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PageKey":
        document_id = payload.get("document_id", payload.get("documentId"))
        page_number = payload.get("page_number", payload.get("pageNumber"))
        if not document_id or page_number is None:
            raise ValueError("Page key requires document_id and page_number")
        return cls(document_id=str(document_id), page_number=int(page_number))


@dataclass
class PDFPage:
    document_id: str
    page_number: int
    width: int = 0
    height: int = 0
    thumbnail: Optional[Image.Image] = None

    @property
    def key(self) -> PageKey:
        return PageKey(self.document_id, self.page_number)

    def thumbnail_base64(self) -> Optional[str]:
        if self.thumbnail is None:
            return None
        buffer = io.BytesIO()
        self.thumbnail.save(buffer, format="PNG")
        return base64.b64encode(buffer.getvalue()).decode()

    def to_dict(self, include_thumbnail: bool = False) -> Dict[str, Any]:
        payload = {
            "document_id": self.document_id,
            "page_number": self.page_number,
            "width": self.width,
            "height": self.height,
        }
        if include_thumbnail:
            payload["thumbnail"] = self.thumbnail_base64()
        return payload


@dataclass
class PDFDocument:
    name: str
    data: bytes
    page_count: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    pages: List[PDFPage] = field(default_factory=list)
    password: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def byte_size(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        if self.name.lower().endswith(".pdf"):
            return self.name[:-4]
        return self.name

    def page_keys(self) -> List[PageKey]:
        return [PageKey(self.id, number) for number in range(1, self.page_count + 1)]

    def to_dict(self, include_thumbnails: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "byte_size": self.byte_size,
            "page_count": self.page_count,
            "metadata": self.metadata,
            "pages": [page.to_dict(include_thumbnails) for page in self.pages],
        }
