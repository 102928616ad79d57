import logging
from typing import Callable, Iterator, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..errors import ProcessingFailed
from ..models.pdf_document import PDFDocument, PDFPage
from .pdf_codec import PDFCodec

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ThumbnailExtractor:
    def __init__(self, codec: Optional[PDFCodec] = None, dpi: int = 72,
                 max_size: Tuple[int, int] = (200, 280), label_pages: bool = False):
        """
        Initialize ThumbnailExtractor

        Args:
            codec: PDF codec used for parsing and rendering
            dpi: Render resolution before the thumbnail is shrunk to fit
            max_size: Bounding box (width, height) for thumbnails
            label_pages: Draw the page number badge onto each thumbnail
        """
        self.codec = codec or PDFCodec()
        self.dpi = dpi
        self.max_size = max_size
        self.label_pages = label_pages

    def open_document(self, data: bytes, name: str, password: Optional[str] = None) -> PDFDocument:
        """
        Parse uploaded bytes into a PDFDocument without rendering anything

        Raises:
            DocumentUnreadable: if the bytes are not a readable PDF
        """
        logger.info(f"Loading PDF: {name} ({len(data)} bytes)")

        reader = self.codec.open(data, password)
        page_count = self.codec.page_count(reader)
        if page_count == 0:
            logger.warning(f"PDF {name} has no pages")

        return PDFDocument(
            name=name,
            data=data,
            page_count=page_count,
            metadata=self.codec.extract_metadata(reader),
            password=password,
        )

    def extract(self, document: PDFDocument,
                progress_callback: Optional[ProgressCallback] = None) -> List[PDFPage]:
        """
        Render a thumbnail for every page of the document, in page order.

        The page list on ``document`` is replaced only once every page has
        rendered, so a failure leaves the previous thumbnails in place.
        """
        logger.info(f"Extracting {document.page_count} thumbnails for {document.name}")

        images = self.codec.render_pages(document.data, self.dpi, password=document.password)
        if len(images) != document.page_count:
            raise ProcessingFailed(
                f"Rendered {len(images)} pages but {document.name} has {document.page_count}"
            )

        pages = []
        for index, image in enumerate(images):
            pages.append(self._build_page(document, index + 1, image))
            if progress_callback:
                progress_callback(index + 1, document.page_count)

        document.pages = pages
        return pages

    def iter_pages(self, document: PDFDocument) -> Iterator[PDFPage]:
        """
        Render and yield pages one at a time so callers can show them as they
        arrive. ``document.pages`` is updated once the last page is produced.
        """
        pages = []
        for page_number in range(1, document.page_count + 1):
            image = self.codec.render_page(document.data, page_number, self.dpi, document.password)
            page = self._build_page(document, page_number, image)
            pages.append(page)
            yield page

        document.pages = pages

    def _build_page(self, document: PDFDocument, page_number: int, image: Image.Image) -> PDFPage:
        thumbnail = image.copy()
        thumbnail.thumbnail(self.max_size, Image.Resampling.LANCZOS)
        if thumbnail.mode not in ("RGB", "L"):
            thumbnail = thumbnail.convert("RGB")
        if self.label_pages:
            thumbnail = self.add_page_number_to_image(thumbnail, page_number)

        return PDFPage(
            document_id=document.id,
            page_number=page_number,
            width=thumbnail.width,
            height=thumbnail.height,
            thumbnail=thumbnail,
        )

    def add_page_number_to_image(self, image: Image.Image, page_number: int) -> Image.Image:
        """
        Overlay page number on an image for clarity.
        """
        img = image.convert("RGB")
        draw = ImageDraw.Draw(img)

        try:
            font = ImageFont.truetype("DejaVuSans.ttf", 14)
        except (IOError, OSError):
            font = ImageFont.load_default()

        margin = 6
        padding = 4
        text = f"{page_number}"

        bbox = draw.textbbox((0, 0), text, font=font)
        text_width = bbox[2] - bbox[0]
        text_height = bbox[3] - bbox[1]

        # Top-right corner badge
        x = img.width - text_width - margin - padding
        y = margin

        draw.rectangle([x - padding, y - padding, x + text_width + padding, y + text_height + padding],
                       fill="#007bff", outline="#0056b3", width=1)
        draw.text((x, y), text, fill="white", font=font)

        return img
