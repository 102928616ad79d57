import io
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import PyPDF2
from PyPDF2.errors import PdfReadError, DependencyError
from PyPDF2.generic import ArrayObject, ContentStream, NameObject, NumberObject
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image
from reportlab.pdfgen import canvas

from ..errors import DocumentUnreadable, ProcessingFailed

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Content stream operators that put something visible on a page
PAINT_OPERATORS = {
    b"f", b"F", b"f*", b"S", b"s", b"B", b"B*", b"b", b"b*",
    b"Do", b"sh", b"Tj", b"TJ", b"'", b'"', b"INLINE IMAGE",
}

# Every permission bit from 3 to 32 set, as PyPDF2 expects for "allow all"
ALL_PERMISSIONS = (2 ** 31 - 1) - 3
PERMISSION_PRINT = 1 << 2
PERMISSION_MODIFY = 1 << 3
PERMISSION_COPY = 1 << 4
PERMISSION_ANNOTATE = 1 << 5

PageSource = Tuple[PyPDF2.PdfReader, int]
OverlayPainter = Callable[[canvas.Canvas, float, float, int], None]


class PDFCodec:
    """
    Thin wrapper over PyPDF2, pdf2image and reportlab.

    Everything that parses, renders or writes PDF bytes goes through this class
    so the assembler can be exercised against a mock.
    """

    def __init__(self, producer: str = "PDF Workbench"):
        self.producer = producer

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    def open(self, data: bytes, password: Optional[str] = None) -> PyPDF2.PdfReader:
        """
        Parse PDF bytes, decrypting them when a password is needed.

        Raises:
            DocumentUnreadable: corrupt bytes, not a PDF, or locked without
                the right password
        """
        if not data:
            raise DocumentUnreadable("The file is empty")

        try:
            reader = PyPDF2.PdfReader(io.BytesIO(data))
            if reader.is_encrypted:
                # Some files are encrypted with an empty user password
                result = reader.decrypt(password or "")
                if not result:
                    if password:
                        raise DocumentUnreadable("Incorrect password for this PDF")
                    raise DocumentUnreadable("This PDF is password-protected")
            # Touch the page tree so structural damage surfaces here
            len(reader.pages)
            return reader
        except DocumentUnreadable:
            raise
        except DependencyError as e:
            logger.error(f"Missing crypto dependency for encrypted PDF: {e}")
            raise DocumentUnreadable("This PDF uses an encryption method that is not supported")
        except (PdfReadError, ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
            logger.error(f"Failed to parse PDF: {e}")
            raise DocumentUnreadable("Failed to load PDF file. Please ensure it's a valid PDF document.")

    def page_count(self, reader: PyPDF2.PdfReader) -> int:
        return len(reader.pages)

    def extract_metadata(self, reader: PyPDF2.PdfReader) -> Dict[str, Any]:
        """
        Extract the document information dictionary
        """
        metadata = {}

        try:
            info = reader.metadata
        except PdfReadError as e:
            logger.warning(f"Could not read document info: {e}")
            info = None

        if info:
            metadata.update({
                'title': str(info.get('/Title', '') or ''),
                'author': str(info.get('/Author', '') or ''),
                'subject': str(info.get('/Subject', '') or ''),
                'creator': str(info.get('/Creator', '') or ''),
                'producer': str(info.get('/Producer', '') or ''),
                'creation_date': str(info.get('/CreationDate', '') or ''),
                'modification_date': str(info.get('/ModDate', '') or '')
            })

        return metadata

    def is_blank_page(self, page: PyPDF2.PageObject) -> bool:
        contents = page.get_contents()
        if contents is None:
            return True
        if not isinstance(contents, ContentStream):
            contents = ContentStream(contents, page.pdf)
        operators = {operator for _, operator in contents.operations}
        return not (operators & PAINT_OPERATORS)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def render_pages(self, data: bytes, dpi: int, first_page: Optional[int] = None,
                     last_page: Optional[int] = None,
                     password: Optional[str] = None) -> List[Image.Image]:
        """
        Rasterize a page range with poppler (both bounds 1-based, inclusive)
        """
        try:
            return convert_from_bytes(
                data,
                dpi=dpi,
                first_page=first_page,
                last_page=last_page,
                userpw=password,
            )
        except PDFInfoNotInstalledError as e:
            logger.error(f"Poppler is not available: {e}")
            raise ProcessingFailed("PDF rendering is not available on this server")
        except (PDFPageCountError, PDFSyntaxError) as e:
            logger.error(f"Poppler could not read PDF: {e}")
            raise DocumentUnreadable("Failed to render PDF. The file may be corrupted or password-protected.")

    def render_page(self, data: bytes, page_number: int, dpi: int,
                    password: Optional[str] = None) -> Image.Image:
        images = self.render_pages(data, dpi, page_number, page_number, password)
        if len(images) != 1:
            raise ProcessingFailed(f"Failed to render page {page_number}")
        return images[0]

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def extract_pages(self, reader: PyPDF2.PdfReader, page_numbers: Sequence[int],
                      metadata: Optional[Dict[str, str]] = None) -> bytes:
        """
        Copy the given 1-based pages, in the given order, into a new PDF
        """
        return self.concatenate([(reader, number) for number in page_numbers], metadata=metadata)

    def concatenate(self, sources: Sequence[PageSource],
                    bookmarks: Optional[Sequence[Tuple[str, int]]] = None,
                    metadata: Optional[Dict[str, str]] = None,
                    compress: bool = False) -> bytes:
        """
        Build one PDF from (reader, page_number) pairs.

        Args:
            sources: pages to copy, in output order
            bookmarks: (title, 0-based output page index) outline entries
            metadata: document info values keyed without the leading slash
            compress: flate-encode each copied page's content stream
        """
        writer = PyPDF2.PdfWriter()
        for reader, page_number in sources:
            writer.add_page(reader.pages[page_number - 1])

        if compress:
            for page in writer.pages:
                page.compress_content_streams()

        for title, index in bookmarks or []:
            writer.add_outline_item(title, index)

        self._apply_metadata(writer, metadata)
        return self._to_bytes(writer)

    def reencode(self, reader: PyPDF2.PdfReader, jpeg_quality: Optional[int],
                 max_image_side: Optional[int] = None,
                 metadata: Optional[Dict[str, str]] = None) -> Tuple[bytes, int]:
        """
        Rewrite a document with compressed content streams.

        When ``jpeg_quality`` is set, embedded raster images are re-encoded as
        JPEG at that quality and downscaled so their longest side is at most
        ``max_image_side``. Returns the new bytes and the number of images
        that were replaced.
        """
        writer = PyPDF2.PdfWriter()
        for page in reader.pages:
            writer.add_page(page)

        replaced = 0
        seen = set()
        for page in writer.pages:
            page.compress_content_streams()
            if jpeg_quality is not None:
                replaced += self._reencode_page_images(page, jpeg_quality, max_image_side, seen)

        self._apply_metadata(writer, metadata)
        return self._to_bytes(writer), replaced

    def encrypt(self, reader: PyPDF2.PdfReader, user_password: str,
                owner_password: Optional[str], permissions: int,
                metadata: Optional[Dict[str, str]] = None) -> bytes:
        writer = PyPDF2.PdfWriter()
        for page in reader.pages:
            writer.add_page(page)
        self._apply_metadata(writer, metadata)
        writer.encrypt(
            user_password=user_password,
            owner_password=owner_password or user_password,
            use_128bit=True,
            permissions_flag=permissions,
        )
        return self._to_bytes(writer)

    def overlay(self, reader: PyPDF2.PdfReader, page_numbers: Sequence[int],
                painter: Optional[OverlayPainter],
                metadata: Optional[Dict[str, str]] = None) -> bytes:
        """
        Copy pages and stamp each one with whatever ``painter`` draws.

        The painter receives a reportlab canvas sized to the page, the page
        width and height in points, and the 1-based output position.
        """
        writer = PyPDF2.PdfWriter()
        for position, page_number in enumerate(page_numbers, start=1):
            page = reader.pages[page_number - 1]
            if painter is not None:
                # Stamp while the page still belongs to the reader; merging
                # after add_page mixes the stamp's object numbers with the writer's.
                width = float(page.mediabox.width)
                height = float(page.mediabox.height)
                stamp = self._paint_stamp(painter, width, height, position)
                page.merge_page(stamp)
            writer.add_page(page)

        self._apply_metadata(writer, metadata)
        return self._to_bytes(writer)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _paint_stamp(self, painter: OverlayPainter, width: float, height: float,
                     position: int) -> PyPDF2.PageObject:
        buffer = io.BytesIO()
        stamp = canvas.Canvas(buffer, pagesize=(width, height))
        painter(stamp, width, height, position)
        stamp.showPage()
        stamp.save()
        buffer.seek(0)
        return PyPDF2.PdfReader(buffer).pages[0]

    def _apply_metadata(self, writer: PyPDF2.PdfWriter, metadata: Optional[Dict[str, str]]) -> None:
        if metadata is None:
            return
        info = {f"/{key}": str(value) for key, value in metadata.items() if value}
        info.setdefault("/Producer", self.producer)
        info.setdefault("/CreationDate", datetime.now().strftime("D:%Y%m%d%H%M%S"))
        writer.add_metadata(info)

    def _to_bytes(self, writer: PyPDF2.PdfWriter) -> bytes:
        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()

    def _reencode_page_images(self, page: PyPDF2.PageObject, quality: int,
                              max_side: Optional[int], seen: set) -> int:
        return self._reencode_resource_images(page.get("/Resources"), quality, max_side, seen)

    def _reencode_resource_images(self, resources, quality: int,
                                  max_side: Optional[int], seen: set) -> int:
        """Re-encode the images in a resource dictionary, descending into form XObjects."""
        if resources is None:
            return 0
        xobjects = resources.get_object().get("/XObject")
        if xobjects is None:
            return 0
        xobjects = xobjects.get_object()

        replaced = 0
        for name in list(xobjects.keys()):
            reference = xobjects.raw_get(name)
            identity = getattr(reference, "idnum", None) or id(reference)
            if identity in seen:
                continue
            seen.add(identity)

            xobject = xobjects[name].get_object()
            if xobject.get("/Subtype") == "/Form":
                replaced += self._reencode_resource_images(xobject.get("/Resources"), quality, max_side, seen)
                continue
            if xobject.get("/Subtype") != "/Image" or "/SMask" in xobject or "/Mask" in xobject:
                continue

            try:
                image = self._xobject_to_image(xobject)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping undecodable image {name}: {e}")
                continue
            if image is None:
                continue

            if max_side and max(image.size) > max_side:
                image.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")

            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=quality, optimize=True)
            encoded = buffer.getvalue()
            if len(encoded) >= len(xobject._data):
                continue

            xobject._data = encoded
            xobject.decoded_self = None
            xobject[NameObject("/Filter")] = NameObject("/DCTDecode")
            xobject[NameObject("/Width")] = NumberObject(image.width)
            xobject[NameObject("/Height")] = NumberObject(image.height)
            xobject[NameObject("/BitsPerComponent")] = NumberObject(8)
            xobject[NameObject("/ColorSpace")] = NameObject(
                "/DeviceGray" if image.mode == "L" else "/DeviceRGB"
            )
            for key in ("/DecodeParms", "/Decode"):
                if key in xobject:
                    del xobject[key]
            replaced += 1

        return replaced

    def _xobject_to_image(self, xobject) -> Optional[Image.Image]:
        filters = xobject.get("/Filter")
        if filters is None:
            filters = []
        elif isinstance(filters, ArrayObject):
            filters = [str(item) for item in filters]
        else:
            filters = [str(filters)]

        if filters == ["/DCTDecode"]:
            image = Image.open(io.BytesIO(xobject._data))
            image.load()
            return image

        if "/DCTDecode" in filters or xobject.get("/BitsPerComponent") != 8:
            return None
        mode = {"/DeviceRGB": "RGB", "/DeviceGray": "L"}.get(str(xobject.get("/ColorSpace")))
        if mode is None:
            return None

        # get_data() undoes every filter chain PyPDF2 supports
        try:
            raw = xobject.get_data()
        except (NotImplementedError, PdfReadError) as e:
            logger.debug(f"Unsupported image filters {filters}: {e}")
            return None
        size = (int(xobject["/Width"]), int(xobject["/Height"]))
        return Image.frombytes(mode, size, raw)
