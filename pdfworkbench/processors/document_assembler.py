import io
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import PyPDF2
from PIL import Image, UnidentifiedImageError

from ..errors import (
    InsufficientDocuments, InvalidOptions, NoPagesSelected, PipelineError, ProcessingFailed
)
from ..models.options import (
    ColorMode, CompressOptions, CompressionLevel, ImageExtractionOptions, ImageFormat,
    MergeMode, MergeOptions, OrganizeOptions, PageRange, ProtectOptions, SortOrder,
    SplitMode, SplitOptions, UnlockOptions, WatermarkOptions
)
from ..models.pdf_document import PDFDocument, PageKey
from ..models.results import Artifact, AssemblyOutput
from .overlays import image_watermark_painter, page_number_painter, text_watermark_painter
from .pdf_codec import (
    ALL_PERMISSIONS, PDFCodec, PERMISSION_ANNOTATE, PERMISSION_COPY,
    PERMISSION_MODIFY, PERMISSION_PRINT
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# (JPEG quality, longest image side) per level
COMPRESSION_PROFILES: Dict[CompressionLevel, Tuple[int, Optional[int]]] = {
    CompressionLevel.LOW: (85, None),
    CompressionLevel.MEDIUM: (70, 2000),
    CompressionLevel.HIGH: (50, 1400),
    CompressionLevel.EXTREME: (30, 1000),
}


class DocumentAssembler:
    """
    Build output documents from uploaded ones: split, merge, convert to
    images, compress, reorder, protect, unlock and watermark.

    Every operation either returns its complete output or raises; nothing is
    handed back half-built. Errors raised by PyPDF2, Pillow or poppler are
    reported as ProcessingFailed.
    """

    def __init__(self, codec: Optional[PDFCodec] = None, producer: str = "PDF Workbench"):
        self.codec = codec or PDFCodec(producer=producer)
        self.producer = producer

    # ------------------------------------------------------------------
    # Split
    # ------------------------------------------------------------------
    def split(self, document: PDFDocument, options: SplitOptions) -> AssemblyOutput:
        if options.split_mode is SplitMode.PAGES:
            return self.split_selected_pages(document, options.selected_pages, options.preserve_metadata)
        if options.split_mode is SplitMode.SIZE:
            return self.split_equal_parts(document, options.equal_parts, options.preserve_metadata)
        return self.split_ranges(document, options.page_ranges, options.preserve_metadata)

    def split_selected_pages(self, document: PDFDocument, page_numbers: Sequence[int],
                             preserve_metadata: bool = True) -> AssemblyOutput:
        """
        One single-page document per selected page, in ascending page order
        whatever order the pages were selected in.
        """
        if not page_numbers:
            raise NoPagesSelected("No pages selected for extraction")

        with self._processing(f"split {document.name}"):
            reader = self._open(document)
            total_pages = self.codec.page_count(reader)

            valid_pages = sorted({number for number in page_numbers if 1 <= number <= total_pages})
            if not valid_pages:
                raise NoPagesSelected(f"No valid pages selected. PDF has {total_pages} pages.")

            warnings = []
            dropped = sorted({number for number in page_numbers if not 1 <= number <= total_pages})
            if dropped:
                logger.warning(f"Ignoring out-of-range pages {dropped} for {document.name}")
                warnings.append(f"Ignored pages outside 1-{total_pages}: {', '.join(map(str, dropped))}")

            artifacts = []
            for page_number in valid_pages:
                data = self.codec.extract_pages(
                    reader, [page_number],
                    metadata=self._metadata(document, f"{document.stem} - Page {page_number}",
                                            "PDF Splitter", preserve_metadata),
                )
                artifacts.append(Artifact(f"{document.stem}_page_{page_number}.pdf", data))

        logger.info(f"Split {document.name} into {len(artifacts)} single-page documents")
        return AssemblyOutput(artifacts=artifacts, warnings=warnings)

    def split_equal_parts(self, document: PDFDocument, equal_parts: int,
                          preserve_metadata: bool = True) -> AssemblyOutput:
        with self._processing(f"split {document.name}"):
            reader = self._open(document)
            total_pages = self.codec.page_count(reader)
            ranges = self.calculate_equal_parts(total_pages, equal_parts)

            artifacts = []
            for part_number, (start_page, end_page) in enumerate(ranges, start=1):
                data = self.codec.extract_pages(
                    reader, list(range(start_page, end_page + 1)),
                    metadata=self._metadata(
                        document, f"Part {part_number} (Pages {start_page}-{end_page})",
                        "PDF Splitter", preserve_metadata,
                    ),
                )
                artifacts.append(Artifact(f"{document.stem}_part_{part_number}.pdf", data))

        logger.info(f"Split {document.name} ({total_pages} pages) into {len(artifacts)} parts")
        return AssemblyOutput(artifacts=artifacts)

    def calculate_equal_parts(self, total_pages: int, parts: int) -> List[Tuple[int, int]]:
        """
        Partition pages 1..total_pages into ``parts`` contiguous ranges.

        Every part gets ``total_pages // parts`` pages and the first
        ``total_pages % parts`` parts get one more, so 11 pages in 3 parts
        gives 4, 4, 3.

        Returns:
            List of (start_page, end_page) tuples, both 1-indexed and inclusive
        """
        if parts < 2:
            raise InvalidOptions("Number of parts must be at least 2")
        if parts > total_pages:
            raise InvalidOptions(f"Cannot split {total_pages} pages into {parts} parts")

        base_size, remainder = divmod(total_pages, parts)
        ranges = []
        start_page = 1
        for part_index in range(parts):
            size = base_size + (1 if part_index < remainder else 0)
            end_page = start_page + size - 1
            ranges.append((start_page, end_page))
            start_page = end_page + 1

        return ranges

    def split_ranges(self, document: PDFDocument, ranges: Sequence[PageRange],
                     preserve_metadata: bool = True) -> AssemblyOutput:
        if not ranges:
            raise InvalidOptions("At least one page range is required")

        with self._processing(f"split {document.name}"):
            reader = self._open(document)
            total_pages = self.codec.page_count(reader)

            artifacts = []
            for page_range in ranges:
                start_page = max(1, page_range.start)
                end_page = min(total_pages, page_range.end)
                if start_page > end_page:
                    raise InvalidOptions(
                        f"Page range {page_range.start}-{page_range.end} is outside 1-{total_pages}"
                    )
                title = f"Page {start_page}" if start_page == end_page else f"Pages {start_page}-{end_page}"
                data = self.codec.extract_pages(
                    reader, list(range(start_page, end_page + 1)),
                    metadata=self._metadata(document, title, "PDF Splitter", preserve_metadata),
                )
                artifacts.append(Artifact(f"{document.stem}_pages_{start_page}-{end_page}.pdf", data))

        return AssemblyOutput(artifacts=artifacts)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------
    def merge(self, documents: Sequence[PDFDocument], options: MergeOptions) -> AssemblyOutput:
        if options.merge_mode is MergeMode.INTERLEAVE:
            return self.merge_interleave(documents, options)
        if options.merge_mode is MergeMode.CUSTOM:
            return self.merge_custom(documents, options.custom_order, options)
        return self.merge_sequential(documents, options)

    def merge_sequential(self, documents: Sequence[PDFDocument],
                         options: Optional[MergeOptions] = None) -> AssemblyOutput:
        self._require_documents(documents)
        order = [
            (index, page_number)
            for index, document in enumerate(documents)
            for page_number in range(1, document.page_count + 1)
        ]
        return self._merge(documents, order, options or MergeOptions())

    def merge_interleave(self, documents: Sequence[PDFDocument],
                         options: Optional[MergeOptions] = None) -> AssemblyOutput:
        self._require_documents(documents)
        order = self.interleave_order([document.page_count for document in documents])
        return self._merge(documents, order, options or MergeOptions(merge_mode=MergeMode.INTERLEAVE))

    def interleave_order(self, page_counts: Sequence[int]) -> List[Tuple[int, int]]:
        """
        Round-robin (document index, page number) pairs. Documents that run
        out of pages drop out and the rest keep alternating.
        """
        order = []
        for page_number in range(1, max(page_counts, default=0) + 1):
            for index, count in enumerate(page_counts):
                if page_number <= count:
                    order.append((index, page_number))
        return order

    def merge_custom(self, documents: Sequence[PDFDocument], page_keys: Sequence[PageKey],
                     options: Optional[MergeOptions] = None) -> AssemblyOutput:
        """
        Merge exactly the given pages in the given order (normally the order
        in which the user selected them).
        """
        if not documents:
            raise InsufficientDocuments("At least 1 PDF file is required for a custom merge")
        if not page_keys:
            raise NoPagesSelected("No pages selected for merging")

        positions = {document.id: index for index, document in enumerate(documents)}
        order = []
        for key in page_keys:
            index = positions.get(key.document_id)
            if index is None:
                raise InvalidOptions(f"Selected page belongs to an unknown document ({key.document_id})")
            if not 1 <= key.page_number <= documents[index].page_count:
                raise InvalidOptions(
                    f"Page {key.page_number} does not exist in {documents[index].name}"
                )
            order.append((index, key.page_number))

        return self._merge(documents, order, options or MergeOptions(
            merge_mode=MergeMode.CUSTOM, custom_order=list(page_keys)))

    def _merge(self, documents: Sequence[PDFDocument], order: Sequence[Tuple[int, int]],
               options: MergeOptions) -> AssemblyOutput:
        with self._processing("merge PDF files"):
            readers = [self._open(document) for document in documents]

            bookmarks = []
            if options.add_bookmarks:
                first_seen = {}
                for output_index, (document_index, _) in enumerate(order):
                    first_seen.setdefault(document_index, output_index)
                bookmarks = [
                    (documents[document_index].stem, output_index)
                    for document_index, output_index in sorted(first_seen.items(), key=lambda item: item[1])
                ]

            first = documents[0]
            title = (first.metadata.get("title") if options.preserve_metadata else None) or "Merged Document"
            data = self.codec.concatenate(
                [(readers[document_index], page_number) for document_index, page_number in order],
                bookmarks=bookmarks,
                metadata=self._metadata(first, title, "PDF Merger", options.preserve_metadata),
            )

        logger.info(f"Merged {len(documents)} documents into {len(order)} pages "
                    f"({options.merge_mode.value})")
        return AssemblyOutput(artifacts=[Artifact("merged.pdf", data)])

    def _require_documents(self, documents: Sequence[PDFDocument]) -> None:
        if len(documents) < 2:
            raise InsufficientDocuments("At least 2 PDF files are required for merging")

    # ------------------------------------------------------------------
    # Image extraction
    # ------------------------------------------------------------------
    def extract_images(self, document: PDFDocument, options: ImageExtractionOptions) -> AssemblyOutput:
        if options.selected_pages is not None:
            if not options.selected_pages:
                raise NoPagesSelected("No pages selected for conversion")
            page_numbers = sorted({
                number for number in options.selected_pages if 1 <= number <= document.page_count
            })
            if not page_numbers:
                raise NoPagesSelected(f"No valid pages selected. PDF has {document.page_count} pages.")
        else:
            page_numbers = list(range(1, document.page_count + 1))

        if not page_numbers:
            raise NoPagesSelected("The PDF has no pages to convert")

        with self._processing(f"convert {document.name} to images"):
            artifacts = []
            for page_number in page_numbers:
                image = self.codec.render_page(document.data, page_number, options.dpi, document.password)
                data = self.encode_image(image, options)
                artifacts.append(Artifact(
                    f"{document.stem}_page_{page_number}.{options.extension}", data, options.media_type
                ))

        logger.info(f"Rendered {len(artifacts)} pages of {document.name} at {options.dpi} DPI")
        return AssemblyOutput(artifacts=artifacts)

    def encode_image(self, image: Image.Image, options: ImageExtractionOptions) -> bytes:
        if options.color_mode is ColorMode.GRAYSCALE:
            image = image.convert("L")
        elif options.color_mode is ColorMode.MONOCHROME:
            image = image.convert("L").convert("1", dither=Image.Dither.NONE)
        else:
            image = image.convert("RGB")

        buffer = io.BytesIO()
        if options.output_format is ImageFormat.JPEG:
            if image.mode == "1":
                image = image.convert("L")
            image.save(buffer, format="JPEG", quality=options.image_quality)
        elif options.output_format is ImageFormat.WEBP:
            if image.mode != "RGB":
                image = image.convert("RGB")
            image.save(buffer, format="WEBP", quality=options.image_quality)
        else:
            image.save(buffer, format="PNG", optimize=True)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------
    def compress(self, document: PDFDocument, options: CompressOptions) -> AssemblyOutput:
        quality, max_side = COMPRESSION_PROFILES[options.compression_level]

        with self._processing(f"compress {document.name}"):
            reader = self._open(document)
            metadata = None
            if not options.remove_metadata:
                metadata = self._metadata(document, document.metadata.get("title") or document.stem,
                                          "PDF Compressor", True)
            data, replaced = self.codec.reencode(
                reader,
                jpeg_quality=quality if options.optimize_images else None,
                max_image_side=max_side,
                metadata=metadata,
            )

        warnings = []
        if len(data) >= document.byte_size:
            warnings.append(f"{document.name} could not be made smaller")
        logger.info(f"Compressed {document.name}: {document.byte_size} -> {len(data)} bytes "
                    f"({replaced} images re-encoded, level={options.compression_level.value})")
        return AssemblyOutput(artifacts=[Artifact(f"{document.stem}_compressed.pdf", data)],
                              warnings=warnings)

    # ------------------------------------------------------------------
    # Organize
    # ------------------------------------------------------------------
    def organize(self, document: PDFDocument, options: OrganizeOptions) -> AssemblyOutput:
        order = self.page_order(document.page_count, options)

        with self._processing(f"organize {document.name}"):
            reader = self._open(document)
            warnings = []
            if options.remove_blank_pages:
                kept = [number for number in order if not self.codec.is_blank_page(reader.pages[number - 1])]
                removed = len(order) - len(kept)
                if not kept:
                    raise InvalidOptions("Every page is blank; nothing would be left")
                if removed:
                    warnings.append(f"Removed {removed} blank page(s)")
                order = kept

            painter = page_number_painter(options.page_number_position) if options.add_page_numbers else None
            data = self.codec.overlay(
                reader, order, painter,
                metadata=self._metadata(document, document.metadata.get("title") or document.stem,
                                        "PDF Organizer", True),
            )

        return AssemblyOutput(artifacts=[Artifact(f"{document.stem}_organized.pdf", data)],
                              warnings=warnings)

    def page_order(self, page_count: int, options: OrganizeOptions) -> List[int]:
        pages = list(range(1, page_count + 1))
        if options.sort_by is SortOrder.REVERSE:
            return pages[::-1]
        if options.sort_by is SortOrder.ODD:
            return [n for n in pages if n % 2 == 1] + [n for n in pages if n % 2 == 0]
        if options.sort_by is SortOrder.EVEN:
            return [n for n in pages if n % 2 == 0] + [n for n in pages if n % 2 == 1]
        if not options.custom_order:
            return pages

        invalid = [n for n in options.custom_order if not 1 <= n <= page_count]
        if invalid:
            raise InvalidOptions(f"Pages outside 1-{page_count} in custom order: {invalid}")
        return list(options.custom_order)

    # ------------------------------------------------------------------
    # Security
    # ------------------------------------------------------------------
    def protect(self, document: PDFDocument, options: ProtectOptions) -> AssemblyOutput:
        permissions = ALL_PERMISSIONS
        for allowed, flag in (
            (options.allow_printing, PERMISSION_PRINT),
            (options.allow_modifying, PERMISSION_MODIFY),
            (options.allow_copying, PERMISSION_COPY),
            (options.allow_annotations, PERMISSION_ANNOTATE),
        ):
            if not allowed:
                permissions &= ~flag

        with self._processing(f"protect {document.name}"):
            reader = self._open(document)
            data = self.codec.encrypt(
                reader, options.user_password, options.owner_password, permissions,
                metadata=self._metadata(document, document.metadata.get("title") or document.stem,
                                        "PDF Protector", True),
            )

        return AssemblyOutput(artifacts=[Artifact(f"{document.stem}_protected.pdf", data)])

    def unlock(self, document: PDFDocument, options: UnlockOptions) -> AssemblyOutput:
        password = options.password or document.password
        with self._processing(f"unlock {document.name}"):
            reader = self.codec.open(document.data, password)
            warnings = []
            if not reader.is_encrypted:
                warnings.append(f"{document.name} was not password-protected")
            data = self.codec.extract_pages(
                reader, list(range(1, self.codec.page_count(reader) + 1)),
                metadata=self._metadata(document, document.metadata.get("title") or document.stem,
                                        "PDF Unlocker", True),
            )

        return AssemblyOutput(artifacts=[Artifact(f"{document.stem}_unlocked.pdf", data)],
                              warnings=warnings)

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------
    def watermark(self, document: PDFDocument, options: WatermarkOptions,
                  image_data: Optional[bytes] = None) -> AssemblyOutput:
        """
        Stamp an image or text watermark on every page.

        An image watermark is preferred when one is supplied. If it cannot be
        decoded and text was also supplied, the text watermark is used and the
        output is flagged with ``fallback_applied``.
        """
        fallback_applied = False
        warnings = []
        painter = None

        if image_data:
            try:
                image = Image.open(io.BytesIO(image_data))
                image.load()
                painter = image_watermark_painter(image, options)
            except (UnidentifiedImageError, OSError, ValueError) as e:
                if not options.text:
                    raise InvalidOptions(
                        "Failed to add image watermark. Please ensure the image is a valid PNG or JPEG file."
                    )
                logger.warning(f"Watermark image unreadable, using text instead: {e}")
                fallback_applied = True
                warnings.append("Watermark image could not be read; text watermark applied instead")

        if painter is None:
            if not options.text:
                raise InvalidOptions("Watermark text or image is required")
            painter = text_watermark_painter(options)

        with self._processing(f"watermark {document.name}"):
            reader = self._open(document)
            data = self.codec.overlay(
                reader, list(range(1, self.codec.page_count(reader) + 1)), painter,
                metadata=self._metadata(document, document.metadata.get("title") or document.stem,
                                        "PDF Watermark", True),
            )

        return AssemblyOutput(artifacts=[Artifact(f"{document.stem}_watermarked.pdf", data)],
                              fallback_applied=fallback_applied, warnings=warnings)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _open(self, document: PDFDocument) -> PyPDF2.PdfReader:
        return self.codec.open(document.data, document.password)

    def _metadata(self, document: PDFDocument, title: str, tool: str,
                  preserve: bool) -> Dict[str, str]:
        metadata = {
            "Title": title,
            "Creator": f"{self.producer} {tool}",
            "Producer": self.producer,
        }
        if preserve:
            for key in ("author", "subject"):
                if document.metadata.get(key):
                    metadata[key.capitalize()] = document.metadata[key]
        return metadata

    @contextmanager
    def _processing(self, action: str) -> Iterator[None]:
        try:
            yield
        except PipelineError:
            raise
        except Exception as e:
            logger.error(f"Failed to {action}: {e}")
            raise ProcessingFailed(f"Failed to {action}. The file may be corrupted.") from e
