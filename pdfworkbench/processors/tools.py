"""One function per user-facing tool.

Each function runs a tool against a session and always returns an
``OperationResult``: a success carrying exactly one downloadable artifact
(a ZIP when the tool produced several files), or a failure carrying the
message to show the user. Nothing here raises.
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from ..errors import InsufficientDocuments, PipelineError
from ..models.options import (
    CompressOptions, ImageExtractionOptions, MergeOptions, OrganizeOptions,
    ProtectOptions, SplitMode, SplitOptions, UnlockOptions, WatermarkOptions
)
from ..models.pdf_document import PDFDocument
from ..models.results import AssemblyOutput, OperationResult
from .tool_session import ToolSession

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

COMPRESSED_ARCHIVE_NAME = "compressed_files.zip"


def _run(session: ToolSession, tool: str, build: Callable[[], OperationResult]) -> OperationResult:
    session.touch()
    try:
        result = build()
        logger.info(f"{tool}: produced {result.single().filename}")
        return result
    except PipelineError as e:
        logger.error(f"{tool} failed: {e.message}")
        return OperationResult.failure(e.message, type(e).__name__)
    except Exception as e:
        logger.error(f"{tool} failed with unexpected error: {e}", exc_info=True)
        return OperationResult.failure(f"{tool} failed: {e}", type(e).__name__)


def _finish(session: ToolSession, output: AssemblyOutput, archive_name: str) -> OperationResult:
    artifact = session.packager.bundle(output.artifacts, archive_name)
    return OperationResult.ok(artifact, fallback_applied=output.fallback_applied,
                              warnings=output.warnings)


def _documents(session: ToolSession, document_ids: Optional[Sequence[str]]) -> List[PDFDocument]:
    if document_ids is None:
        return list(session.documents)
    return [session.get_document(document_id) for document_id in document_ids]


def run_split(session: ToolSession, document_id: str, options: SplitOptions) -> OperationResult:
    """
    Split one document. In ``pages`` mode with no explicit page list the
    pages selected in the session's thumbnail grid are used.
    """
    def build():
        document = session.get_document(document_id)
        split_options = options
        if options.split_mode is SplitMode.PAGES and not options.selected_pages:
            split_options = replace(options, selected_pages=session.selection.selected_page_numbers(document_id))
        output = session.assembler.split(document, split_options)
        return _finish(session, output, f"{document.stem}_split.zip")

    return _run(session, "Split", build)


def run_merge(session: ToolSession, options: MergeOptions,
              document_ids: Optional[Sequence[str]] = None) -> OperationResult:
    def build():
        documents = _documents(session, document_ids)
        output = session.assembler.merge(documents, options)
        return _finish(session, output, "merged.zip")

    return _run(session, "Merge", build)


def run_extract_images(session: ToolSession, document_id: str,
                       options: ImageExtractionOptions) -> OperationResult:
    def build():
        document = session.get_document(document_id)
        image_options = options
        if options.selected_pages is None:
            selected = session.selection.selected_page_numbers(document_id)
            if selected:
                image_options = replace(options, selected_pages=selected)
        output = session.assembler.extract_images(document, image_options)
        return _finish(session, output, f"{document.stem}_images.zip")

    return _run(session, "Convert to images", build)


def run_compress(session: ToolSession, options: CompressOptions,
                 document_ids: Optional[Sequence[str]] = None) -> OperationResult:
    """Compress one or more documents; several results come back zipped."""

    def build():
        documents = _documents(session, document_ids)
        if not documents:
            raise InsufficientDocuments("At least 1 PDF file is required for compression")

        outputs = session.runner.run(
            documents, lambda document: session.assembler.compress(document, options)
        )
        merged = AssemblyOutput(
            artifacts=[artifact for output in outputs for artifact in output.artifacts],
            warnings=[warning for output in outputs for warning in output.warnings],
        )
        return _finish(session, merged, COMPRESSED_ARCHIVE_NAME)

    return _run(session, "Compress", build)


def run_organize(session: ToolSession, document_id: str, options: OrganizeOptions) -> OperationResult:
    def build():
        document = session.get_document(document_id)
        return _finish(session, session.assembler.organize(document, options), f"{document.stem}_organized.zip")

    return _run(session, "Organize", build)


def run_protect(session: ToolSession, document_id: str, options: ProtectOptions) -> OperationResult:
    def build():
        document = session.get_document(document_id)
        return _finish(session, session.assembler.protect(document, options), f"{document.stem}_protected.zip")

    return _run(session, "Protect", build)


def run_unlock(session: ToolSession, document_id: str, options: UnlockOptions) -> OperationResult:
    def build():
        document = session.get_document(document_id)
        return _finish(session, session.assembler.unlock(document, options), f"{document.stem}_unlocked.zip")

    return _run(session, "Unlock", build)


def run_watermark(session: ToolSession, document_id: str, options: WatermarkOptions,
                  image_data: Optional[bytes] = None) -> OperationResult:
    def build():
        document = session.get_document(document_id)
        output = session.assembler.watermark(document, options, image_data)
        if output.fallback_applied:
            logger.warning(f"Watermark on {document.name} fell back to text")
        return _finish(session, output, f"{document.stem}_watermarked.zip")

    return _run(session, "Watermark", build)
