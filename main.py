import json
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request, Form, HTTPException, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
import logging

from pdfworkbench import __version__
from pdfworkbench.config import load_settings, configure_logging
from pdfworkbench.errors import (
    PipelineError, InvalidOptions, DocumentUnreadable, DocumentNotFound, NoPagesSelected,
    InsufficientDocuments, PackagingFailed, ProcessingFailed
)
from pdfworkbench.models import (
    PDFDocument, PageKey, SplitOptions, MergeOptions, MergeMode, CompressOptions,
    ImageExtractionOptions, OrganizeOptions, ProtectOptions, UnlockOptions,
    WatermarkOptions, OperationResult
)
from pdfworkbench.processors import ToolSession, SessionRegistry, tools
from pdfworkbench.processors.page_selection import INSERTION_ORDER

settings = load_settings()
configure_logging(settings)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="PDF Workbench", version=__version__)

registry = SessionRegistry(settings)

STATUS_BY_ERROR = {
    error.__name__: error.status_code
    for error in (PipelineError, InvalidOptions, DocumentUnreadable, DocumentNotFound,
                  NoPagesSelected, InsufficientDocuments, PackagingFailed, ProcessingFailed)
}


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _parse_options(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidOptions("Options must be valid JSON")
    if not isinstance(payload, dict):
        raise InvalidOptions("Options must be a JSON object")
    return payload


async def _read_upload(file: UploadFile) -> bytes:
    if not file.filename or not file.filename.lower().endswith('.pdf'):
        raise InvalidOptions("File must be a PDF")

    content = await file.read()
    if not content:
        raise InvalidOptions("No file provided")
    if len(content) > settings.max_upload_bytes:
        raise InvalidOptions(f"File exceeds the {settings.max_upload_mb} MB upload limit")
    return content


async def _single_document_session(file: UploadFile,
                                   password: Optional[str] = None) -> Tuple[ToolSession, PDFDocument]:
    """Throwaway session holding one upload, for the stateless routes."""
    content = await _read_upload(file)
    session = ToolSession.from_settings(settings)
    document = await run_in_threadpool(session.add_document, content, file.filename, password, False)
    return session, document


def _get_session(session_id: str) -> ToolSession:
    try:
        return registry.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found or has expired")


def _get_document(session: ToolSession, document_id: str) -> PDFDocument:
    try:
        return session.get_document(document_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Document not found")


def _header_value(value: str) -> str:
    # HTTP headers are latin-1; uploaded filenames may not be
    return value.encode("latin-1", "replace").decode("latin-1")


def _result_response(result: OperationResult) -> Response:
    if not result.success:
        status_code = STATUS_BY_ERROR.get(result.error_type, 500)
        return JSONResponse(status_code=status_code, content={"error": result.error})

    artifact = result.single()
    headers = {"Content-Disposition": _header_value(f'attachment; filename="{artifact.filename}"')}
    if result.fallback_applied:
        headers["X-Fallback-Applied"] = "true"
    if result.warnings:
        headers["X-Warnings"] = _header_value(" | ".join(result.warnings))
    return Response(content=artifact.data, media_type=artifact.media_type, headers=headers)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        raise InvalidOptions("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise InvalidOptions("Request body must be a JSON object")
    return payload


# ----------------------------------------------------------------------
# Stateless tool routes
# ----------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "version": __version__, "sessions": len(registry)}


@app.post("/api/pdf/split")
async def split_pdf(file: UploadFile = File(...), options: Optional[str] = Form(None)):
    """Split an uploaded PDF; several output files come back as a ZIP."""
    split_options = SplitOptions.from_dict(_parse_options(options))
    session, document = await _single_document_session(file)
    result = await run_in_threadpool(tools.run_split, session, document.id, split_options)
    return _result_response(result)


@app.post("/api/pdf/protect")
async def protect_pdf(file: UploadFile = File(...), options: Optional[str] = Form(None)):
    protect_options = ProtectOptions.from_dict(_parse_options(options))
    session, document = await _single_document_session(file)
    result = await run_in_threadpool(tools.run_protect, session, document.id, protect_options)
    return _result_response(result)


@app.post("/api/pdf/to-images")
async def pdf_to_images(file: UploadFile = File(...), options: Optional[str] = Form(None)):
    image_options = ImageExtractionOptions.from_dict(_parse_options(options))
    session, document = await _single_document_session(file)
    result = await run_in_threadpool(tools.run_extract_images, session, document.id, image_options)
    return _result_response(result)


@app.post("/api/pdf/watermark")
async def watermark_pdf(
    file: UploadFile = File(...),
    options: Optional[str] = Form(None),
    watermark_image: Optional[UploadFile] = File(None, alias="watermarkImage")
):
    watermark_options = WatermarkOptions.from_dict(_parse_options(options))
    image_data = await watermark_image.read() if watermark_image is not None else None
    if not watermark_options.text and not image_data:
        raise InvalidOptions("Watermark text or image is required")

    session, document = await _single_document_session(file)
    result = await run_in_threadpool(
        tools.run_watermark, session, document.id, watermark_options, image_data or None
    )
    return _result_response(result)


# ----------------------------------------------------------------------
# Sessions and documents
# ----------------------------------------------------------------------
@app.post("/api/sessions")
async def create_session():
    session = registry.create()
    return JSONResponse(content={"success": True, **session.to_dict()})


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str, thumbnails: bool = False):
    session = _get_session(session_id)
    return JSONResponse(content=session.to_dict(include_thumbnails=thumbnails))


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    if not registry.delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found or has expired")
    return JSONResponse(content={"success": True})


@app.post("/api/sessions/{session_id}/documents")
async def upload_document(
    session_id: str,
    file: UploadFile = File(...),
    password: Optional[str] = Form(None)
):
    """Add a PDF to the session and return its page thumbnails."""
    session = _get_session(session_id)
    content = await _read_upload(file)
    document = await run_in_threadpool(session.add_document, content, file.filename, password or None)
    return JSONResponse(content={"success": True, "document": document.to_dict(include_thumbnails=True)})


@app.delete("/api/sessions/{session_id}/documents/{document_id}")
async def remove_document(session_id: str, document_id: str):
    session = _get_session(session_id)
    _get_document(session, document_id)
    session.remove_document(document_id)
    return JSONResponse(content={"success": True})


@app.post("/api/sessions/{session_id}/documents/order")
async def reorder_documents(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    document_ids = payload.get("document_ids", payload.get("documentIds"))
    if not isinstance(document_ids, list):
        raise InvalidOptions("document_ids must be a list")
    session.reorder_documents([str(document_id) for document_id in document_ids])
    return JSONResponse(content={"success": True, "documents": [d.id for d in session.documents]})


@app.get("/api/sessions/{session_id}/documents/{document_id}/thumbnails")
async def get_thumbnails(session_id: str, document_id: str):
    session = _get_session(session_id)
    document = _get_document(session, document_id)
    return JSONResponse(content={
        "document_id": document.id,
        "page_count": document.page_count,
        "pages": [page.to_dict(include_thumbnail=True) for page in document.pages],
    })


# ----------------------------------------------------------------------
# Selection
# ----------------------------------------------------------------------
@app.get("/api/sessions/{session_id}/selection")
async def get_selection(session_id: str, order: str = INSERTION_ORDER,
                        document_id: Optional[str] = None):
    session = _get_session(session_id)
    try:
        keys = session.selection.ordered_selection(order, document_id=document_id)
    except ValueError as e:
        raise InvalidOptions(str(e))
    return JSONResponse(content={"selected": [key.to_dict() for key in keys]})


@app.post("/api/sessions/{session_id}/selection/toggle")
async def toggle_page(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    try:
        key = PageKey.from_dict(payload)
    except (TypeError, ValueError) as e:
        raise InvalidOptions(str(e))
    selected = session.selection.toggle(key)
    return JSONResponse(content={"selected": selected, "count": len(session.selection)})


@app.post("/api/sessions/{session_id}/selection/select-all")
async def select_all_pages(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    document = _get_document(session, str(payload.get("document_id", payload.get("documentId", ""))))
    session.selection.select_all(document)
    return JSONResponse(content={"count": len(session.selection)})


@app.post("/api/sessions/{session_id}/selection/clear")
async def clear_selection(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    document_id = payload.get("document_id", payload.get("documentId"))
    session.selection.clear(_get_document(session, str(document_id)) if document_id else None)
    return JSONResponse(content={"count": len(session.selection)})


# ----------------------------------------------------------------------
# Session tool runs
# ----------------------------------------------------------------------
@app.post("/api/sessions/{session_id}/split")
async def session_split(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    split_options = SplitOptions.from_dict(payload.get("options") or {})
    result = await run_in_threadpool(
        tools.run_split, session, str(payload.get("document_id", "")), split_options
    )
    return _result_response(result)


@app.post("/api/sessions/{session_id}/merge")
async def session_merge(session_id: str, request: Request):
    """
    Merge the session's documents. In custom mode without an explicit page
    order, the pages are taken in the order they were selected.
    """
    session = _get_session(session_id)
    payload = await _json_body(request)
    raw_options = dict(payload.get("options") or {})
    mode = raw_options.get("merge_mode", raw_options.get("mergeMode"))
    if mode == MergeMode.CUSTOM.value and not (raw_options.get("custom_order") or raw_options.get("customOrder")):
        raw_options["custom_order"] = [key.to_dict() for key in session.selection.ordered_selection()]

    merge_options = MergeOptions.from_dict(raw_options)
    result = await run_in_threadpool(
        tools.run_merge, session, merge_options, payload.get("document_ids")
    )
    return _result_response(result)


@app.post("/api/sessions/{session_id}/to-images")
async def session_to_images(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    image_options = ImageExtractionOptions.from_dict(payload.get("options") or {})
    result = await run_in_threadpool(
        tools.run_extract_images, session, str(payload.get("document_id", "")), image_options
    )
    return _result_response(result)


@app.post("/api/sessions/{session_id}/compress")
async def session_compress(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    compress_options = CompressOptions.from_dict(payload.get("options") or {})
    result = await run_in_threadpool(
        tools.run_compress, session, compress_options, payload.get("document_ids")
    )
    return _result_response(result)


@app.post("/api/sessions/{session_id}/organize")
async def session_organize(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    organize_options = OrganizeOptions.from_dict(payload.get("options") or {})
    result = await run_in_threadpool(
        tools.run_organize, session, str(payload.get("document_id", "")), organize_options
    )
    return _result_response(result)


@app.post("/api/sessions/{session_id}/unlock")
async def session_unlock(session_id: str, request: Request):
    session = _get_session(session_id)
    payload = await _json_body(request)
    unlock_options = UnlockOptions.from_dict(payload.get("options") or {})
    result = await run_in_threadpool(
        tools.run_unlock, session, str(payload.get("document_id", "")), unlock_options
    )
    return _result_response(result)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8001, reload=True)
