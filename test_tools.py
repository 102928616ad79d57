"""Tests for the tool functions that turn assembler output into downloads"""
import io
import zipfile
from unittest.mock import patch

import pytest

from pdfworkbench.config import Settings
from pdfworkbench.models import (
    CompressOptions, ImageExtractionOptions, MergeOptions, OrganizeOptions, PageKey,
    ProtectOptions, SplitOptions, UnlockOptions, WatermarkOptions, PDF_MEDIA_TYPE, ZIP_MEDIA_TYPE
)
from pdfworkbench.processors import ToolSession, tools


@pytest.fixture
def session(fake_renderer):
    return ToolSession.from_settings(Settings())


@pytest.fixture
def report(session, make_pdf):
    return session.add_document(make_pdf([101, 102, 103, 104, 105, 106, 107, 108]), "report.pdf")


def _names(artifact):
    with zipfile.ZipFile(io.BytesIO(artifact.data)) as bundle:
        return bundle.namelist()


def test_split_several_pages_returns_zip(session, report):
    result = tools.run_split(session, report.id, SplitOptions(selected_pages=[7, 1, 3]))

    assert result.success
    artifact = result.single()
    assert artifact.filename == "report_split.zip"
    assert artifact.media_type == ZIP_MEDIA_TYPE
    assert _names(artifact) == ["report_page_1.pdf", "report_page_3.pdf", "report_page_7.pdf"]


def test_split_single_page_is_not_zipped(session, report):
    result = tools.run_split(session, report.id, SplitOptions(selected_pages=[2]))

    assert result.single().filename == "report_page_2.pdf"
    assert result.single().media_type == PDF_MEDIA_TYPE


def test_split_uses_thumbnail_selection(session, report):
    for page_number in (5, 2):
        session.selection.toggle(PageKey(report.id, page_number))

    result = tools.run_split(session, report.id, SplitOptions())

    assert _names(result.single()) == ["report_page_2.pdf", "report_page_5.pdf"]


def test_split_without_selection_fails_without_extracting(session, report):
    with patch.object(session.assembler.codec, "extract_pages") as extract_pages:
        result = tools.run_split(session, report.id, SplitOptions())

    assert not result.success
    assert result.error_type == "NoPagesSelected"
    assert result.artifacts == []
    extract_pages.assert_not_called()


def test_unknown_document_is_a_failure(session):
    result = tools.run_split(session, "missing", SplitOptions(selected_pages=[1]))

    assert not result.success
    assert result.error_type == "DocumentNotFound"
    assert result.error == "Document not found"


def test_key_error_inside_a_tool_is_not_reported_as_missing_document(session, report):
    with patch.object(session.assembler, "split", side_effect=KeyError("/Resources")):
        result = tools.run_split(session, report.id, SplitOptions(selected_pages=[1]))

    assert not result.success
    assert result.error_type == "KeyError"
    assert result.error != "Document not found"


def test_unexpected_errors_never_escape(session, report):
    with patch.object(session.assembler, "split", side_effect=RuntimeError("disk on fire")):
        result = tools.run_split(session, report.id, SplitOptions(selected_pages=[1]))

    assert not result.success
    assert "disk on fire" in result.error


def test_merge_custom_order_from_selection(session, report, make_pdf, widths_of):
    other = session.add_document(make_pdf([301, 302]), "other.pdf")
    keys = [PageKey(other.id, 2), PageKey(report.id, 1)]

    result = tools.run_merge(session, MergeOptions(merge_mode="custom", custom_order=keys))

    assert result.single().filename == "merged.pdf"
    assert widths_of(result.single().data) == [302, 101]


def test_merge_needs_two_documents(session, report):
    result = tools.run_merge(session, MergeOptions())

    assert not result.success
    assert result.error_type == "InsufficientDocuments"


def test_extract_images_zip_name(session, report):
    result = tools.run_extract_images(session, report.id, ImageExtractionOptions(selected_pages=[1, 2]))

    assert result.single().filename == "report_images.zip"
    assert _names(result.single()) == ["report_page_1.png", "report_page_2.png"]


def test_extract_images_defaults_to_selection(session, report):
    session.selection.toggle(PageKey(report.id, 4))

    result = tools.run_extract_images(session, report.id, ImageExtractionOptions(output_format="jpeg"))

    assert result.single().filename == "report_page_4.jpg"


def test_compress_many_documents(session, report, make_pdf):
    session.add_document(make_pdf([301]), "other.pdf")

    result = tools.run_compress(session, CompressOptions())

    assert result.single().filename == "compressed_files.zip"
    assert _names(result.single()) == ["report_compressed.pdf", "other_compressed.pdf"]


def test_compress_single_document(session, report):
    result = tools.run_compress(session, CompressOptions(), document_ids=[report.id])

    assert result.single().filename == "report_compressed.pdf"


def test_compress_with_no_documents(session):
    result = tools.run_compress(session, CompressOptions())

    assert not result.success


def test_organize_protect_unlock_chain(session, report, widths_of):
    protected = tools.run_protect(session, report.id, ProtectOptions(user_password="secret123"))
    assert protected.single().filename == "report_protected.pdf"

    locked = session.add_document(protected.single().data, "locked.pdf", password="secret123")
    unlocked = tools.run_unlock(session, locked.id, UnlockOptions(password="secret123"))
    assert unlocked.success

    relocked_free = session.add_document(unlocked.single().data, "free.pdf")
    organized = tools.run_organize(session, relocked_free.id, OrganizeOptions(sort_by="reverse"))
    assert widths_of(organized.single().data) == [108, 107, 106, 105, 104, 103, 102, 101]


def test_watermark_fallback_is_reported(session, report):
    result = tools.run_watermark(session, report.id, WatermarkOptions(text="DRAFT"), b"broken image")

    assert result.success
    assert result.fallback_applied
    assert result.single().filename == "report_watermarked.pdf"


def test_watermark_without_text_or_image_fails(session, report):
    result = tools.run_watermark(session, report.id, WatermarkOptions())

    assert not result.success
    assert result.error_type == "InvalidOptions"
