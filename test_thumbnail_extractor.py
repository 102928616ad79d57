"""Tests for ThumbnailExtractor"""
import pytest
from unittest.mock import Mock

from pdfworkbench.errors import DocumentUnreadable, ProcessingFailed
from pdfworkbench.processors import PDFCodec, ThumbnailExtractor


@pytest.fixture
def extractor(fake_renderer):
    return ThumbnailExtractor(dpi=72, max_size=(100, 140))


def test_open_document_counts_pages(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200, 210, 220]), "report.pdf")

    assert document.page_count == 3
    assert document.name == "report.pdf"
    assert document.stem == "report"
    assert document.pages == []


def test_open_document_reads_metadata(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200], title="Annual"), "annual.pdf")

    assert document.metadata["title"] == "Annual"
    assert document.metadata["author"] == "Test Author"


def test_extract_returns_one_thumbnail_per_page_in_order(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200, 210, 220, 230]), "four.pdf")

    pages = extractor.extract(document)

    assert [page.page_number for page in pages] == [1, 2, 3, 4]
    assert all(page.document_id == document.id for page in pages)
    assert document.pages == pages


def test_thumbnails_fit_bounding_box_and_keep_aspect_ratio(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200, 400]), "wide.pdf")

    pages = extractor.extract(document)

    for page in pages:
        assert page.width <= 100 and page.height <= 140
    # 200x400 page shrinks to 70x140, the 400x400 page to 100x100
    assert (pages[0].width, pages[0].height) == (70, 140)
    assert (pages[1].width, pages[1].height) == (100, 100)


def test_thumbnail_base64_is_png(extractor, make_pdf):
    import base64

    document = extractor.open_document(make_pdf([200]), "one.pdf")
    page = extractor.extract(document)[0]

    assert base64.b64decode(page.thumbnail_base64()).startswith(b"\x89PNG")


def test_progress_callback_reports_each_page(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200, 210, 220]), "three.pdf")
    progress = Mock()

    extractor.extract(document, progress_callback=progress)

    assert [call.args for call in progress.call_args_list] == [(1, 3), (2, 3), (3, 3)]


def test_iter_pages_yields_progressively(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200, 210]), "two.pdf")

    iterator = extractor.iter_pages(document)
    first = next(iterator)

    assert first.page_number == 1
    assert document.pages == []
    rest = list(iterator)
    assert [page.page_number for page in rest] == [2]
    assert len(document.pages) == 2


def test_rendered_count_mismatch_raises(make_pdf):
    codec = PDFCodec()
    codec.render_pages = Mock(return_value=[])
    extractor = ThumbnailExtractor(codec=codec)
    document = extractor.open_document(make_pdf([200, 210]), "short.pdf")

    with pytest.raises(ProcessingFailed):
        extractor.extract(document)
    assert document.pages == []


def test_corrupt_bytes_are_unreadable(extractor):
    with pytest.raises(DocumentUnreadable):
        extractor.open_document(b"this is not a pdf", "broken.pdf")


def test_empty_bytes_are_unreadable(extractor):
    with pytest.raises(DocumentUnreadable):
        extractor.open_document(b"", "empty.pdf")


def test_encrypted_document_needs_password(extractor, make_pdf):
    data = make_pdf([200, 210], password="secret1")

    with pytest.raises(DocumentUnreadable):
        extractor.open_document(data, "locked.pdf")
    with pytest.raises(DocumentUnreadable):
        extractor.open_document(data, "locked.pdf", password="wrong-pass")

    document = extractor.open_document(data, "locked.pdf", password="secret1")
    assert document.page_count == 2
    assert len(extractor.extract(document)) == 2


def test_page_number_badge_keeps_size(extractor, make_pdf):
    document = extractor.open_document(make_pdf([200]), "one.pdf")
    labelled = ThumbnailExtractor(dpi=72, max_size=(100, 140), label_pages=True)

    page = labelled.extract(document)[0]

    assert page.thumbnail.mode == "RGB"
    assert page.thumbnail.size == (page.width, page.height)
