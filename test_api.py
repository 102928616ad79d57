"""Integration tests for the HTTP routes"""
import io
import json
import zipfile

import pytest
import PyPDF2
from fastapi.testclient import TestClient
from PIL import Image

from main import app, registry


@pytest.fixture
def client(fake_renderer):
    return TestClient(app)


@pytest.fixture
def report(make_pdf):
    return make_pdf([101, 102, 103, 104])


def _upload(data, name="report.pdf"):
    return {"file": (name, data, "application/pdf")}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ----------------------------------------------------------------------
# Stateless routes
# ----------------------------------------------------------------------
def test_split_returns_zip(client, report):
    response = client.post("/api/pdf/split", files=_upload(report),
                           data={"options": json.dumps({"selectedPages": [3, 1]})})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert 'filename="report_split.zip"' in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as bundle:
        assert bundle.namelist() == ["report_page_1.pdf", "report_page_3.pdf"]


def test_split_equal_parts(client, report):
    response = client.post("/api/pdf/split", files=_upload(report),
                           data={"options": json.dumps({"splitMode": "size", "equalParts": 2})})

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as bundle:
        assert bundle.namelist() == ["report_part_1.pdf", "report_part_2.pdf"]


def test_split_without_pages_is_bad_request(client, report):
    response = client.post("/api/pdf/split", files=_upload(report),
                           data={"options": json.dumps({"splitMode": "pages", "selectedPages": []})})

    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.parametrize("options", ["{not json", "[1, 2]", json.dumps({"splitMode": "size"})])
def test_split_rejects_bad_options(client, report, options):
    response = client.post("/api/pdf/split", files=_upload(report), data={"options": options})

    assert response.status_code == 400
    assert response.json()["error"]


def test_rejects_non_pdf_upload(client):
    response = client.post("/api/pdf/split", files=_upload(b"hello", "notes.txt"),
                           data={"options": json.dumps({"selectedPages": [1]})})

    assert response.status_code == 400
    assert response.json() == {"error": "File must be a PDF"}


def test_corrupt_pdf_is_unprocessable(client):
    response = client.post("/api/pdf/split", files=_upload(b"%PDF-1.4 garbage"),
                           data={"options": json.dumps({"selectedPages": [1]})})

    assert response.status_code == 422
    assert "error" in response.json()


def test_protect(client, report):
    response = client.post("/api/pdf/protect", files=_upload(report),
                           data={"options": json.dumps({"userPassword": "secret123", "allowPrinting": False})})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="report_protected.pdf"' in response.headers["content-disposition"]
    reader = PyPDF2.PdfReader(io.BytesIO(response.content))
    assert reader.is_encrypted
    assert reader.decrypt("secret123")


def test_protect_short_password(client, report):
    response = client.post("/api/pdf/protect", files=_upload(report),
                           data={"options": json.dumps({"userPassword": "abc"})})

    assert response.status_code == 400
    assert "too short" in response.json()["error"]


def test_to_images_single_page(client, report):
    response = client.post("/api/pdf/to-images", files=_upload(report),
                           data={"options": json.dumps({"selectedPages": [2], "dpi": 72})})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert 'filename="report_page_2.png"' in response.headers["content-disposition"]
    assert Image.open(io.BytesIO(response.content)).size == (102, 400)


def test_to_images_all_pages(client, report):
    response = client.post("/api/pdf/to-images", files=_upload(report),
                           data={"options": json.dumps({"outputFormat": "jpeg"})})

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as bundle:
        assert len(bundle.namelist()) == 4
        assert bundle.namelist()[0] == "report_page_1.jpg"


def test_watermark_text(client, report):
    response = client.post("/api/pdf/watermark", files=_upload(report),
                           data={"options": json.dumps({"text": "DRAFT", "position": "diagonal"})})

    assert response.status_code == 200
    assert 'filename="report_watermarked.pdf"' in response.headers["content-disposition"]
    assert "x-fallback-applied" not in response.headers


def test_watermark_image_fallback(client, report):
    files = _upload(report)
    files["watermarkImage"] = ("logo.png", b"definitely not a png", "image/png")

    response = client.post("/api/pdf/watermark", files=files, data={"options": json.dumps({"text": "DRAFT"})})

    assert response.status_code == 200
    assert response.headers["x-fallback-applied"] == "true"


def test_watermark_needs_text_or_image(client, report):
    response = client.post("/api/pdf/watermark", files=_upload(report), data={"options": "{}"})

    assert response.status_code == 400
    assert response.json()["error"] == "Watermark text or image is required"


# ----------------------------------------------------------------------
# Session routes
# ----------------------------------------------------------------------
@pytest.fixture
def session_id(client):
    response = client.post("/api/sessions")
    assert response.status_code == 200
    yield response.json()["session_id"]
    registry.delete(response.json()["session_id"])


def _add(client, session_id, data, name):
    response = client.post(f"/api/sessions/{session_id}/documents", files=_upload(data, name))
    assert response.status_code == 200
    return response.json()["document"]


def test_session_upload_returns_thumbnails(client, session_id, report):
    document = _add(client, session_id, report, "report.pdf")

    assert document["page_count"] == 4
    assert [page["page_number"] for page in document["pages"]] == [1, 2, 3, 4]
    assert all(page["thumbnail"] for page in document["pages"])

    response = client.get(f"/api/sessions/{session_id}/documents/{document['id']}/thumbnails")
    assert response.status_code == 200
    assert len(response.json()["pages"]) == 4


def test_session_selection_and_split(client, session_id, report):
    document = _add(client, session_id, report, "report.pdf")
    for page_number in (4, 2):
        response = client.post(f"/api/sessions/{session_id}/selection/toggle",
                               json={"documentId": document["id"], "pageNumber": page_number})
        assert response.json()["selected"] is True

    selection = client.get(f"/api/sessions/{session_id}/selection", params={"order": "natural"}).json()
    assert [key["page_number"] for key in selection["selected"]] == [2, 4]

    response = client.post(f"/api/sessions/{session_id}/split",
                           json={"document_id": document["id"], "options": {"splitMode": "pages"}})
    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as bundle:
        assert bundle.namelist() == ["report_page_2.pdf", "report_page_4.pdf"]


def test_session_merge_custom_uses_click_order(client, session_id, report, make_pdf, widths_of):
    first = _add(client, session_id, report, "report.pdf")
    second = _add(client, session_id, make_pdf([301, 302]), "other.pdf")
    for document_id, page_number in ((second["id"], 2), (first["id"], 3)):
        client.post(f"/api/sessions/{session_id}/selection/toggle",
                    json={"document_id": document_id, "page_number": page_number})

    response = client.post(f"/api/sessions/{session_id}/merge", json={"options": {"mergeMode": "custom"}})

    assert response.status_code == 200
    assert widths_of(response.content) == [302, 103]


def test_session_merge_sequential_after_reorder(client, session_id, report, make_pdf, widths_of):
    first = _add(client, session_id, report, "report.pdf")
    second = _add(client, session_id, make_pdf([301]), "other.pdf")

    response = client.post(f"/api/sessions/{session_id}/documents/order",
                           json={"document_ids": [second["id"], first["id"]]})
    assert response.status_code == 200

    response = client.post(f"/api/sessions/{session_id}/merge", json={"options": {}})
    assert widths_of(response.content) == [301, 101, 102, 103, 104]


def test_session_merge_with_one_document(client, session_id, report):
    _add(client, session_id, report, "report.pdf")

    response = client.post(f"/api/sessions/{session_id}/merge", json={"options": {}})

    assert response.status_code == 400
    assert "At least 2" in response.json()["error"]


def test_session_select_all_and_clear(client, session_id, report):
    document = _add(client, session_id, report, "report.pdf")

    response = client.post(f"/api/sessions/{session_id}/selection/select-all", json={"document_id": document["id"]})
    assert response.json()["count"] == 4

    response = client.post(f"/api/sessions/{session_id}/selection/clear", json={})
    assert response.json()["count"] == 0


def test_session_compress_organize_unlock(client, session_id, report, widths_of):
    document = _add(client, session_id, report, "report.pdf")

    response = client.post(f"/api/sessions/{session_id}/compress",
                           json={"options": {"compressionLevel": "low"}})
    assert response.status_code == 200
    assert 'filename="report_compressed.pdf"' in response.headers["content-disposition"]

    response = client.post(f"/api/sessions/{session_id}/organize",
                           json={"document_id": document["id"], "options": {"sortBy": "even"}})
    assert widths_of(response.content) == [102, 104, 101, 103]

    response = client.post(f"/api/sessions/{session_id}/unlock",
                           json={"document_id": document["id"], "options": {}})
    assert response.status_code == 200
    assert "not password-protected" in response.headers["x-warnings"]


def test_session_to_images(client, session_id, report):
    document = _add(client, session_id, report, "report.pdf")

    response = client.post(f"/api/sessions/{session_id}/to-images",
                           json={"document_id": document["id"], "options": {"selectedPages": [1]}})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"


def test_remove_document_and_session(client, session_id, report):
    document = _add(client, session_id, report, "report.pdf")

    assert client.delete(f"/api/sessions/{session_id}/documents/{document['id']}").status_code == 200
    assert client.get(f"/api/sessions/{session_id}").json()["documents"] == []
    assert client.delete(f"/api/sessions/{session_id}/documents/{document['id']}").status_code == 404

    assert client.delete(f"/api/sessions/{session_id}").status_code == 200
    assert client.get(f"/api/sessions/{session_id}").status_code == 404


def test_unknown_document_in_tool_run(client, session_id):
    response = client.post(f"/api/sessions/{session_id}/split",
                           json={"document_id": "nope", "options": {"selectedPages": [1]}})

    assert response.status_code == 404
    assert response.json() == {"error": "Document not found"}


def test_watermark_text_must_be_a_string(client, report):
    response = client.post("/api/pdf/watermark", files=_upload(report), data={"options": json.dumps({"text": 123})})

    assert response.status_code == 400
    assert response.headers["content-type"] == "application/json"
    assert response.json() == {"error": "Watermark text must be a string"}
