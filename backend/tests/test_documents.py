"""
Tests for the document endpoints and local file storage.

Covers upload validation and its cleanup guarantees, download, metadata
updates, deletion (directly and via case delete), and the stats overview.
"""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.documents.models import Document
from app.main import app

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"


def stored_files(storage) -> list:
    return [path for path in storage.root.rglob("*") if path.is_file()]


async def document_count(db_session) -> int:
    return (await db_session.execute(select(func.count(Document.id)))).scalar_one()


@pytest.fixture
def upload(client: AsyncClient):
    async def _upload(case_id: str, headers: dict, name="report.pdf", content=PDF_BYTES, mime="application/pdf", **form):
        return await client.post(
            f"/api/documents/upload/{case_id}",
            files={"document": (name, content, mime)},
            data=form,
            headers=headers,
        )

    return _upload


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestUpload:
    """POST /api/documents/upload/{case_id}"""

    async def test_upload_document(self, owner, create_case, upload, storage, db_session):
        case = await create_case(owner["headers"])
        resp = await upload(case["id"], owner["headers"], documentType="medical_record", description=" ER visit ")
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Document uploaded successfully"
        doc = body["document"]
        assert doc["caseId"] == case["id"]
        assert doc["originalName"] == "report.pdf"
        assert doc["fileSize"] == len(PDF_BYTES)
        assert doc["mimeType"] == "application/pdf"
        assert doc["documentType"] == "medical_record"
        assert doc["description"] == "ER visit"
        assert "filePath" not in doc
        assert doc["filename"].endswith(".pdf")
        assert doc["filename"] != "report.pdf"

        row = (await db_session.execute(select(Document).where(Document.id == uuid.UUID(doc["id"])))).scalar_one()
        assert str(row.user_id) == owner["user"]["id"]
        assert storage.path_for(row.file_path).read_bytes() == PDF_BYTES

    async def test_default_document_type(self, owner, create_case, upload):
        case = await create_case(owner["headers"])
        resp = await upload(case["id"], owner["headers"], name="notes.txt", content=b"hello", mime="text/plain")
        assert resp.status_code == 201
        assert resp.json()["document"]["documentType"] == "other"

    async def test_disallowed_type_writes_nothing(self, owner, create_case, upload, storage, db_session):
        case = await create_case(owner["headers"])
        resp = await upload(case["id"], owner["headers"], name="evidence.zip", content=b"PK\x03\x04", mime="application/zip")
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_failed"
        assert await document_count(db_session) == 0
        assert stored_files(storage) == []

    async def test_foreign_case_upload_leaves_no_file(self, owner, other_user, create_case, upload, storage, db_session):
        case = await create_case(owner["headers"])
        resp = await upload(case["id"], other_user["headers"])
        assert resp.status_code == 404
        assert resp.json()["message"] == "Case not found or you do not have permission to upload documents"
        assert await document_count(db_session) == 0
        assert stored_files(storage) == []

    async def test_unknown_case_upload(self, owner, upload, storage):
        resp = await upload(str(uuid.uuid4()), owner["headers"])
        assert resp.status_code == 404
        assert stored_files(storage) == []

    async def test_file_too_large(self, owner, create_case, upload, storage, db_session, monkeypatch):
        monkeypatch.setattr(storage, "max_bytes", 16)
        case = await create_case(owner["headers"])
        resp = await upload(case["id"], owner["headers"], content=b"x" * 64, mime="text/plain", name="big.txt")
        assert resp.status_code == 400
        assert resp.json()["message"] == "File size exceeds the maximum allowed limit"
        assert await document_count(db_session) == 0
        assert stored_files(storage) == []

    async def test_invalid_document_type(self, owner, create_case, upload, storage):
        case = await create_case(owner["headers"])
        resp = await upload(case["id"], owner["headers"], documentType="selfie")
        assert resp.status_code == 400
        assert stored_files(storage) == []

    async def test_upload_requires_auth(self, client: AsyncClient):
        resp = await client.post(
            f"/api/documents/upload/{uuid.uuid4()}", files={"document": ("a.pdf", PDF_BYTES, "application/pdf")}
        )
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Download / list
# ---------------------------------------------------------------------------


class TestDownload:
    """GET /api/documents/download/{document_id}"""

    async def test_download_streams_original_name(self, client: AsyncClient, owner, create_case, upload):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"], name="police_report.pdf")).json()["document"]

        resp = await client.get(f"/api/documents/download/{doc['id']}", headers=owner["headers"])
        assert resp.status_code == 200
        assert resp.content == PDF_BYTES
        assert resp.headers["content-type"].startswith("application/pdf")
        assert 'filename="police_report.pdf"' in resp.headers["content-disposition"]

    async def test_foreign_download_is_not_found(self, client: AsyncClient, owner, other_user, create_case, upload):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]

        resp = await client.get(f"/api/documents/download/{doc['id']}", headers=other_user["headers"])
        assert resp.status_code == 404
        assert resp.json()["message"] == "Document not found"

    async def test_missing_file_on_disk(self, client: AsyncClient, owner, create_case, upload, storage, db_session):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]
        row = (await db_session.execute(select(Document).where(Document.id == uuid.UUID(doc["id"])))).scalar_one()
        storage.path_for(row.file_path).unlink()

        resp = await client.get(f"/api/documents/download/{doc['id']}", headers=owner["headers"])
        assert resp.status_code == 404
        assert resp.json()["message"] == "File not found"

    async def test_list_case_documents(self, client: AsyncClient, owner, other_user, create_case, upload):
        case = await create_case(owner["headers"])
        await upload(case["id"], owner["headers"], name="a.pdf")
        await upload(case["id"], owner["headers"], name="b.png", content=b"\x89PNG", mime="image/png")

        resp = await client.get(f"/api/documents/case/{case['id']}", headers=owner["headers"])
        assert resp.status_code == 200
        assert [d["originalName"] for d in resp.json()["documents"]] == ["b.png", "a.pdf"]

        foreign = await client.get(f"/api/documents/case/{case['id']}", headers=other_user["headers"])
        assert foreign.status_code == 404

    async def test_case_detail_lists_document_metadata(self, client: AsyncClient, owner, create_case, upload):
        case = await create_case(owner["headers"])
        await upload(case["id"], owner["headers"])
        resp = await client.get(f"/api/cases/{case['id']}", headers=owner["headers"])
        assert [d["originalName"] for d in resp.json()["documents"]] == ["report.pdf"]


# ---------------------------------------------------------------------------
# Metadata update
# ---------------------------------------------------------------------------


class TestUpdateDocument:
    """PUT /api/documents/{document_id}"""

    async def test_update_metadata(self, client: AsyncClient, owner, create_case, upload):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]

        resp = await client.put(
            f"/api/documents/{doc['id']}",
            json={"documentType": "police_report", "description": "Officer's report"},
            headers=owner["headers"],
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Document updated successfully"
        assert body["document"]["documentType"] == "police_report"
        assert body["document"]["description"] == "Officer's report"
        assert body["document"]["originalName"] == "report.pdf"

    @pytest.mark.parametrize(
        "body", [{"originalName": "renamed.pdf"}, {"caseId": str(uuid.uuid4())}, {"documentType": None}, {}]
    )
    async def test_update_rejected(self, client: AsyncClient, owner, create_case, upload, body):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]
        resp = await client.put(f"/api/documents/{doc['id']}", json=body, headers=owner["headers"])
        assert resp.status_code == 400

    async def test_foreign_update(self, client: AsyncClient, owner, other_user, create_case, upload):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]
        resp = await client.put(
            f"/api/documents/{doc['id']}", json={"description": "mine"}, headers=other_user["headers"]
        )
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDeleteDocument:
    async def test_delete_removes_row_and_file(self, client: AsyncClient, owner, create_case, upload, storage, db_session):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]
        assert len(stored_files(storage)) == 1

        resp = await client.delete(f"/api/documents/{doc['id']}", headers=owner["headers"])
        assert resp.status_code == 200
        assert resp.json() == {"message": "Document deleted successfully"}
        assert stored_files(storage) == []
        assert await document_count(db_session) == 0

        again = await client.delete(f"/api/documents/{doc['id']}", headers=owner["headers"])
        assert again.status_code == 404

    async def test_delete_when_file_already_gone(self, client: AsyncClient, owner, create_case, upload, storage):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]
        for path in stored_files(storage):
            path.unlink()

        resp = await client.delete(f"/api/documents/{doc['id']}", headers=owner["headers"])
        assert resp.status_code == 200

    async def test_failed_commit_keeps_file(self, owner, create_case, upload, storage, db_session, monkeypatch):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]

        async def commit_fails(self):
            raise RuntimeError("database went away")

        monkeypatch.setattr(AsyncSession, "commit", commit_fails)
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.delete(f"/api/documents/{doc['id']}", headers=owner["headers"])
        assert resp.status_code == 500

        assert len(stored_files(storage)) == 1
        assert await document_count(db_session) == 1

    async def test_foreign_delete(self, client: AsyncClient, owner, other_user, create_case, upload, storage):
        case = await create_case(owner["headers"])
        doc = (await upload(case["id"], owner["headers"])).json()["document"]
        resp = await client.delete(f"/api/documents/{doc['id']}", headers=other_user["headers"])
        assert resp.status_code == 404
        assert len(stored_files(storage)) == 1

    async def test_case_delete_removes_files(self, client: AsyncClient, owner, create_case, upload, storage, db_session):
        case = await create_case(owner["headers"])
        first = (await upload(case["id"], owner["headers"])).json()["document"]
        await upload(case["id"], owner["headers"], name="scan.jpg", content=b"\xff\xd8\xff", mime="image/jpeg")
        assert len(stored_files(storage)) == 2

        resp = await client.delete(f"/api/cases/{case['id']}", headers=owner["headers"])
        assert resp.status_code == 200
        assert stored_files(storage) == []
        assert await document_count(db_session) == 0

        download = await client.get(f"/api/documents/download/{first['id']}", headers=owner["headers"])
        assert download.status_code == 404


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class TestDocumentStats:
    """GET /api/documents/stats/overview"""

    async def test_stats_overview(self, client: AsyncClient, owner, other_user, create_case, upload):
        case = await create_case(owner["headers"])
        foreign_case = await create_case(other_user["headers"])
        await upload(case["id"], owner["headers"], documentType="contract")
        await upload(case["id"], owner["headers"], name="x.png", content=b"\x89PNG", mime="image/png", documentType="photo")
        await upload(foreign_case["id"], other_user["headers"])

        resp = await client.get("/api/documents/stats/overview", headers=owner["headers"])
        assert resp.status_code == 200
        body = resp.json()
        assert body["stats"]["totalDocuments"] == 2
        assert body["stats"]["contracts"] == 1
        assert body["stats"]["photos"] == 1
        assert body["stats"]["totalStorageUsed"] == len(PDF_BYTES) + 4
        assert [d["originalName"] for d in body["recentDocuments"]] == ["x.png", "report.pdf"]
        assert body["recentDocuments"][0]["caseNumber"] == case["caseNumber"]
