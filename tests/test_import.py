"""Tests for bulk word import: file parsing, the import task and its endpoints."""
import pytest
from httpx import AsyncClient

from words_wall.services.import_manager import ImportManager, parse_word_file


# ---------------------------------------------------------------------------
# parse_word_file
# ---------------------------------------------------------------------------

def test_parse_csv_first_column_skips_header_and_duplicates():
    content = "Word,Meaning\nApple,苹果\n banana ,香蕉\napple,again\n\n".encode("utf-8")
    assert parse_word_file(content) == ["apple", "banana"]


def test_parse_plain_text_with_bom():
    content = b"\xef\xbb\xbfrun\nwalk\nRun\n"
    assert parse_word_file(content) == ["run", "walk"]


def test_parse_rejects_file_without_words():
    with pytest.raises(ValueError, match="No valid words"):
        parse_word_file(b"english\n\n,\n")


def test_parse_rejects_non_utf8():
    with pytest.raises(ValueError, match="UTF-8"):
        parse_word_file("apple".encode("utf-16"))


# ---------------------------------------------------------------------------
# ImportManager
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_import_creates_each_word_once(import_manager: ImportManager, store, service):
    await service.get_or_create("apple")

    started = import_manager.start(["apple", "banana", "cherry"])
    assert started.is_running is True
    assert started.total == 3
    await import_manager.wait()

    status = import_manager.get_status()
    assert status.is_running is False
    assert status.completed == 3
    assert status.progress == 100
    assert status.errors == []
    assert status.elapsed_seconds is not None
    assert sorted(w.word for w in store.rows.values()) == ["apple", "banana", "cherry"]


@pytest.mark.asyncio
async def test_import_collects_errors_and_continues(import_manager: ImportManager, store):
    import_manager.start(["apple", "   ", "banana"])
    await import_manager.wait()

    status = import_manager.get_status()
    assert status.completed == 2
    assert len(status.errors) == 1
    assert sorted(w.word for w in store.rows.values()) == ["apple", "banana"]


@pytest.mark.asyncio
async def test_only_one_import_at_a_time(import_manager: ImportManager):
    import_manager.start(["apple"])
    with pytest.raises(RuntimeError):
        import_manager.start(["banana"])
    await import_manager.wait()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upload_words_csv(client: AsyncClient, import_manager: ImportManager, store):
    files = {"file": ("words.csv", b"word\nApple\nBanana\n", "text/csv")}
    resp = await client.post("/api/admin/upload-words", files=files)
    assert resp.status_code == 202
    assert resp.json()["total_words"] == 2

    await import_manager.wait()
    resp = await client.get("/api/admin/import-status")
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_running"] is False
    assert data["completed"] == 2
    assert sorted(w.word for w in store.rows.values()) == ["apple", "banana"]


@pytest.mark.asyncio
async def test_upload_rejects_unsupported_type(client: AsyncClient):
    files = {"file": ("words.pdf", b"%PDF-1.4", "application/pdf")}
    resp = await client.post("/api/admin/upload-words", files=files)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_upload_rejects_file_without_words(client: AsyncClient):
    files = {"file": ("words.txt", b"word\n", "text/plain")}
    resp = await client.post("/api/admin/upload-words", files=files)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_upload_conflicts_with_running_import(client: AsyncClient, import_manager: ImportManager):
    import_manager.start(["apple"])
    files = {"file": ("words.txt", b"banana\n", "text/plain")}
    resp = await client.post("/api/admin/upload-words", files=files)
    assert resp.status_code == 409
    await import_manager.wait()


@pytest.mark.asyncio
async def test_import_status_before_any_import(client: AsyncClient):
    resp = await client.get("/api/admin/import-status")
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_running"] is False
    assert data["total"] == 0
    assert data["elapsed_seconds"] is None
