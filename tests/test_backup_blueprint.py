"""Tests for backup blueprint download, restore, reset and status APIs."""

import io
import re
import zipfile
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest
from flask import Flask

from utils.db import StoreHandle
from utils.errors import StoreBusy
from utils.path_manager import PathManager
from utils.restore import operation_guard


@pytest.fixture
def pm(tmp_path):
    return PathManager(tmp_path)


@pytest.fixture
def store_handle(pm):
    handle = StoreHandle(pm.db_path)
    conn = handle.connection
    conn.execute("INSERT INTO companies (name) VALUES (?)", ("Live Co",))
    conn.commit()
    yield handle
    handle.close()


@pytest.fixture
def app(store_handle, pm):
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.secret_key = "test-secret-key"

    from web.blueprints.auth import auth_bp
    from web.blueprints.backup import backup_bp, init_backup_bp

    init_backup_bp(store_handle, pm)
    app.register_blueprint(auth_bp)
    app.register_blueprint(backup_bp)
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess["authenticated"] = True
            sess["username"] = "admin"
        yield client


@pytest.fixture
def restore_db_bytes(tmp_path):
    handle = StoreHandle(tmp_path / "other" / "backup.db")
    conn = handle.connection
    conn.execute("INSERT INTO companies (name) VALUES (?)", ("Restored Co",))
    conn.commit()
    handle.close()
    return (tmp_path / "other" / "backup.db").read_bytes()


def _company_names(handle):
    return [r[0] for r in handle.connection.execute("SELECT name FROM companies")]


def _upload(client, url, payload: bytes, filename: str, lang: str = "en"):
    return client.post(
        f"{url}?lang={lang}",
        data={"backup": (io.BytesIO(payload), filename)},
        content_type="multipart/form-data",
    )


# --- Auth ---


def test_requires_login(app):
    with app.test_client() as anonymous:
        response = anonymous.get("/backup/stats")

    assert response.status_code == 302
    location = urlparse(response.headers["Location"])
    assert location.path == "/login"
    assert parse_qs(location.query)["next"] == ["/backup/stats"]


# --- Status ---


def test_stats_returns_sizes(client, pm):
    response = client.get("/backup/stats")

    assert response.status_code == 200
    data = response.get_json()
    assert data["db_size_bytes"] > 0
    assert data["uploads_count"] == 0


def test_status_reports_idle_and_open_store(client):
    response = client.get("/backup/status")

    assert response.status_code == 200
    data = response.get_json()
    assert data["active"] is False
    assert data["store_open"] is True


# --- Downloads ---


def test_download_database_streams_checkpointed_store(client, pm):
    response = client.get("/backup/download/database")

    assert response.status_code == 200
    assert response.mimetype == "application/octet-stream"
    disposition = response.headers["Content-Disposition"]
    assert re.search(r'filename="invoice-backup-\d{4}-\d{2}-\d{2}\.db"', disposition)
    assert response.data.startswith(b"SQLite format 3\x00")
    assert response.data == pm.db_path.read_bytes()
    assert int(response.headers["Content-Length"]) == len(response.data)


def test_download_uploads_with_empty_tree(client):
    response = client.get("/backup/download/uploads")

    assert response.status_code == 200
    assert response.mimetype == "application/zip"
    assert re.search(
        r'filename="invoice-uploads-\d{4}-\d{2}-\d{2}\.zip"',
        response.headers["Content-Disposition"],
    )
    with zipfile.ZipFile(io.BytesIO(response.data)) as zf:
        assert zf.namelist() == ["uploads/"]


def test_download_full_contains_store_and_uploads(client, pm):
    logo = pm.get_uploads_dir() / "companies" / "1" / "logo.png"
    logo.parent.mkdir(parents=True)
    logo.write_bytes(b"logo")

    response = client.get("/backup/download/full")

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.data)) as zf:
        names = zf.namelist()
        assert "invoice.db" in names
        assert zf.read("uploads/companies/1/logo.png") == b"logo"
        assert zf.read("invoice.db").startswith(b"SQLite format 3\x00")


def test_download_store_busy_maps_to_503(client):
    with patch(
        "web.blueprints.backup.backup_restore_service.download_database_backup",
        side_effect=StoreBusy("locked"),
    ):
        response = client.get("/backup/download/database?lang=en")

    assert response.status_code == 503
    data = response.get_json()
    assert data["success"] is False
    assert data["kind"] == "store_busy"
    assert data["error"] == "The database is busy. Please try again in a moment."


def test_unexpected_error_does_not_leak_details(client):
    with patch(
        "web.blueprints.backup.backup_restore_service.download_uploads_backup",
        side_effect=RuntimeError("boom at /srv/secret/path"),
    ):
        response = client.get("/backup/download/uploads?lang=en")

    assert response.status_code == 500
    data = response.get_json()
    assert data["kind"] == "internal_error"
    assert "secret" not in response.get_data(as_text=True)


def test_download_refused_during_restore(client):
    with operation_guard("database restore"):
        response = client.get("/backup/download/database")

    assert response.status_code == 409
    assert response.get_json()["kind"] == "operation_in_progress"


# --- Restore ---


def test_restore_database_success(client, store_handle, restore_db_bytes, pm):
    response = _upload(client, "/backup/restore/database", restore_db_bytes, "backup.db")

    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["message"] == "Database restored successfully."
    assert data["result"]["kind"] == "database"
    assert data["result"]["rollback_copy"].startswith("invoice.db.backup-")
    assert _company_names(store_handle) == ["Restored Co"]
    assert not [p for p in pm.temp_dir.iterdir() if p.name.startswith("restore-")]


def test_restore_database_accepts_hangul_filename(client, store_handle, restore_db_bytes):
    response = _upload(client, "/backup/restore/database", restore_db_bytes, "백업.db")

    assert response.status_code == 200
    assert response.get_json()["success"] is True
    assert _company_names(store_handle) == ["Restored Co"]


def test_restore_uploads_accepts_hangul_filename(client, pm):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("uploads/logo.png", b"logo")

    response = _upload(client, "/backup/restore/uploads", buf.getvalue(), "업로드 백업.ZIP")

    assert response.status_code == 200
    assert (pm.uploads_dir / "logo.png").read_bytes() == b"logo"


def test_restore_rejects_txt_file(client, store_handle, pm):
    bytes_before = pm.db_path.read_bytes()

    response = _upload(client, "/backup/restore/database", b"hello", "notes.txt")

    assert response.status_code == 400
    data = response.get_json()
    assert data["kind"] == "invalid_artifact"
    assert data["error"] == "Only .db and .zip files are allowed."
    assert pm.db_path.read_bytes() == bytes_before
    assert store_handle.ping()


def test_restore_database_rejects_zip(client):
    response = _upload(client, "/backup/restore/database", b"PK\x05\x06", "backup.zip")

    assert response.status_code == 400
    assert response.get_json()["error"] == "Please upload a valid .db database file."


def test_restore_without_file(client):
    response = client.post(
        "/backup/restore/full?lang=en", data={}, content_type="multipart/form-data"
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "No file uploaded."


def test_restore_too_large(client, pm):
    with patch("web.blueprints.backup._max_upload_bytes", return_value=1024 * 1024):
        response = _upload(
            client, "/backup/restore/database", b"x" * (1024 * 1024 + 1), "big.db"
        )

    assert response.status_code == 413
    data = response.get_json()
    assert data["kind"] == "artifact_too_large"
    assert data["error"] == "File too large. Maximum size: 1 MB"
    assert not list(pm.temp_dir.iterdir())


def test_restore_uploads_from_zip(client, pm):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("uploads/companies/9/logo.png", b"restored logo")

    response = _upload(client, "/backup/restore/uploads", buf.getvalue(), "uploads.zip")

    assert response.status_code == 200
    assert response.get_json()["result"]["uploads_restored"] == 1
    assert (pm.uploads_dir / "companies" / "9" / "logo.png").read_bytes() == b"restored logo"


def test_restore_full_malformed_archive(client, store_handle):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w"):
        pass

    response = _upload(client, "/backup/restore/full", buf.getvalue(), "full.zip")

    assert response.status_code == 400
    assert response.get_json()["kind"] == "malformed_archive"
    assert store_handle.ping()


def test_restore_message_defaults_to_korean(client, restore_db_bytes):
    response = client.post(
        "/backup/restore/database",
        data={"backup": (io.BytesIO(restore_db_bytes), "backup.db")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 200
    assert response.get_json()["message"] == "데이터베이스가 복원되었습니다."


def test_restore_refused_during_reset(client, restore_db_bytes):
    with operation_guard("reset"):
        response = _upload(client, "/backup/restore/database", restore_db_bytes, "backup.db")

    assert response.status_code == 409


# --- Reset ---


def test_reset_deletes_business_data(client, store_handle):
    response = client.post("/backup/reset?lang=en")

    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["message"] == "All data has been deleted."
    assert data["deleted"]["companies"] == 1
    assert _company_names(store_handle) == []
