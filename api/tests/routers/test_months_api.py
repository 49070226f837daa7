"""Client month endpoints over HTTP: auth, scoping, uploads, and submit."""
import threading
import uuid

import pytest

from app.core.security import create_access_token
from app.models.monthly_package import PackageStatus

PDF = ("jan.pdf", b"%PDF-1.4 statement", "application/pdf")
FORM = {"institution_name": "Chase", "account_last4": "4321", "institution_type": "bank"}


class TestAuth:
    async def test_no_token(self, http):
        resp = await http.get("/api/v1/months")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Unauthorized"}

    async def test_garbage_token(self, http):
        resp = await http.get("/api/v1/months", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    async def test_cookie_token(self, http, client_user):
        token = create_access_token({"sub": str(client_user.id)})
        resp = await http.get("/api/v1/months", headers={"Cookie": f"access_token={token}"})
        assert resp.status_code == 200

    async def test_bookkeeper_forbidden(self, http, bookkeeper_user, auth):
        resp = await http.get("/api/v1/months", headers=auth(bookkeeper_user))
        assert resp.status_code == 403
        assert resp.json() == {"detail": "Unauthorized"}


class TestCreateMonth:
    async def test_created(self, http, client_user, auth):
        resp = await http.post(
            "/api/v1/months", json={"month": 1, "year": 2026}, headers=auth(client_user)
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "need_statements"
        assert body["statements"] == []
        assert body["submitted_at"] is None

    async def test_duplicate_returns_existing(self, http, client_user, auth):
        first = await http.post(
            "/api/v1/months", json={"month": 2, "year": 2026}, headers=auth(client_user)
        )
        again = await http.post(
            "/api/v1/months", json={"month": 2, "year": 2026}, headers=auth(client_user)
        )
        assert again.status_code == 409
        assert again.json()["id"] == first.json()["id"]

    @pytest.mark.parametrize("body", [{"month": 13, "year": 2026}, {"month": 1, "year": 2019}])
    async def test_out_of_range(self, http, client_user, auth, body):
        resp = await http.post("/api/v1/months", json=body, headers=auth(client_user))
        assert resp.status_code == 422

    async def test_list_with_counts(self, http, client_user, auth, make_package, make_statement):
        pkg = await make_package(client_user, month=1)
        await make_statement(pkg)
        await make_package(client_user, month=2)
        resp = await http.get("/api/v1/months", headers=auth(client_user))
        assert [(m["month"], m["statement_count"]) for m in resp.json()] == [(2, 0), (1, 1)]


class TestScoping:
    async def test_other_clients_package_is_not_found(
        self, http, client_user, other_client, auth, make_package
    ):
        pkg = await make_package(other_client)
        resp = await http.get(f"/api/v1/months/{pkg.id}", headers=auth(client_user))
        assert resp.status_code == 404
        missing = await http.get(f"/api/v1/months/{uuid.uuid4()}", headers=auth(client_user))
        assert missing.json() == resp.json()

    async def test_cannot_upload_to_other_clients_package(
        self, http, client_user, other_client, auth, make_package, blob_store
    ):
        pkg = await make_package(other_client)
        resp = await http.post(
            f"/api/v1/months/{pkg.id}/statements",
            files={"file": PDF}, data=FORM, headers=auth(client_user),
        )
        assert resp.status_code == 404
        assert blob_store.objects == {}


class TestStatements:
    async def test_upload(self, http, client_user, auth, make_package, blob_store):
        pkg = await make_package(client_user)
        resp = await http.post(
            f"/api/v1/months/{pkg.id}/statements",
            files={"file": PDF}, data=FORM, headers=auth(client_user),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["file_name"] == "jan.pdf"
        assert body["file_size"] == len(PDF[1])
        assert body["institution_type"] == "bank"
        assert blob_store.objects[body["file_url"]] == PDF[1]

    async def test_bad_metadata(self, http, client_user, auth, make_package):
        pkg = await make_package(client_user)
        resp = await http.post(
            f"/api/v1/months/{pkg.id}/statements",
            files={"file": PDF}, data={**FORM, "account_last4": "12"},
            headers=auth(client_user),
        )
        assert resp.status_code == 422
        assert "account_last4" in resp.json()["errors"]

    async def test_bad_file_type(self, http, client_user, auth, make_package, blob_store):
        pkg = await make_package(client_user)
        resp = await http.post(
            f"/api/v1/months/{pkg.id}/statements",
            files={"file": ("notes.txt", b"hello", "text/plain")}, data=FORM,
            headers=auth(client_user),
        )
        assert resp.status_code == 422
        assert "file" in resp.json()["errors"]
        assert blob_store.objects == {}

    async def test_upload_after_submit_rejected(self, http, client_user, auth, make_package):
        pkg = await make_package(client_user, status=PackageStatus.CATEGORIZING)
        resp = await http.post(
            f"/api/v1/months/{pkg.id}/statements",
            files={"file": PDF}, data=FORM, headers=auth(client_user),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot upload statements in current status"

    async def test_delete(self, http, client_user, auth, make_package, make_statement, blob_store):
        pkg = await make_package(client_user)
        stmt = await make_statement(pkg)
        resp = await http.delete(
            f"/api/v1/months/{pkg.id}/statements/{stmt.id}", headers=auth(client_user)
        )
        assert resp.json() == {"success": True}
        assert stmt.file_url not in blob_store.objects
        detail = await http.get(f"/api/v1/months/{pkg.id}", headers=auth(client_user))
        assert detail.json()["statements"] == []

    async def test_institutions(self, http, client_user, auth, make_package, make_statement):
        pkg = await make_package(client_user)
        await make_statement(pkg, "a.pdf", institution_name="Chase")
        await make_statement(pkg, "b.pdf", institution_name="Amex")
        resp = await http.get("/api/v1/institutions", headers=auth(client_user))
        assert resp.json() == ["Amex", "Chase"]


class TestSubmit:
    async def test_submit(
        self, http, client_user, auth, make_package, make_statement, dispatched
    ):
        pkg = await make_package(client_user)
        await make_statement(pkg)
        resp = await http.post(f"/api/v1/months/{pkg.id}/submit", headers=auth(client_user))
        assert resp.status_code == 200
        assert resp.json()["status"] == "categorizing"
        assert resp.json()["submitted_at"] is not None
        assert [n.kind for n in dispatched] == ["submission"]

    async def test_notifications_dispatched_off_the_event_loop(
        self, http, client_user, auth, make_package, make_statement, monkeypatch
    ):
        threads = []

        def _record(pending):
            threads.append(threading.current_thread())
            return len(pending)

        monkeypatch.setattr("app.routers.months.dispatch_notifications", _record)
        pkg = await make_package(client_user)
        await make_statement(pkg)
        resp = await http.post(f"/api/v1/months/{pkg.id}/submit", headers=auth(client_user))
        assert resp.status_code == 200
        assert len(threads) == 1
        assert threads[0] is not threading.main_thread()

    async def test_submit_empty(self, http, client_user, auth, make_package, dispatched):
        pkg = await make_package(client_user)
        resp = await http.post(f"/api/v1/months/{pkg.id}/submit", headers=auth(client_user))
        assert resp.status_code == 400
        assert resp.json() == {"detail": "At least one statement is required"}
        assert dispatched == []

    async def test_submit_twice(self, http, client_user, auth, make_package, make_statement):
        pkg = await make_package(client_user)
        await make_statement(pkg)
        await http.post(f"/api/v1/months/{pkg.id}/submit", headers=auth(client_user))
        resp = await http.post(f"/api/v1/months/{pkg.id}/submit", headers=auth(client_user))
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Package already submitted"}
