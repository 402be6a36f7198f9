"""
End-to-end tests for the wizard API.

Drives the HTTP surface against the in-memory fakes: a vendor opens a
wizard, fills three steps, adds images (one upload fails and falls back
inline), submits, and the draft is gone afterwards.
"""

import pytest

from exceptions import DatabaseError
from services.draft_store import DraftStore, draft_key

from tests.factories import PNG_BYTES, FormFactory, ProductFactory

BASE = "/api/wizard/sessions"


def save_draft(storage, scheduler, form, step: int, product_id=None) -> None:
    """Seed a draft the way the registry stores them, on the real clock."""
    DraftStore(storage, draft_key("vendor-1", product_id), scheduler).write(form, step)


def open_session(client, **body) -> dict:
    body.setdefault("vendor_id", "vendor-1")
    response = client.post(BASE, json=body)
    assert response.status_code == 201, response.text
    return response.json()


def fill_and_walk(client, session_id: str) -> None:
    client.patch(f"{BASE}/{session_id}/fields", json={"fields": {
        "name": "Basmati Rice 5kg",
        "description": "Aged long-grain basmati rice.",
        "selling_price": "649",
        "stock": 40,
    }})
    client.put(f"{BASE}/{session_id}/taxonomy/categories", json={"selection": "Groceries"})
    client.put(f"{BASE}/{session_id}/taxonomy/units", json={"selection": "kg"})
    for expected in (2, 3, 4):
        response = client.post(f"{BASE}/{session_id}/next")
        assert response.json()["step"] == expected


class TestSessionRoutes:
    """Opening, reading and closing wizards"""

    def test_open_returns_blank_wizard(self, test_client_with_fakes):
        client, registry = test_client_with_fakes

        session = open_session(client)

        assert session["step"] == 1
        assert session["step_name"] == "Basic Info"
        assert session["status"] == "editing"
        assert session["restored_draft"] is False
        assert len(registry) == 1

    def test_open_restores_draft(self, test_client_with_fakes, storage, scheduler):
        client, _ = test_client_with_fakes
        save_draft(storage, scheduler, FormFactory.complete(name="Sona Masoori"), step=3)

        session = open_session(client)

        assert session["restored_draft"] is True
        assert session["step"] == 1
        assert session["form"]["name"] == "Sona Masoori"

    def test_open_unknown_product_is_404(self, test_client_with_fakes):
        client, _ = test_client_with_fakes

        response = client.post(BASE, json={"vendor_id": "vendor-1", "product_id": "missing"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PRODUCT_NOT_FOUND"

    def test_unknown_session_is_404(self, test_client_with_fakes):
        client, _ = test_client_with_fakes

        response = client.get(f"{BASE}/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WIZARD_SESSION_NOT_FOUND"

    def test_close_saves_unsaved_edits(self, test_client_with_fakes, storage):
        client, registry = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        client.patch(f"{BASE}/{session_id}/fields", json={"fields": {"name": "Basmati"}})

        response = client.delete(f"{BASE}/{session_id}")

        assert response.status_code == 204
        assert len(registry) == 0
        assert storage.get("vendor-1:new") is not None

    def test_discard_draft(self, test_client_with_fakes, storage, scheduler):
        client, _ = test_client_with_fakes
        save_draft(storage, scheduler, FormFactory.complete(), step=2)
        session = open_session(client)
        assert session["restored_draft"] is True
        session_id = session["session_id"]

        response = client.delete(f"{BASE}/{session_id}/draft")

        assert response.status_code == 200
        assert response.json()["form"]["name"] == ""
        assert storage.get("vendor-1:new") is None


class TestFieldAndTaxonomyRoutes:
    """Field edits and taxonomy selection"""

    def test_patch_fields_mirrors_price(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.patch(f"{BASE}/{session_id}/fields", json={"fields": {"selling_price": "149"}})

        assert response.status_code == 200
        form = response.json()["form"]
        assert form["selling_price"] == form["price"] == "149"

    def test_patch_invalid_value_is_422(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.patch(f"{BASE}/{session_id}/fields", json={"fields": {"stock": "lots"}})

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "stock"

    def test_taxonomy_options(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client, allowed_category_ids=["cat-1", "cat-2"])["session_id"]

        response = client.get(f"{BASE}/{session_id}/taxonomy/categories")

        assert response.status_code == 200
        assert [o["name"] for o in response.json()["options"]] == ["Groceries", "Personal Care"]

    def test_unknown_kind_is_422(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.get(f"{BASE}/{session_id}/taxonomy/colours")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "TAXONOMY_INVALID_KIND"

    def test_select_custom_term(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.put(f"{BASE}/{session_id}/taxonomy/units", json={"selection": "dozen"})

        unit = response.json()["form"]["unit"]
        assert unit["name"] == "dozen"
        assert unit["is_custom_pending"] is True


class TestNavigationRoutes:
    """Step navigation"""

    def test_next_with_missing_fields(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.post(f"{BASE}/{session_id}/next")

        assert response.status_code == 200
        body = response.json()
        assert body["moved"] is False
        assert set(body["errors"]) == {"name", "category", "unit"}

    def test_jump_forward_is_409(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.post(f"{BASE}/{session_id}/jump/3")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STEP_TRANSITION"

    def test_back_after_next(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        fill_and_walk(client, session_id)

        response = client.post(f"{BASE}/{session_id}/back")

        assert response.json()["step"] == 3


class TestImageRoutes:
    """Image upload, add by URL and removal"""

    def test_upload_batch_with_fallback(self, test_client_with_fakes, upload_client):
        # Arrange
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        upload_client.fail_for = {"b.png"}
        files = [
            ("files", ("a.png", PNG_BYTES, "image/png")),
            ("files", ("b.png", PNG_BYTES, "image/png")),
            ("files", ("notes.txt", b"hello", "text/plain")),
        ]

        # Act
        response = client.post(f"{BASE}/{session_id}/images", files=files)

        # Assert
        assert response.status_code == 200
        report = response.json()
        assert [a["outcome"]["kind"] for a in report["accepted"]] == ["uploaded", "inline"]
        assert report["rejected"][0]["reason"] == "not_an_image"
        assert report["image_count"] == 2

    def test_close_during_upload_stops_the_batch(self, test_client_with_fakes, upload_client, storage, scheduler):
        """
        Closing the session while the first file uploads keeps that file,
        saves it to the draft and skips the rest of the batch.
        """
        # Arrange
        client, registry = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        closed = []

        def close_session(filename):
            if not closed:
                closed.append(client.delete(f"{BASE}/{session_id}").status_code)

        upload_client.on_upload = close_session
        files = [("files", (f"photo-{i}.png", PNG_BYTES, "image/png")) for i in (1, 2, 3)]

        # Act
        response = client.post(f"{BASE}/{session_id}/images", files=files)

        # Assert
        assert closed == [204]
        assert response.status_code == 200
        report = response.json()
        assert report["cancelled"] is True
        assert [a["source_file_ref"] for a in report["accepted"]] == ["photo-1.png"]
        assert upload_client.calls == ["photo-1.png"]
        assert len(registry) == 0
        draft = DraftStore(storage, draft_key("vendor-1", None), scheduler).read()
        assert len(draft.data.images) == 1

    def test_add_url_and_remove(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        client.post(f"{BASE}/{session_id}/images/url", json={"url": "https://cdn.example.com/a.png"})

        response = client.delete(f"{BASE}/{session_id}/images/0")

        assert response.status_code == 200
        assert response.json()["form"]["images"] == []

    def test_remove_missing_image_is_404(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.delete(f"{BASE}/{session_id}/images/2")

        assert response.status_code == 404

    def test_add_url_when_full_is_409(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        for i in range(4):
            client.post(f"{BASE}/{session_id}/images/url", json={"url": f"https://cdn.example.com/{i}.png"})

        response = client.post(f"{BASE}/{session_id}/images/url", json={"url": "https://cdn.example.com/5.png"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "IMAGE_SLOTS_EXHAUSTED"


class TestSubmitRoutes:
    """Submitting the wizard"""

    def test_full_flow_creates_product(self, test_client_with_fakes, persistence, storage):
        # Arrange
        client, registry = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        fill_and_walk(client, session_id)

        # Act
        response = client.post(f"{BASE}/{session_id}/submit")

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["submitted"] is True
        assert body["product"]["id"] == "prod-1"
        assert len(persistence.created) == 1
        assert storage.get("vendor-1:new") is None
        assert len(registry) == 0

        released = client.patch(f"{BASE}/{session_id}/fields", json={"fields": {"name": "x"}})
        assert released.status_code == 404
        assert released.json()["error"]["code"] == "WIZARD_SESSION_NOT_FOUND"

    def test_submit_before_last_step_is_409(self, test_client_with_fakes):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]

        response = client.post(f"{BASE}/{session_id}/submit")

        assert response.status_code == 409

    def test_backend_failure_is_502_and_keeps_draft(self, test_client_with_fakes, persistence, storage):
        client, _ = test_client_with_fakes
        session_id = open_session(client)["session_id"]
        fill_and_walk(client, session_id)
        persistence.fail_with = DatabaseError("insert", "connection reset")

        response = client.post(f"{BASE}/{session_id}/submit")

        assert response.status_code == 502
        assert response.json()["error"]["details"]["draft_retained"] is True
        assert storage.get("vendor-1:new") is not None
        assert client.get(f"{BASE}/{session_id}").json()["status"] == "editing"

    def test_edit_flow_updates_product(self, test_client_with_fakes, persistence):
        client, _ = test_client_with_fakes
        persistence.products["prod-9"] = ProductFactory.create(id="prod-9")
        session_id = open_session(client, product_id="prod-9")["session_id"]
        for _ in range(3):
            client.post(f"{BASE}/{session_id}/next")

        response = client.post(f"{BASE}/{session_id}/submit")

        assert response.json()["submitted"] is True
        assert persistence.updated[0][0] == "prod-9"
