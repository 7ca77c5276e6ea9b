"""Tests for the HTTP API."""

from unittest.mock import patch

from conftest import FakeBridge, make_record, seed_records, write_png
from shapeshelf.api.dependencies import status_for
from shapeshelf.dsl.schema import CaptureResult
from shapeshelf.errors import InvalidShapeError, ShapeshelfError


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"ready": True, "checks": {"library": True}}


class TestShapeRoutes:
    """Tests for /shapes."""

    def test_list_and_counts(self, client, library):
        library.store.add(make_record("a", category="arrows"))
        library.store.add(make_record("b"))

        listed = client.get("/shapes").json()
        assert listed["total"] == 2

        arrows = client.get("/shapes", params={"category": "arrows"}).json()
        assert [s["id"] for s in arrows["shapes"]] == ["a"]

        counts = client.get("/shapes/counts").json()
        assert counts["counts"]["arrows"] == 1
        assert counts["total"] == 2

    def test_search(self, client, library):
        library.store.add(make_record("a", name="Chevron Step", category="arrows"))
        library.store.add(make_record("b", name="Box"))

        response = client.get("/shapes", params={"q": "chevron"})

        assert [s["id"] for s in response.json()["shapes"]] == ["a"]

    def test_get_uses_disk_keys(self, client, library):
        library.store.add(make_record("s1"))

        response = client.get("/shapes/basic/s1")

        assert response.status_code == 200
        assert response.json()["pptxDefinition"]["type"] == "rectangle"

    def test_get_missing(self, client):
        response = client.get("/shapes/basic/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Shape with ID 'nope' not found in basic category"

    def test_unknown_category(self, client):
        assert client.get("/shapes/stars/s1").status_code == 400
        assert client.get("/shapes", params={"category": "stars"}).status_code == 400

    def test_patch_moves_category(self, client, library, paths):
        """Changing the category through the API moves the preview."""
        library.store.add(make_record("s1"))
        write_png(paths.preview_path("basic", "s1"))

        response = client.patch("/shapes/basic/s1", json={"category": "arrows", "name": "Arrowish"})

        assert response.status_code == 200
        body = response.json()
        assert body["category"] == "arrows"
        assert body["preview"] == "arrows/s1.png"
        assert paths.preview_path("arrows", "s1").exists()
        assert client.get("/shapes/basic/s1").status_code == 404

    def test_patch_rejects_empty_name(self, client, library):
        library.store.add(make_record("s1"))
        assert client.patch("/shapes/basic/s1", json={"name": ""}).status_code == 422

    def test_delete(self, client, library):
        library.store.add(make_record("s1"))

        assert client.delete("/shapes/basic/s1").status_code == 204
        assert client.delete("/shapes/basic/s1").status_code == 404

    def test_preview_generation_and_download(self, client, library):
        library.store.add(make_record("s1", preview="basic/placeholder.png"))

        assert client.get("/shapes/basic/s1/preview.png").status_code == 404

        generated = client.post("/shapes/basic/s1/preview")
        assert generated.json()["preview"] == "basic/s1.png"

        image = client.get("/shapes/basic/s1/preview.png")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"

    def test_native_only_preview_conflict(self, client, library):
        library.store.add(make_record("g1", native_only=True, native_pptx="native/gone.pptx"))
        assert client.post("/shapes/basic/g1/preview").status_code == 409

    def test_bulk_previews(self, client, library):
        library.store.add(make_record("s1"))
        assert client.post("/shapes/previews").json() == {"generated": 1, "failed": 0}

    def test_repair(self, client, library, paths):
        seed_records(paths, make_record("s1", category="arrows", preview="basic/s1.png"))
        write_png(paths.preview_path("basic", "s1"))

        body = client.post("/shapes/repair").json()

        assert body["repaired"] == 1
        assert body["moved"] == ["s1"]

    def test_cache_stats(self, client, library):
        library.store.add(make_record("s1"))
        client.get("/shapes", params={"category": "basic"})
        assert client.get("/shapes/cache").json()["categories_in_cache"] >= 1

    def test_capture(self, client):
        """Capture uses the platform bridge and returns the stored record."""
        bridge = FakeBridge.returning(name="Arrow1", type=39)

        with patch("shapeshelf.library.service.get_platform_bridge", return_value=bridge):
            response = client.post("/shapes/capture", params={"name": "Go"})

        assert response.status_code == 201
        assert response.json()["name"] == "Go"
        assert response.json()["category"] == "arrows"

    def test_capture_failure(self, client):
        bridge = FakeBridge(CaptureResult.failure("No shape selected"))

        with patch("shapeshelf.library.service.get_platform_bridge", return_value=bridge):
            response = client.post("/shapes/capture")

        assert response.status_code == 500
        assert response.json()["detail"] == "No shape selected"

    def test_request_id_header(self, client):
        response = client.get("/shapes/counts")
        assert "X-Request-ID" in response.headers


class TestStatusMapping:
    def test_invalid_shape_is_unprocessable(self):
        assert status_for(InvalidShapeError("Preview for shape s1 must be under basic/")) == 422
        assert status_for(ShapeshelfError("disk full")) == 500
