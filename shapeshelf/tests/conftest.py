"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from shapeshelf.api.dependencies import get_shape_library
from shapeshelf.api.main import app
from shapeshelf.capture.bridge import CaptureBridge
from shapeshelf.config import Settings
from shapeshelf.dsl.schema import CaptureResult, RawCapturedShape, ShapeDefinition, ShapeRecord
from shapeshelf.library.assets import AssetManager
from shapeshelf.library.cache import ShapeCache
from shapeshelf.library.paths import LibraryPaths
from shapeshelf.library.service import ShapeLibrary
from shapeshelf.library.store import ShapeStore
from shapeshelf.renderer.raster import draw_preview


class FakeBridge(CaptureBridge):
    """Bridge returning a canned result."""

    def __init__(self, result: CaptureResult) -> None:
        self.result = result
        self.calls = 0

    @classmethod
    def returning(cls, **data) -> "FakeBridge":
        return cls(CaptureResult(success=True, shape=RawCapturedShape.from_bridge(data)))

    def capture_selection(self) -> CaptureResult:
        self.calls += 1
        return self.result


class FakeRasterizer:
    """Rasterizer drawing with Pillow only, recording what it was given."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Path | None]] = []

    def rasterize(self, record: ShapeRecord, document, output_path) -> Path:
        self.calls.append((record.id, Path(document) if document else None))
        return draw_preview(record, output_path)


def make_record(
    shape_id: str = "captured-box-1",
    name: str = "Box",
    category: str = "basic",
    preview: str | None = None,
    **extra,
) -> ShapeRecord:
    """Build a stored-ready record with a rectangle definition."""
    data = {
        "id": shape_id,
        "name": name,
        "category": category,
        "description": "",
        "tags": ["captured", category],
        "preview": preview if preview is not None else f"{category}/{shape_id}.png",
        "pptx_definition": ShapeDefinition(type="rectangle", x=1, y=1, w=2, h=1),
    }
    data.update(extra)
    return ShapeRecord(**data)


def write_png(path: Path, payload: bytes = b"\x89PNG fake") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


def seed_records(paths: LibraryPaths, *records: ShapeRecord) -> None:
    """Append records straight to their category files, as a hand-edited or older library would hold them."""
    for record in records:
        store_path = paths.store_path(record.category)
        data = json.loads(store_path.read_text(encoding="utf-8")) if store_path.exists() else []
        data.append(record.to_json_dict())
        store_path.write_text(json.dumps(data, indent=2), encoding="utf-8")


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def settings(library_root: Path) -> Settings:
    return Settings(
        _env_file=None,
        library_path=str(library_root),
        auto_cleanup=False,
    )


@pytest.fixture
def paths(library_root: Path) -> LibraryPaths:
    return LibraryPaths(library_root)


@pytest.fixture
def cache() -> ShapeCache:
    return ShapeCache()


@pytest.fixture
def store(paths: LibraryPaths, cache: ShapeCache) -> ShapeStore:
    return ShapeStore(paths, cache=cache)


@pytest.fixture
def rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def assets(paths: LibraryPaths, store: ShapeStore, rasterizer: FakeRasterizer) -> AssetManager:
    return AssetManager(paths, store, rasterizer=rasterizer)


@pytest.fixture
def library(settings: Settings, paths: LibraryPaths, store: ShapeStore, assets: AssetManager) -> ShapeLibrary:
    lib = ShapeLibrary(settings, paths=paths, store=store, assets=assets)
    yield lib
    lib.close()


@pytest.fixture
def client(library: ShapeLibrary) -> TestClient:
    """Create a test client for the FastAPI app bound to a temporary library."""
    app.dependency_overrides[get_shape_library] = lambda: library
    yield TestClient(app)
    app.dependency_overrides.clear()
