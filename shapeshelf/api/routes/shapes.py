"""Shape library routes."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from shapeshelf.api.dependencies import get_shape_library, http_error
from shapeshelf.errors import ShapeshelfError
from shapeshelf.library.service import ShapeLibrary

router = APIRouter()


class ShapeUpdate(BaseModel):
    """Request to update a shape. Omitted fields are left unchanged."""
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    tags: list[str] | None = None
    category: str | None = None


class ShapeListResponse(BaseModel):
    """Shape list response."""
    shapes: list[dict[str, Any]]
    total: int


class CountsResponse(BaseModel):
    """Per-category record counts."""
    counts: dict[str, int]
    total: int


class RepairResponse(BaseModel):
    """Orphan repair report."""
    repaired: int
    scanned: int
    moved: list[str]
    relinked: list[str]
    unowned: list[str]
    missing: list[str]


class PreviewBatchResponse(BaseModel):
    """Bulk preview generation result."""
    generated: int
    failed: int


@router.get("", response_model=ShapeListResponse)
def list_shapes(
    category: str | None = None,
    q: str | None = None,
    tags: list[str] | None = Query(default=None),
    library: ShapeLibrary = Depends(get_shape_library),
):
    """List or search shapes."""
    try:
        if q or tags:
            records = library.search(q, category=category, tags=tags)
        else:
            records = library.list(category)
    except ShapeshelfError as e:
        raise http_error(e)
    return ShapeListResponse(shapes=[r.to_json_dict() for r in records], total=len(records))


@router.get("/counts", response_model=CountsResponse)
def shape_counts(library: ShapeLibrary = Depends(get_shape_library)):
    """Number of shapes per category."""
    counts = library.counts()
    return CountsResponse(counts=counts, total=sum(counts.values()))


@router.get("/cache")
def cache_stats(library: ShapeLibrary = Depends(get_shape_library)) -> dict[str, Any]:
    """Shape cache statistics."""
    return library.cache_stats()


@router.post("/capture", status_code=status.HTTP_201_CREATED)
def capture_shape(
    name: str | None = None,
    library: ShapeLibrary = Depends(get_shape_library),
) -> dict[str, Any]:
    """Capture the shape selected in PowerPoint and save it."""
    try:
        record = library.capture(custom_name=name)
    except ShapeshelfError as e:
        raise http_error(e)
    return record.to_json_dict()


@router.post("/repair", response_model=RepairResponse)
def repair_previews(library: ShapeLibrary = Depends(get_shape_library)):
    """Move orphaned previews back under their shape's category."""
    try:
        report = library.repair()
    except ShapeshelfError as e:
        raise http_error(e)
    return RepairResponse(**report.to_dict())


@router.post("/previews", response_model=PreviewBatchResponse)
def generate_all_previews(library: ShapeLibrary = Depends(get_shape_library)):
    """Regenerate previews for every shape."""
    generated, failed = library.generate_all_previews()
    return PreviewBatchResponse(generated=generated, failed=failed)


@router.get("/{category}/{shape_id}")
def get_shape(
    category: str,
    shape_id: str,
    library: ShapeLibrary = Depends(get_shape_library),
) -> dict[str, Any]:
    """Get a shape by category and id."""
    try:
        return library.get(shape_id, category).to_json_dict()
    except ShapeshelfError as e:
        raise http_error(e)


@router.patch("/{category}/{shape_id}")
def update_shape(
    category: str,
    shape_id: str,
    request: ShapeUpdate,
    library: ShapeLibrary = Depends(get_shape_library),
) -> dict[str, Any]:
    """Update a shape; a new category moves its preview along."""
    changes = request.model_dump(exclude_none=True)
    try:
        return library.update(shape_id, category, changes).to_json_dict()
    except ShapeshelfError as e:
        raise http_error(e)


@router.delete("/{category}/{shape_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shape(
    category: str,
    shape_id: str,
    library: ShapeLibrary = Depends(get_shape_library),
) -> None:
    """Delete a shape and its files."""
    try:
        library.remove(shape_id, category)
    except ShapeshelfError as e:
        raise http_error(e)


@router.post("/{category}/{shape_id}/preview")
def generate_preview(
    category: str,
    shape_id: str,
    library: ShapeLibrary = Depends(get_shape_library),
) -> dict[str, Any]:
    """Render a fresh preview image for a shape."""
    try:
        return library.generate_preview(shape_id, category).to_json_dict()
    except ShapeshelfError as e:
        raise http_error(e)


@router.post("/{category}/{shape_id}/insert")
def insert_shape(
    category: str,
    shape_id: str,
    library: ShapeLibrary = Depends(get_shape_library),
) -> dict[str, str]:
    """Insert a shape into the running PowerPoint."""
    try:
        result = library.insert(shape_id, category)
    except ShapeshelfError as e:
        raise http_error(e)
    return {"method": result.method, "source": result.source.origin, "message": result.message}


@router.get("/{category}/{shape_id}/preview.png")
def get_preview(
    category: str,
    shape_id: str,
    library: ShapeLibrary = Depends(get_shape_library),
):
    """Serve a shape's preview image."""
    try:
        record = library.get(shape_id, category)
    except ShapeshelfError as e:
        raise http_error(e)

    path = library.paths.resolve_preview(record.preview)
    if not path.exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Preview for '{record.name}' has not been generated",
        )
    return FileResponse(path, media_type="image/png")
