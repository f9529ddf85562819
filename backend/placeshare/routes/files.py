"""
PlaceShare Backend: Uploaded Image Route
=========================================

What:  Serves stored profile and place images at /uploads/images/{name},
       the same relative path that is stored on User.image and Place.image.
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from placeshare.exceptions import NotFoundError
from placeshare.services.file_service import file_service

router = APIRouter(tags=["Files"])


@router.get(
    "/uploads/images/{name}",
    summary="Serve an uploaded image",
    responses={
        200: {"description": "Image file"},
        404: {"description": "File not found"},
    },
)
async def serve_image(name: str) -> FileResponse:
    # resolve() rejects names that escape the storage root
    path = file_service.resolve(f"{file_service.upload_dir}/{name}")
    if not path.is_file():
        raise NotFoundError(resource="file", resource_id=name)

    return FileResponse(
        path=str(path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
