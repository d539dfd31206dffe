"""
Rotas de download de ficheiros.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from uuid import UUID
from replaybuffer.core.database import get_db
from replaybuffer.core.security import get_current_user
from replaybuffer.services.clip_library_service import ClipLibraryService
from replaybuffer.routers.clips import get_clip_library_service

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/{file_id}")
async def download_file(
    file_id: UUID,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipLibraryService = Depends(get_clip_library_service)
):
    """Faz download de um clip (dono ou clip público)."""
    stored_file = service.get_file_for_download(db, current_user["user_id"], file_id)

    return FileResponse(
        path=stored_file.storage_path,
        media_type=stored_file.mime_type,
        filename=stored_file.filename
    )
