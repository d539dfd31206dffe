"""
Rotas da biblioteca de clips.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
from replaybuffer.core.database import get_db
from replaybuffer.core.security import get_current_user
from replaybuffer.services.clip_library_service import ClipLibraryService, clip_library_service
from replaybuffer.schemas.clip import ClipSchema, ClipUpdateSchema, ShareClipSchema, ShareClipResponseSchema

router = APIRouter(prefix="/clips", tags=["clips"])


def get_clip_library_service() -> ClipLibraryService:
    return clip_library_service


@router.get("", response_model=List[ClipSchema])
async def list_my_clips(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipLibraryService = Depends(get_clip_library_service)
):
    """Lista os clips do utilizador autenticado."""
    return service.list_user_clips(db, current_user["user_id"])


@router.get("/public/{user_id}", response_model=List[ClipSchema])
async def list_public_clips(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipLibraryService = Depends(get_clip_library_service)
):
    """Lista os clips públicos de um utilizador."""
    return service.list_public_clips(db, user_id)


@router.patch("/{clip_id}", response_model=ClipSchema)
async def update_clip(
    clip_id: UUID,
    data: ClipUpdateSchema,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipLibraryService = Depends(get_clip_library_service)
):
    """Atualiza a visibilidade de um clip."""
    return service.update_clip(db, current_user["user_id"], clip_id, is_public=data.is_public)


@router.delete("/{clip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_clip(
    clip_id: UUID,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipLibraryService = Depends(get_clip_library_service)
):
    """Remove um clip e o respetivo ficheiro."""
    await service.delete_clip(db, current_user["user_id"], clip_id)
    return None


@router.post("/{clip_id}/share", response_model=ShareClipResponseSchema)
async def share_clip(
    clip_id: UUID,
    data: ShareClipSchema,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipLibraryService = Depends(get_clip_library_service)
):
    """Partilha um clip existente num canal ou DM."""
    if not data.target_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Target id is required for destination {data.destination}"
        )

    return await service.share_clip(
        db, current_user["user_id"], clip_id, data.destination, data.target_id
    )
