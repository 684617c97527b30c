"""Corrections REST API router.

Endpoints:
    POST   /corrections                       - Correct a partner's message
    GET    /corrections/my                    - Corrections of your messages, newest 50
    GET    /messages/{message_id}/corrections - Corrections of a message, newest first
    DELETE /corrections/{correction_id}       - Delete your own correction

Every correction in a response carries ``diff``: word-level segments between
the original and corrected text for highlighting.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from lingochat.auth.verifier import get_current_user_id
from lingochat.chat.errors import AuthorizationError, NotFoundError
from lingochat.chat.router import get_gateway

from .schemas import CorrectionCreate, CorrectionOut, ReceivedCorrectionOut
from .service import CorrectionService

router = APIRouter(tags=["corrections"])


def get_correction_service(request: Request) -> CorrectionService:
    return CorrectionService(get_gateway(request).store)


@router.post("/corrections", response_model=CorrectionOut, status_code=201)
async def create_correction(
    body: CorrectionCreate,
    user_id: int = Depends(get_current_user_id),
    service: CorrectionService = Depends(get_correction_service),
) -> CorrectionOut:
    try:
        return await service.create(user_id, body)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc))


@router.get("/corrections/my", response_model=List[ReceivedCorrectionOut])
async def list_my_corrections(
    user_id: int = Depends(get_current_user_id),
    service: CorrectionService = Depends(get_correction_service),
) -> List[ReceivedCorrectionOut]:
    return await service.list_received(user_id)


@router.get("/messages/{message_id}/corrections", response_model=List[CorrectionOut])
async def list_corrections(
    message_id: int,
    user_id: int = Depends(get_current_user_id),
    service: CorrectionService = Depends(get_correction_service),
) -> List[CorrectionOut]:
    try:
        return await service.list_for_message(user_id, message_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc))


@router.delete("/corrections/{correction_id}")
async def delete_correction(
    correction_id: int,
    user_id: int = Depends(get_current_user_id),
    service: CorrectionService = Depends(get_correction_service),
) -> dict:
    try:
        await service.delete(user_id, correction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    return {"success": True}
