"""CorrectionService: peer corrections of chat messages.

Rules:
    - Only a party of the message's connection may correct it.
    - Nobody may correct their own message.
    - ``original_text`` is snapshotted from the message at creation time.
    - Only the corrector may delete a correction.
"""
import logging
from typing import Dict, List, Optional

from lingochat.chat.diff import compute_word_diff
from lingochat.chat.errors import AuthorizationError, NotFoundError
from lingochat.store.base import ChatStore
from lingochat.store.schemas import Correction, Message

from .schemas import (
    CorrectedMessageOut,
    CorrectionCreate,
    CorrectionOut,
    CorrectorOut,
    ReceivedCorrectionOut,
)

logger = logging.getLogger(__name__)

RECEIVED_LIMIT = 50


class CorrectionService:
    """Creates, lists and deletes corrections on top of a ChatStore."""

    def __init__(self, store: ChatStore) -> None:
        self._store = store

    async def _corrector(self, user_id: int) -> Optional[CorrectorOut]:
        user = await self._store.get_user(user_id)
        return CorrectorOut(id=user.id, name=user.name) if user else None

    async def to_output(self, correction: Correction) -> CorrectionOut:
        """Attach the corrector and the word diff between original and corrected text."""
        segments = compute_word_diff(correction.original_text, correction.corrected_text)
        return CorrectionOut(
            **correction.to_wire(),
            corrector=await self._corrector(correction.corrector_id),
            diff=[segment.to_dict() for segment in segments],
        )

    async def _message_for_party(self, user_id: int, message_id: int) -> Message:
        message = await self._store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        connection = await self._store.find_connection(message.connection_id)
        if connection is None or not connection.has_party(user_id):
            raise AuthorizationError("Access denied")
        return message

    async def create(self, user_id: int, request: CorrectionCreate) -> CorrectionOut:
        message = await self._message_for_party(user_id, request.message_id)
        if message.sender_id == user_id:
            raise AuthorizationError("You cannot correct your own message")

        correction = await self._store.create_correction(
            message_id=message.id,
            corrector_id=user_id,
            original_text=message.content,
            corrected_text=request.corrected_text,
            explanation=request.explanation,
        )
        logger.info(
            f"[Corrections] User {user_id} corrected message {message.id} (correction {correction.id})"
        )
        return await self.to_output(correction)

    async def list_for_message(self, user_id: int, message_id: int) -> List[CorrectionOut]:
        await self._message_for_party(user_id, message_id)
        corrections = await self._store.list_corrections(message_id)
        return [await self.to_output(c) for c in corrections]

    async def list_received(self, user_id: int) -> List[ReceivedCorrectionOut]:
        """Corrections others made to the caller's messages, newest first."""
        corrections = await self._store.list_corrections_received(user_id, RECEIVED_LIMIT)
        messages: Dict[int, Message] = {}
        results = []
        for correction in corrections:
            message = messages.get(correction.message_id)
            if message is None:
                message = await self._store.get_message(correction.message_id)
                if message is None:
                    continue
                messages[message.id] = message
            output = await self.to_output(correction)
            results.append(
                ReceivedCorrectionOut(
                    **output.model_dump(),
                    message=CorrectedMessageOut(
                        id=message.id,
                        content=message.content,
                        connection_id=message.connection_id,
                    ),
                )
            )
        return results

    async def delete(self, user_id: int, correction_id: int) -> None:
        correction = await self._store.get_correction(correction_id)
        if correction is None:
            raise NotFoundError("Correction not found")
        if correction.corrector_id != user_id:
            raise AuthorizationError("You can only delete your own corrections")
        await self._store.delete_correction(correction_id)
        logger.info(f"[Corrections] User {user_id} deleted correction {correction_id}")
