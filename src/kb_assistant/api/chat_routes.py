"""
Chat Routes

Non-streaming question answering over the knowledge base. The request
carries the whole conversation; only single-turn conversations are eligible
for the response cache (see services.answer_service).
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import ChatRequest, ChatResponse
from .dependencies import get_answer_service
from ..services.answer_service import AnswerService

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "/",
    response_model=ChatResponse,
    summary="Ask the knowledge base assistant",
    status_code=status.HTTP_200_OK,
)
async def chat(
    req: ChatRequest,
    service: Annotated[AnswerService, Depends(get_answer_service)],
) -> ChatResponse:
    result = await service.answer(req.messages)

    return ChatResponse(
        answer=result.answer,
        language=result.language,
        cached=result.cached,
        sources=result.sources,
    )
