from fastapi import APIRouter, HTTPException, Request
from schemas.ai import AIReplyRequest, AIReplyResponse
from ai_client import AIReplyError
from logging_config import get_logger

logger = get_logger(__name__)

ai_router = APIRouter(prefix="/ai", tags=["ai"])


@ai_router.post("/reply", response_model=AIReplyResponse)
async def generate_reply(body: AIReplyRequest, request: Request):
    # POST /ai/reply Body: { "content": "hello" }
    # Response 200: { "reply": "Hi! How can I help?" }
    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")

    generator = request.app.state.context.generator
    logger.info(f"AI reply request from {request.client.host if request.client else 'unknown'} ({len(content)} chars)")
    try:
        reply = await generator.generate_reply(content)
    except AIReplyError as e:
        logger.error(f"Error generating AI reply: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Failed to generate AI reply")
    return AIReplyResponse(reply=reply)
