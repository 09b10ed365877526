from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from app.chat.api.dto import ErrorResponse, SendMessageRequest, SendMessageResponse
from app.chat.api.handler import handle_send_message
from app.chat.service.dispatch_service import DispatchPipeline
from app.core.logger import get_logger

chat_router = APIRouter(tags=["Chat"])
logger = get_logger("ChatRouter")


def get_dispatch_pipeline(request: Request) -> DispatchPipeline:
    """Dependency to get the dispatch pipeline from app.state."""
    pipeline = getattr(request.app.state, "dispatch_pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Dispatch pipeline not available")
    return pipeline


@chat_router.post(
    "/send-message",
    response_class=JSONResponse,
    response_model=SendMessageResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def send_message(
    body: SendMessageRequest,
    pipeline: DispatchPipeline = Depends(get_dispatch_pipeline),
):
    """Send a prompt, get back the generated text or staged image URLs."""
    return await handle_send_message(body, pipeline)


@chat_router.get("/ping", response_class=PlainTextResponse)
async def ping():
    """Liveness probe."""
    return "pong"
