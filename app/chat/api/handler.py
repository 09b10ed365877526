from fastapi.responses import JSONResponse

from app.chat.api.dto import ErrorResponse, SendMessageRequest, SendMessageResponse
from app.chat.entity.chat import TextMessage
from app.chat.service.dispatch_service import DispatchPipeline
from app.core.errors import DispatchError, UNKNOWN_ERROR_MESSAGE
from app.core.logger import get_logger

logger = get_logger("ChatHandler")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def handle_send_message(body: SendMessageRequest, pipeline: DispatchPipeline) -> JSONResponse:
    """Runs one chat turn and shapes the reply (or failure) for the web client."""
    logger.debug(
        f"send-message | user={body.user_id} type={body.type} "
        f"conversation={body.active_conversation} provider={body.selected_image_provider}"
    )
    try:
        outcome = await pipeline.dispatch(
            user_prompt=TextMessage(role=body.user_prompt.role, content=body.user_prompt.content),
            requested_type=body.type,
            user_id=body.user_id,
            conversation_id=body.active_conversation,
            image_size=body.selected_image_size,
            provider_selector=body.selected_image_provider,
        )
    except DispatchError as e:
        logger.error(f"send-message failed | {type(e).__name__} status={e.status_code} error={e.message}")
        return error_response(e.status_code, e.message)
    except Exception as e:
        logger.error(f"send-message failed unexpectedly | error={e}", exc_info=True)
        return error_response(500, UNKNOWN_ERROR_MESSAGE)

    reply = outcome.reply
    response = SendMessageResponse(
        bot=reply.content,
        type=reply.type,
        images=reply.images if reply.type == "image" else None,
        conversation_id=outcome.conversation_id,
    )
    return JSONResponse(status_code=200, content=response.model_dump(by_alias=True, exclude_none=True))
