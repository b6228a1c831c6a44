from fastapi import APIRouter, Body, Depends, Response, status
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from src.core.context import AppContext, get_app_context
from src.models.push import ExpoPushMessage, PushTestRequest
from src.services import push_dispatcher

router = APIRouter()
logger = logging.getLogger(__name__)

# Allows calling the test endpoint straight from a browser
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@router.post("/test", response_model=dict, status_code=status.HTTP_200_OK)
async def send_test_push(
    response: Response,
    payload: Optional[PushTestRequest] = Body(None),
    ctx: AppContext = Depends(get_app_context),
):
    """
    Sends an arbitrary push to the given token(s).
    Delivery failures are only logged: the answer is 200 once the push went out.
    """
    response.headers.update(CORS_HEADERS)
    if payload is None or not payload.to or not payload.title or not payload.body:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required fields: 'to', 'title', 'body'"},
            headers=CORS_HEADERS,
        )

    logger.info(f"Test push requested: to={payload.to} title={payload.title!r}")
    try:
        recipients = payload.to if isinstance(payload.to, (str, list)) else [payload.to]
        results = await push_dispatcher.dispatch(
            ExpoPushMessage(
                to=recipients,
                title=payload.title,
                body=payload.body,
                data=payload.data,
                sound=payload.sound or "default",
            ),
            http_client=ctx.http_client,
            db=ctx.db,
            settings=ctx.settings,
        )
    except Exception as e:
        logger.error(f"Error sending test push: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "Internal error sending push"},
            headers=CORS_HEADERS,
        )

    logger.info(f"Test push done: {len(results)} chunk(s)")
    return {
        "ok": True,
        "message": "Test push sent (check logs for details)",
        "chunkCount": len(results),
        "results": [result.model_dump(by_alias=True) for result in results],
    }


@router.options("/test", status_code=status.HTTP_204_NO_CONTENT)
async def send_test_push_preflight():
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)


@router.api_route("/test", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def send_test_push_wrong_method():
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"error": "Only POST allowed"},
        headers={**CORS_HEADERS, "Allow": "POST, OPTIONS"},
    )
