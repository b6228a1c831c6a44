from dataclasses import dataclass

import httpx
from fastapi import HTTPException, Request, status
from firebase_admin import firestore

from src.core.config import Settings


@dataclass
class AppContext:
    """
    Process-wide handle built once in the application lifespan.

    Every endpoint, event handler and service receives the clients it needs
    from here instead of creating or looking them up on its own.
    """

    settings: Settings
    db: firestore.AsyncClient
    http_client: httpx.AsyncClient


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.EXPO_PUSH_TIMEOUT_SECONDS),
    )


def get_app_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Firebase service not initialized.",
        )
    return context
