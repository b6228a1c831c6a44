from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager
import firebase_admin
from firebase_admin import credentials, firestore
import logging
import os

from src.api.v1.endpoints import admin
from src.api.v1.endpoints import events
from src.api.v1.endpoints import push
from src.core.config import settings
from src.core.context import AppContext, build_http_client

logging.basicConfig(
    level=settings.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def initialize_firebase() -> None:
    if firebase_admin._apps:
        return

    cred_path = settings.GOOGLE_APPLICATION_CREDENTIALS
    if not cred_path:
        logger.info(
            "GOOGLE_APPLICATION_CREDENTIALS not set, using application default credentials."
        )
        firebase_admin.initialize_app()
        return

    # Other Google Cloud libraries read the variable directly
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = cred_path
    cred = credentials.Certificate(cred_path)
    firebase_admin.initialize_app(cred)
    logger.info(f"Firebase Admin SDK initialized using credentials from {cred_path}.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Without a context every endpoint answers 503 (see get_app_context)
    app.state.context = None
    try:
        initialize_firebase()
        app.state.context = AppContext(
            settings=settings,
            db=firestore.AsyncClient(),
            http_client=build_http_client(settings),
        )
        logger.info("Application context ready.")
    except FileNotFoundError:
        logger.error(
            f"Firebase credentials file not found at path: {settings.GOOGLE_APPLICATION_CREDENTIALS}. Check your .env file and path."
        )
    except Exception as e:
        logger.error(f"Failed to initialize Firebase Admin SDK: {e}", exc_info=True)

    yield

    if app.state.context is not None:
        await app.state.context.http_client.aclose()
        app.state.context = None


app = FastAPI(
    title="Rides Notifications API",
    description="Push notifications and participant counters for the rides community app.",
    version="0.1.0",
    lifespan=lifespan,
)

# Include the API routers
app.include_router(push.router, prefix="/api/v1/push", tags=["push"])
app.include_router(events.router, prefix="/api/v1/events", tags=["events"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])


@app.get("/")
async def read_root():
    return {"message": "Welcome to Rides Notifications API"}


@app.get("/health", response_class=PlainTextResponse)
async def health_check():
    return "Functions ready"


# To run this application (from the project root directory):
#   uvicorn src.main:app --reload
