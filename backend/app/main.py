import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import backend, chat, conversations, llms
from app.core.config import settings
from app.core.context import AppContext
from app.core.database import init_db
from app.core.errors import ConfigurationError, ProtocolError, UnknownConversationError, VendorError
from app.services.persistence import StatePersistence

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    context = AppContext()
    persistence: StatePersistence | None = None
    if settings.persist_state:
        init_db()
        persistence = StatePersistence(context)
        persistence.load()
        persistence.attach()
    app.state.context = context

    yield

    if persistence:
        persistence.detach()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.debug(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(UnknownConversationError)
async def unknown_conversation_handler(request: Request, exc: UnknownConversationError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(VendorError)
async def vendor_error_handler(request: Request, exc: VendorError):
    logger.error(f"Vendor error on {request.url.path}: {exc}")
    content = {"detail": str(exc), "vendor": exc.vendor, "kind": "transport"}
    if isinstance(exc, ProtocolError):
        content.update(kind="protocol", payloadShape=exc.payload_shape)
    return JSONResponse(status_code=502, content=content)


app.include_router(backend.router, prefix="/api/backend", tags=["backend"])
app.include_router(llms.router, prefix="/api/llms", tags=["llms"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
