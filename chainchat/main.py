from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from chainchat.api.routes import chat, health, models
from chainchat.config import settings
from chainchat.errors import ChatError
from chainchat.services.database import PostgresConversationStore
from chainchat.services.memory_store import InMemoryConversationStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.database_url:
        store = PostgresConversationStore(settings.database_url)
        await store.connect()
    else:
        logger.warning("DATABASE_URL not set; conversations are kept in memory")
        store = InMemoryConversationStore(auto_create_users=settings.auto_create_users)
    app.state.store = store
    yield
    # Shutdown
    if isinstance(store, PostgresConversationStore):
        await store.close()


app = FastAPI(
    title="ChainChat",
    description="Multi-model chat with Scira scraping and response chaining",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    logger.warning(f"{request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": str(exc.errors())},
    )


# Routes
app.include_router(chat.router)
app.include_router(models.router)
app.include_router(health.router)
