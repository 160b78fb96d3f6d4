import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.api import api_router
from .core.config import settings
from .core.exceptions import FilesManagerError
from .db.database import Database
from .services.cache import RedisClient
from .services.queue import FILE_QUEUE, USER_QUEUE, QueueFactory

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(database=None, session_store=None, file_queue=None, user_queue=None) -> FastAPI:
    """Build the API around injected store, session store and queues.

    Anything not supplied is built from settings; the lifespan owns connect and close.
    """
    database = database or Database(settings.DATABASE_URL)
    session_store = session_store or RedisClient(settings.REDIS_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.connect()
        session_store.connect()
        app.state.database = database
        app.state.session_store = session_store
        app.state.file_queue = file_queue or QueueFactory.get_queue(FILE_QUEUE, settings)
        app.state.user_queue = user_queue or QueueFactory.get_queue(USER_QUEUE, settings)
        try:
            yield
        finally:
            app.state.file_queue.close()
            app.state.user_queue.close()
            session_store.close()
            database.close()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FilesManagerError)
    async def files_manager_error_handler(request: Request, exc: FilesManagerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    app.include_router(api_router)
    return app


app = create_app()
