"""
LinguaPals - Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .api import auth_router, groups_router, join_router
from .core.exceptions import GroupFullError, GroupNotFoundError, NotGroupMemberError, StorageError
from .core.logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    setup_logging(settings)

    from .storage import LocalBlobStorage, create_document_store, init_user_storage
    from .services import GroupService, init_group_service

    store = create_document_store(settings)
    users = init_user_storage(store)
    blobs = LocalBlobStorage(f"{settings.local_storage_path}/blobs")
    init_group_service(GroupService(
        store,
        users,
        blobs=blobs,
        public_base_url=settings.public_base_url,
        capacity=settings.max_group_members,
    ))
    logger.info("Document store and group service initialized")

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Storage: {settings.storage_type} ({settings.local_storage_path})")
    logger.info(f"Log level: {settings.log_level.upper()}")
    logger.info(f"Debug mode: {settings.debug}")
    yield
    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Group chat backend for language exchange with AI partners",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging runs inside CORS
if settings.log_api_requests:
    app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(GroupNotFoundError)
async def group_not_found_handler(request: Request, exc: GroupNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(NotGroupMemberError)
async def not_member_handler(request: Request, exc: NotGroupMemberError):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN,
                        content={"detail": "You are not a member of this group"})


@app.exception_handler(GroupFullError)
async def group_full_handler(request: Request, exc: GroupFullError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "This group is full."})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                        content={"detail": "Storage temporarily unavailable"})


app.include_router(auth_router)
app.include_router(groups_router)
app.include_router(join_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "storage": settings.storage_type,
        "version": settings.app_version
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "linguapals.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
