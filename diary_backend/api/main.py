import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from diary_backend.api.config import CORS_ORIGINS, HOST, PORT, setup_logging
from diary_backend.api.models import (
    DiaryEntryCreate,
    DiaryEntryOut,
    DiaryEntryUpdate,
    ErrorResponse,
    MemoCreate,
    MemoOut,
    MemoUpdate,
)
from diary_database.storage import Storage, create_storage

logger = logging.getLogger(__name__)

MAX_LOG_LINE = 80

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

router = APIRouter(prefix="/api")


# STORAGE Dependency
def get_storage(request: Request) -> Storage:
    return request.app.state.storage

async def _call(operation, failure_message: str):
    """Await a storage operation, turning unexpected failures into a generic 500."""
    try:
        return await operation
    except Exception:
        logger.exception(failure_message)
        raise HTTPException(status_code=500, detail=failure_message)


#####################
# DIARY ENTRY ENDPOINTS
#####################

# PUBLIC_INTERFACE
@router.get("/diary-entries", response_model=List[DiaryEntryOut], summary="List all diary entries", tags=["Diary entries"])
async def list_diary_entries(storage: Storage = Depends(get_storage)):
    """
    Get all diary entries, newest first.
    """
    return await _call(storage.get_all_diary_entries(), "Failed to fetch diary entries")

# PUBLIC_INTERFACE
@router.get("/diary-entries/search", response_model=List[DiaryEntryOut], responses=ERROR_RESPONSES,
            summary="Search diary entries", tags=["Diary entries"])
async def search_diary_entries(
    q: Optional[str] = Query(None, description="Search term for entry title or content"),
    storage: Storage = Depends(get_storage),
):
    """
    Case-insensitive search over entry titles and contents.
    The query parameter is required.
    """
    if not q:
        raise HTTPException(status_code=400, detail="Search query is required")
    return await _call(storage.search_diary_entries(q), "Failed to search diary entries")

# PUBLIC_INTERFACE
@router.get("/diary-entries/{entry_id}", response_model=DiaryEntryOut, responses=ERROR_RESPONSES,
            summary="Get a single diary entry", tags=["Diary entries"])
async def get_diary_entry(entry_id: str, storage: Storage = Depends(get_storage)):
    entry = await _call(storage.get_diary_entry(entry_id), "Failed to fetch diary entry")
    if not entry:
        raise HTTPException(status_code=404, detail="Diary entry not found")
    return entry

# PUBLIC_INTERFACE
@router.post("/diary-entries", response_model=DiaryEntryOut, status_code=201, responses=ERROR_RESPONSES,
             summary="Create a new diary entry", tags=["Diary entries"])
async def create_diary_entry(entry: DiaryEntryCreate, storage: Storage = Depends(get_storage)):
    """
    Create a new diary entry.
    The id and creation time are assigned by the server.
    """
    return await _call(storage.create_diary_entry(entry.model_dump()), "Failed to create diary entry")

# PUBLIC_INTERFACE
@router.patch("/diary-entries/{entry_id}", response_model=DiaryEntryOut, responses=ERROR_RESPONSES,
              summary="Update a diary entry", tags=["Diary entries"])
async def update_diary_entry(entry_id: str, entry_update: DiaryEntryUpdate, storage: Storage = Depends(get_storage)):
    """
    Partially update a diary entry. Only the fields sent are changed.
    """
    entry = await _call(
        storage.update_diary_entry(entry_id, entry_update.model_dump(exclude_unset=True)),
        "Failed to update diary entry",
    )
    if not entry:
        raise HTTPException(status_code=404, detail="Diary entry not found")
    return entry

# PUBLIC_INTERFACE
@router.delete("/diary-entries/{entry_id}", status_code=204, response_class=Response, responses=ERROR_RESPONSES,
               summary="Delete a diary entry", tags=["Diary entries"])
async def delete_diary_entry(entry_id: str, storage: Storage = Depends(get_storage)):
    deleted = await _call(storage.delete_diary_entry(entry_id), "Failed to delete diary entry")
    if not deleted:
        raise HTTPException(status_code=404, detail="Diary entry not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


#####################
# MEMO ENDPOINTS
#####################

# PUBLIC_INTERFACE
@router.get("/memos", response_model=List[MemoOut], summary="List all memos", tags=["Memos"])
async def list_memos(storage: Storage = Depends(get_storage)):
    """
    Get all memos, newest first.
    """
    return await _call(storage.get_all_memos(), "Failed to fetch memos")

# PUBLIC_INTERFACE
@router.get("/memos/{memo_id}", response_model=MemoOut, responses=ERROR_RESPONSES,
            summary="Get a single memo", tags=["Memos"])
async def get_memo(memo_id: str, storage: Storage = Depends(get_storage)):
    memo = await _call(storage.get_memo(memo_id), "Failed to fetch memo")
    if not memo:
        raise HTTPException(status_code=404, detail="Memo not found")
    return memo

# PUBLIC_INTERFACE
@router.post("/memos", response_model=MemoOut, status_code=201, responses=ERROR_RESPONSES,
             summary="Create a new memo", tags=["Memos"])
async def create_memo(memo: MemoCreate, storage: Storage = Depends(get_storage)):
    return await _call(storage.create_memo(memo.model_dump()), "Failed to create memo")

# PUBLIC_INTERFACE
@router.patch("/memos/{memo_id}", response_model=MemoOut, responses=ERROR_RESPONSES,
              summary="Update a memo", tags=["Memos"])
async def update_memo(memo_id: str, memo_update: MemoUpdate, storage: Storage = Depends(get_storage)):
    memo = await _call(
        storage.update_memo(memo_id, memo_update.model_dump(exclude_unset=True)),
        "Failed to update memo",
    )
    if not memo:
        raise HTTPException(status_code=404, detail="Memo not found")
    return memo

# PUBLIC_INTERFACE
@router.delete("/memos/{memo_id}", status_code=204, response_class=Response, responses=ERROR_RESPONSES,
               summary="Delete a memo", tags=["Memos"])
async def delete_memo(memo_id: str, storage: Storage = Depends(get_storage)):
    deleted = await _call(storage.delete_memo(memo_id), "Failed to delete memo")
    if not deleted:
        raise HTTPException(status_code=404, detail="Memo not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


#####################
# APP
#####################

# Root Health Check
async def health_check():
    """Simple health check endpoint."""
    return {"message": "Healthy"}

async def log_requests(request: Request, call_next):
    """
    Log one line per /api request with status, duration and JSON body.
    Requests that blow up before a response exists are logged as 500.
    """
    start = time.perf_counter()
    path = request.url.path
    status_code = 500
    body = b""
    try:
        response = await call_next(request)
        status_code = response.status_code
        if path.startswith("/api") and response.headers.get("content-type", "").startswith("application/json"):
            body = b"".join([chunk async for chunk in response.body_iterator])
            response = Response(content=body, status_code=status_code, headers=dict(response.headers))
        return response
    finally:
        if path.startswith("/api"):
            duration_ms = int((time.perf_counter() - start) * 1000)
            line = f"{request.method} {path} {status_code} in {duration_ms}ms"
            if body:
                line += f" :: {body.decode('utf-8', errors='replace')}"
            if len(line) > MAX_LOG_LINE:
                line = line[:MAX_LOG_LINE - 1] + "…"
            logger.info(line)

# Error handlers
def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )

def validation_exception_handler(request, exc):
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid data", "errors": errors},
    )

def unhandled_exception_handler(request, exc):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error"},
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Diary API starting up with %s", type(app.state.storage).__name__)
    yield
    logger.info("Diary API shutting down...")

# PUBLIC_INTERFACE
def create_app(storage: Optional[Storage] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.
    Without an explicit storage, one is built from DATABASE_URL (in-memory when unset).
    """
    app = FastAPI(
        title="Diary Backend API",
        description="Backend API for diary entries and memos.",
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Diary entries", "description": "Create, update, view, delete, search diary entries"},
            {"name": "Memos", "description": "Create, update, view, delete memos"},
        ],
    )
    app.state.storage = storage if storage is not None else create_storage()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_api_route("/", health_check, methods=["GET"], summary="Health Check", tags=["General"])
    app.include_router(router)
    return app


app = create_app()


def run_server():
    """Run the API server."""
    import uvicorn

    setup_logging()
    uvicorn.run(
        "diary_backend.api.main:app",
        host=HOST,
        port=PORT,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
