"""
After-sales Knowledge Base - FastAPI application

JSON API for the customer-support knowledge base:
- Query: BM25 lexical search with CJK n-gram tokenization and synonym expansion
- Manage: list (filter/sort/paginate), add, edit, soft-delete items
- Transfer: CSV/Excel import (append or dedupe) and export
- Optional cloud mirror in PostgreSQL (DATABASE_URL)

Storage:
- Local JSON file is the source of truth (KB_DATA_FILE)
- Search index is rebuilt from the stored items on every query
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import quote

from dotenv import load_dotenv

# Load .env.local first (highest priority), then .env as fallback
_project_root = Path(__file__).resolve().parent.parent.parent
env_local = _project_root / ".env.local"
env_file = _project_root / ".env"

if env_local.exists():
    load_dotenv(env_local, override=True)
elif env_file.exists():
    load_dotenv(env_file, override=True)

from .logging_config import setup_logging

log_level = os.getenv("LOG_LEVEL", "INFO").upper()
console_level = getattr(logging, log_level, logging.INFO)
LOG_SESSION_FILE = setup_logging(
    log_file=os.getenv("LOG_FILE", "logs/aftersales-kb.log"),
    console_level=console_level,
    file_level=logging.DEBUG  # Always DEBUG in file for troubleshooting
)

logger = logging.getLogger(__name__)


from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .database import cloud_sync
from .import_export import (
    ExportFormat,
    ImportMode,
    XLSX_MEDIA_TYPE,
    export_filename,
    export_items,
    media_type,
    merge_items,
    parse_upload,
    template_xlsx,
)
from .listing import DEFAULT_PAGE_SIZE, list_items
from .models import (
    BatchDeleteRequest,
    DeleteResponse,
    ImportResponse,
    ItemListResponse,
    KBItem,
    KBItemCreate,
    KBItemUpdate,
    QueryRequest,
    QueryResponse,
    QueryResultItem,
)
from .search import build_search_text, load_synonyms, search
from .storage import ItemNotFoundError, KnowledgeStore
from .utils import new_item_id, now_timestamp

# Configuration from environment variables
PORT = int(os.getenv("PORT", "8080"))
KB_DATA_FILE = os.getenv("KB_DATA_FILE", "data/kb_items.json")
KB_SYNONYMS_FILE = os.getenv("KB_SYNONYMS_FILE", "")

APP_VERSION = "0.1.0"
APP_START_TIME = datetime.now()

knowledge_store = KnowledgeStore(KB_DATA_FILE)

# None = built-in synonym table
synonym_table = load_synonyms(KB_SYNONYMS_FILE) if KB_SYNONYMS_FILE else None


def get_store() -> KnowledgeStore:
    return knowledge_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the optional cloud mirror"""
    if cloud_sync.enabled:
        logger.info("Connecting to cloud database...")
        await cloud_sync.connect()
        await cloud_sync.init_schema()
        logger.info("Cloud sync initialized")

    logger.info(f"Knowledge base file: {KB_DATA_FILE}")

    yield

    logger.info("Shutting down...")
    await cloud_sync.disconnect()


app = FastAPI(
    title="After-sales Knowledge Base API",
    description="Customer-support Q&A knowledge base with BM25 search",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found(e: ItemNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# Routes
@app.get("/", response_model=dict)
def root():
    """Root endpoint"""
    return {
        "service": "After-sales Knowledge Base API",
        "version": APP_VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health", response_model=dict)
def health(store: KnowledgeStore = Depends(get_store)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "items": len(store.get_items()),
        "cloud_sync": cloud_sync.connected,
        "uptime_seconds": round((datetime.now() - APP_START_TIME).total_seconds(), 2),
        "log_file": str(LOG_SESSION_FILE),
    }


@app.post("/v1/query", response_model=QueryResponse)
def query_items(request: QueryRequest, store: KnowledgeStore = Depends(get_store)):
    """
    Search the knowledge base

    Each item is indexed as one text blob: problem description, standard
    answer, internal solution, SKU and vehicle model. Results are ordered
    by BM25 score (plus a bonus for literal query containment).

    Example:
        POST /v1/query
        {"query": "支架松动", "top_k": 10}
    """
    items = store.get_items()
    by_id = {item.id: item for item in items}

    docs = [{"id": item.id, "text": build_search_text(item.model_dump())} for item in items]
    ranked = search(request.query, docs, top_k=request.top_k, synonyms=synonym_table)

    results = [
        QueryResultItem(score=round(hit["score"], 6), item=by_id[hit["id"]])
        for hit in ranked
        if hit["id"] in by_id
    ]

    logger.info(f"Query '{request.query}': {len(results)} results from {len(items)} items")
    return QueryResponse(query=request.query, results=results, total=len(results))


@app.get("/v1/items", response_model=ItemListResponse)
def get_items(
    search_text: Optional[str] = Query(None, alias="search", description="Substring filter"),
    sort_field: Optional[str] = Query(None, description="KBItem field to sort by"),
    sort_order: Literal["asc", "desc"] = "asc",
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=500),
    store: KnowledgeStore = Depends(get_store),
):
    """
    List items for management (filter, sort, paginate)

    Example:
        GET /v1/items?search=RK-20&sort_field=update_time&sort_order=desc&page=1
    """
    try:
        page_items, total, total_pages = list_items(
            store.get_items(),
            search=search_text,
            sort_field=sort_field,
            sort_order=sort_order,
            page=page,
            page_size=page_size,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ItemListResponse(
        items=page_items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@app.get("/v1/items/export")
def export_all_items(
    format: ExportFormat = "xlsx",
    store: KnowledgeStore = Depends(get_store),
):
    """
    Export all live items as CSV or Excel

    Example:
        GET /v1/items/export?format=csv
    """
    content = export_items(store.get_items(), format)
    filename = export_filename(format)
    return Response(
        content=content,
        media_type=media_type(format),
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@app.get("/v1/items/template")
def download_template():
    """Excel import template with the expected header row"""
    return Response(
        content=template_xlsx(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote('知识库导入模板.xlsx')}"},
    )


@app.get("/v1/items/{item_id}", response_model=KBItem)
def get_item(item_id: str, store: KnowledgeStore = Depends(get_store)):
    """Get one item by id"""
    try:
        return store.get_item(item_id)
    except ItemNotFoundError as e:
        raise _not_found(e)


@app.post("/v1/items", response_model=KBItem, status_code=status.HTTP_201_CREATED)
async def create_item(request: KBItemCreate, store: KnowledgeStore = Depends(get_store)):
    """Add a knowledge item"""
    item = KBItem(
        id=new_item_id(),
        update_time=now_timestamp(),
        attachments=len(request.attachment_urls),
        **request.model_dump(),
    )
    await run_in_threadpool(store.add_item, item)
    await cloud_sync.upsert_item(item)

    logger.info(f"Created item {item.id} (sku={item.sku})")
    return item


@app.put("/v1/items/{item_id}", response_model=KBItem)
async def update_item(item_id: str, request: KBItemUpdate, store: KnowledgeStore = Depends(get_store)):
    """Edit a knowledge item (only provided fields change)"""
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if "attachment_urls" in changes:
        changes["attachments"] = len(changes["attachment_urls"])

    try:
        item = await run_in_threadpool(store.update_item, item_id, changes)
    except ItemNotFoundError as e:
        raise _not_found(e)

    await cloud_sync.upsert_item(item)
    return item


@app.delete("/v1/items/{item_id}", response_model=DeleteResponse)
async def delete_item(item_id: str, store: KnowledgeStore = Depends(get_store)):
    """Soft-delete one item"""
    deleted = await run_in_threadpool(store.delete_items, [item_id])
    if not deleted:
        raise _not_found(ItemNotFoundError(item_id))

    await cloud_sync.mark_deleted(deleted)
    return DeleteResponse(deleted=deleted, message=f"Item {item_id} deleted")


@app.post("/v1/items/delete", response_model=DeleteResponse)
async def delete_items(request: BatchDeleteRequest, store: KnowledgeStore = Depends(get_store)):
    """Soft-delete several items; unknown ids are ignored"""
    deleted = await run_in_threadpool(store.delete_items, request.ids)
    await cloud_sync.mark_deleted(deleted)
    return DeleteResponse(deleted=deleted, message=f"Deleted {len(deleted)} of {len(request.ids)} items")


@app.post("/v1/items/import", response_model=ImportResponse)
async def import_items(
    file: UploadFile = File(...),
    mode: ImportMode = Form("dedupe"),
    store: KnowledgeStore = Depends(get_store),
):
    """
    Import items from CSV or Excel

    - mode=dedupe (default): skip rows whose SKU + vehicle model + problem
      description already exist
    - mode=append: add every parsed row

    Rows missing SKU or problem description are skipped and listed in errors.

    Example:
        POST /v1/items/import
        Content-Type: multipart/form-data
        file: 知识库.xlsx
        mode: dedupe
    """
    content = await file.read()
    parsed, row_errors = await run_in_threadpool(parse_upload, file.filename, content)

    existing = await run_in_threadpool(store.get_items)
    to_add = merge_items(existing, parsed, mode)
    if to_add:
        await run_in_threadpool(store.add_items, to_add)
        await cloud_sync.upsert_items(to_add)

    message = f"导入成功，解析 {len(parsed)} 条，实际新增 {len(to_add)} 条"
    if mode == "dedupe":
        message += "（已去重）"

    return ImportResponse(
        parsed=len(parsed),
        imported=len(to_add),
        mode=mode,
        errors=row_errors,
        message=message,
    )


@app.post("/v1/sync/pull", response_model=dict)
async def pull_from_cloud(store: KnowledgeStore = Depends(get_store)):
    """
    Merge cloud items into the local store

    Unknown ids are added. A cloud copy replaces the local item only when
    its update_time is newer. Items deleted locally stay deleted.
    """
    if not cloud_sync.connected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cloud sync is not configured (set DATABASE_URL)",
        )

    try:
        remote = await cloud_sync.fetch_items()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch cloud items: {str(e)}",
        )

    merged = await run_in_threadpool(store.merge_remote, remote)

    return {"fetched": len(remote), "merged": len(merged)}


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aftersales_kb.main:app",
        host="0.0.0.0",
        port=PORT,
        reload=True,  # Development only
    )
