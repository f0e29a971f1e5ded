from contextlib import asynccontextmanager
from datetime import datetime
import logging
from urllib.parse import quote

import markdown
from fastapi import APIRouter, Depends, FastAPI, Form, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from core.config import BASE_DIR, TIMEZONE
from core.exceptions import (
    StartupFailure,
    StorageFailure,
    ValidationFailure,
    handle_exception,
)
from storage import StorageFacade

EMPTY_PAGE_MARKDOWN = "# A new page\n\nFeel-free to write in Markdown!\n"
TIMESTAMP_FORMAT = "%a %b %d %H:%M:%S %Z %Y"

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
router = APIRouter()


def get_storage(request: Request) -> StorageFacade:
    return request.app.state.storage


def parse_id(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailure("id", value)


def wiki_url(name: str) -> str:
    return "/wiki/" + quote(name, safe="/")


def see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


@router.get("/", response_class=HTMLResponse)
async def index(request: Request, storage: StorageFacade = Depends(get_storage)):
    """List every page"""
    pages = (await storage.fetch_all_pages()).unwrap()
    return templates.TemplateResponse(
        request, "index.html", {"title": "Wiki home", "pages": pages}
    )


# Titles may contain slashes
@router.get("/wiki/{page:path}", response_class=HTMLResponse)
async def page_rendering(
    page: str, request: Request, storage: StorageFacade = Depends(get_storage)
):
    """Render a page, or an editable placeholder when it does not exist yet"""
    lookup = (await storage.fetch_page(page)).unwrap()

    raw_content = lookup.content if lookup.found else EMPTY_PAGE_MARKDOWN
    context = {
        "title": page,
        "id": lookup.id if lookup.found else -1,
        "newPage": "no" if lookup.found else "yes",
        "rawContent": raw_content,
        "content": markdown.markdown(raw_content),
        "timestamp": datetime.now(TIMEZONE).strftime(TIMESTAMP_FORMAT),
    }
    return templates.TemplateResponse(request, "page.html", context)


@router.post("/save")
async def page_update(
    title: str = Form(""),
    page_id: str = Form("", alias="id"),
    markdown_text: str = Form("", alias="markdown"),
    new_page: str = Form("no", alias="newPage"),
    storage: StorageFacade = Depends(get_storage),
):
    """Create or update a page, then show it"""
    if not title:
        raise ValidationFailure("title", title)
    if new_page == "yes":
        result = await storage.create_page(title, markdown_text)
    else:
        result = await storage.save_page(parse_id(page_id), markdown_text)
    result.unwrap()
    return see_other(wiki_url(title))


@router.post("/create")
async def page_create(name: str = Form("")):
    """Jump to the named page; it is created on first save"""
    if not name:
        return see_other("/")
    return see_other(wiki_url(name))


@router.post("/delete")
async def page_deletion(
    page_id: str = Form("", alias="id"), storage: StorageFacade = Depends(get_storage)
):
    (await storage.delete_page(parse_id(page_id))).unwrap()
    return see_other("/")


@router.get("/api/pages")
async def api_pages(storage: StorageFacade = Depends(get_storage)):
    """All pages with their content"""
    rows = (await storage.fetch_all_pages_data()).unwrap()
    return JSONResponse({"status": "success", "result": rows})


@router.get("/api/pages/{page_id}")
async def api_page(page_id: str, storage: StorageFacade = Depends(get_storage)):
    """Get a single page by id"""
    lookup = (await storage.fetch_page_by_id(parse_id(page_id))).unwrap()
    if not lookup.found:
        return JSONResponse(
            {"status": "error", "message": "Page not found"}, status_code=404
        )
    return JSONResponse(
        {
            "status": "success",
            "result": {"id": lookup.id, "name": lookup.name, "content": lookup.content},
        }
    )


async def storage_failure_handler(request: Request, exc: StorageFailure) -> Response:
    handle_exception(exc, f"Failed to handle {request.url.path}", source="web")
    return Response(content=f"Error: {exc}", media_type="text/html", status_code=500)


async def validation_failure_handler(request: Request, exc: ValidationFailure) -> Response:
    logging.warning(f"Rejected {request.url.path}: {exc}")
    return Response(content=f"Error: {exc}", media_type="text/html", status_code=400)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to serve until storage is up
    if not app.state.storage.is_ready:
        raise StartupFailure("http", RuntimeError("storage is not ready"))
    logging.info(f"HTTP replica {app.state.replica} ready")

    yield  # Application runs here until shutdown

    logging.info(f"HTTP replica {app.state.replica} stopped")


def create_app(storage: StorageFacade, replica: int = 0) -> FastAPI:
    """Build one HTTP replica bound to the shared storage facade"""
    app = FastAPI(lifespan=lifespan, openapi_url=None)
    app.state.storage = storage
    app.state.replica = replica
    app.include_router(router)
    app.add_exception_handler(StorageFailure, storage_failure_handler)
    app.add_exception_handler(ValidationFailure, validation_failure_handler)
    return app
