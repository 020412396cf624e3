"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import logging
import secrets
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any
from urllib.parse import parse_qsl

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, settings
from .context import CacheContext
from .database import Database
from .errors import InvalidIdentifier
from .services.catalog import CATALOG_PREFIX, CatalogService
from .services.discovery import SourceDiscoverer
from .services.fetcher import PageFetcher
from .services.metadata_addon import MetadataAddonClient
from .services.resolver import MetadataResolver
from .services.scheduler import SyncScheduler
from .services.scraper import ListScraper
from .services.sync import SyncOrchestrator
from .services.title_page import TitlePageClient
from .storage import build_snapshot_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


def build_catalog_service(
    config: Settings,
    *,
    http_client: httpx.AsyncClient,
    metadata_http_client: httpx.AsyncClient,
    database: Database | None = None,
) -> CatalogService:
    """Wire every component around one shared cache context."""

    base_url = str(config.imdb_base_url).rstrip("/")
    context = CacheContext.create(
        metadata_cache_size=config.metadata_cache_size,
        upgrade_episodes=config.upgrade_episodes,
    )
    fetcher = PageFetcher(http_client, delay_seconds=config.page_delay_seconds)
    scraper = ListScraper(
        fetcher,
        base_url=base_url,
        page_limit=config.list_page_limit,
        page_delay=config.page_delay_seconds,
    )
    discoverer = SourceDiscoverer(
        fetcher, base_url=base_url, source_delay=config.page_delay_seconds
    )
    metadata_client = MetadataAddonClient(
        metadata_http_client, str(config.metadata_addon_url)
    )
    resolver = MetadataResolver(
        context, metadata_client, TitlePageClient(fetcher, base_url=base_url)
    )
    store = build_snapshot_store(
        config.snapshot_backend, config.snapshot_path, database
    )
    orchestrator = SyncOrchestrator(
        context,
        discoverer=discoverer,
        scraper=scraper,
        resolver=resolver,
        store=store,
        user_url=config.imdb_user_url,
        static_list_ids=config.imdb_list_ids,
        concurrency=config.sync_concurrency,
    )
    scheduler = SyncScheduler(
        context, orchestrator, interval_seconds=config.sync_interval_seconds
    )
    return CatalogService(
        context,
        orchestrator=orchestrator,
        resolver=resolver,
        scheduler=scheduler,
        store=store,
        app_name=config.app_name,
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(20.0, connect=10.0), follow_redirects=True
        )
    )
    metadata_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0))
    )
    database: Database | None = None
    if settings.snapshot_backend == "database":
        database = Database(settings.database_url)
        await database.create_all()

    catalog_service = build_catalog_service(
        settings,
        http_client=http_client,
        metadata_http_client=metadata_http_client,
        database=database,
    )
    fastapi_app.state.catalog_service = catalog_service
    fastapi_app.state.database = database
    await catalog_service.start()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await catalog_service.stop()
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="IMDb lists mirrored as Stremio catalogs",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


class ListPayload(BaseModel):
    lsid: str


class ListItemsPayload(ListPayload):
    items: list[str] = Field(default_factory=list)


class CustomOrderPayload(ListPayload):
    order: list[str] = Field(default_factory=list)


class SourcesPayload(BaseModel):
    users: list[str] = Field(default_factory=list)
    lists: list[str] = Field(default_factory=list)


def _secret_matches(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


def _parse_extra(raw: str | None, request: Request) -> dict[str, str]:
    extra = dict(parse_qsl(raw or "", keep_blank_values=True))
    extra.update(
        {key: value for key, value in request.query_params.items() if key != "key"}
    )
    return extra


def _as_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid number: {value}") from exc


def register_routes(fastapi_app: FastAPI, config: Settings | None = None) -> None:
    config = config or settings

    def _require_addon_key(request: Request) -> None:
        if not config.shared_secret:
            return
        if not _secret_matches(request.query_params.get("key"), config.shared_secret):
            raise HTTPException(status_code=403, detail="Forbidden")

    def _require_admin(request: Request) -> None:
        if not config.admin_password:
            raise HTTPException(status_code=403, detail="Admin API disabled")
        provided = request.query_params.get("admin") or request.headers.get(
            "x-admin-key"
        )
        if not _secret_matches(provided, config.admin_password):
            raise HTTPException(status_code=403, detail="Forbidden")

    def _service(request: Request, *, addon: bool = False) -> CatalogService:
        if addon:
            _require_addon_key(request)
        else:
            _require_admin(request)
        service = get_catalog_service(fastapi_app)
        if addon:
            service.touch()
        return service

    async def _catalog_endpoint(
        request: Request, catalog_id: str, extra: str | None = None
    ) -> JSONResponse:
        service = _service(request, addon=True)
        if not catalog_id.startswith(CATALOG_PREFIX):
            return JSONResponse({"metas": []})
        params = _parse_extra(extra, request)
        cards = service.list_catalog(
            catalog_id[len(CATALOG_PREFIX) :],
            sort=params.get("sort"),
            search=params.get("search"),
            skip=_as_int(params.get("skip"), 0),
            limit=_as_int(params.get("limit"), 100),
        )
        return JSONResponse({"metas": [card.to_meta_preview() for card in cards]})

    async def _admin_edit(coro) -> Any:
        try:
            return await coro
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        except (InvalidIdentifier, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/manifest.json")
    async def manifest(request: Request) -> dict[str, Any]:
        return _service(request, addon=True).manifest()

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}.json")
    async def catalog(
        request: Request, content_type: str, catalog_id: str
    ) -> JSONResponse:
        return await _catalog_endpoint(request, catalog_id)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        request: Request, content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(request, catalog_id, extra)

    @fastapi_app.get("/meta/{content_type}/{item_id}.json")
    async def meta(request: Request, content_type: str, item_id: str) -> dict[str, Any]:
        service = _service(request, addon=True)
        return {"meta": await service.get_meta(item_id)}

    @fastapi_app.get("/api/lists")
    async def api_lists(request: Request) -> JSONResponse:
        lists = _service(request).lists()
        return JSONResponse(
            {
                list_id: record.model_dump(by_alias=True)
                for list_id, record in lists.items()
            }
        )

    @fastapi_app.get("/api/prefs")
    async def api_prefs(request: Request) -> JSONResponse:
        prefs = _service(request).preferences()
        return JSONResponse(prefs.model_dump(by_alias=True))

    @fastapi_app.post("/api/prefs")
    async def api_save_prefs(request: Request) -> dict[str, Any]:
        service = _service(request)
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid payload") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        await _admin_edit(service.set_preferences(payload))
        return {"ok": True, "manifestRev": service.context.revision.value}

    @fastapi_app.get("/api/status")
    async def api_status(request: Request) -> dict[str, Any]:
        return _service(request).status()

    @fastapi_app.get("/api/list-items")
    async def api_list_items(request: Request, lsid: str = "") -> dict[str, Any]:
        service = _service(request)
        try:
            items = service.list_items(lsid)
        except KeyError:
            items = []
        return {"items": [card.to_meta_preview() for card in items]}

    @fastapi_app.post("/api/list-add-items")
    async def api_list_add_items(
        request: Request, payload: ListItemsPayload
    ) -> dict[str, Any]:
        service = _service(request)
        ids = await _admin_edit(service.add_items(payload.lsid, payload.items))
        return {"ok": True, "ids": ids}

    @fastapi_app.post("/api/list-remove-items")
    async def api_list_remove_items(
        request: Request, payload: ListItemsPayload
    ) -> dict[str, Any]:
        service = _service(request)
        ids = await _admin_edit(service.remove_items(payload.lsid, payload.items))
        return {"ok": True, "ids": ids}

    @fastapi_app.post("/api/custom-order")
    async def api_custom_order(
        request: Request, payload: CustomOrderPayload
    ) -> dict[str, Any]:
        service = _service(request)
        order = await _admin_edit(service.set_custom_order(payload.lsid, payload.order))
        return {
            "ok": True,
            "order": order,
            "manifestRev": service.context.revision.value,
        }

    @fastapi_app.post("/api/list-reset-local")
    async def api_list_reset_local(
        request: Request, payload: ListPayload
    ) -> dict[str, Any]:
        service = _service(request)
        ran = await _admin_edit(service.reset_list_local_edits(payload.lsid))
        return {"ok": True, "synced": ran}

    @fastapi_app.post("/api/remove-list")
    async def api_remove_list(request: Request, payload: ListPayload) -> dict[str, Any]:
        service = _service(request)
        revision = await _admin_edit(service.block_list(payload.lsid))
        return {"ok": True, "manifestRev": revision}

    @fastapi_app.post("/api/unblock-list")
    async def api_unblock_list(
        request: Request, payload: ListPayload
    ) -> dict[str, Any]:
        service = _service(request)
        ran = await _admin_edit(service.unblock_list(payload.lsid))
        return {"ok": True, "synced": ran}

    @fastapi_app.post("/api/add-sources")
    async def api_add_sources(
        request: Request, payload: SourcesPayload
    ) -> dict[str, Any]:
        service = _service(request)
        ran = await _admin_edit(service.add_sources(payload.users, payload.lists))
        return {"ok": True, "synced": ran}

    @fastapi_app.post("/api/sync")
    async def api_sync(request: Request) -> dict[str, Any]:
        service = _service(request)
        ran = await service.trigger_sync()
        return {"ok": True, "synced": ran, **service.status()}

    @fastapi_app.post("/api/purge-sync")
    async def api_purge_sync(request: Request) -> dict[str, Any]:
        service = _service(request)
        ran = await service.purge_and_sync()
        return {"ok": True, "synced": ran, **service.status()}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
