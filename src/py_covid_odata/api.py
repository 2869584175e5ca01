"""
HTTP API exposing the ingested collections as OData entity sets.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import AppSettings
from .errors import QueryError
from .models import DatasetRegistry, IngestionReport, MetricKind
from .pipeline import load_registry
from .query import QueryOptions, execute

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_registry(request: Request) -> DatasetRegistry:
    registry = request.app.state.registry
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Datasets are still being ingested.",
        )
    return registry


def _odata_error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def build_router(settings: AppSettings) -> APIRouter:
    base = settings.server.base_path.strip("/")
    router = APIRouter(prefix=f"/{base}", tags=["odata"])

    @router.get("")
    def service_document(request: Request) -> Dict[str, Any]:
        return {
            "@odata.context": f"{request.base_url}{base}/$metadata",
            "value": [
                {"name": m.entity_set, "kind": "EntitySet", "url": m.entity_set}
                for m in MetricKind
            ],
        }

    @router.get("/{entity_set}")
    def query_entity_set(
        entity_set: str,
        request: Request,
        registry: DatasetRegistry = Depends(get_registry),
        app_settings: AppSettings = Depends(get_settings),
    ) -> JSONResponse:
        collection = registry.by_entity_set(entity_set)
        if collection is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Entity set not found: {entity_set}",
            )

        options = QueryOptions.from_params(
            dict(request.query_params), max_top=app_settings.server.max_top
        )
        result = execute(collection, options)

        body: Dict[str, Any] = {
            "@odata.context": f"{request.base_url}{base}/$metadata#{entity_set}"
        }
        if options.count:
            body["@odata.count"] = result.count
        body["value"] = result.records
        return JSONResponse(content=body)

    return router


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Ingest every metric before serving traffic, unless already provided."""
    if application.state.registry is None:
        registry, reports = await run_in_threadpool(
            load_registry, application.state.settings
        )
        application.state.registry = registry
        application.state.reports = reports
    entity_sets = ", ".join(m.entity_set for m in MetricKind)
    logger.info(f"Datasets ready: {entity_sets}")
    yield
    logger.info("API shut down")


def create_app(
    settings: Optional[AppSettings] = None,
    registry: Optional[DatasetRegistry] = None,
    reports: Optional[List[IngestionReport]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    When no registry is supplied, all metrics are ingested on startup.
    """

    settings = settings or AppSettings()
    application = FastAPI(
        title="COVID-19 OData API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.state.settings = settings
    application.state.registry = registry
    application.state.reports = reports or []

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(QueryError)
    async def _query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
        logger.info(f"Rejected query '{request.url.query}': {exc}")
        return _odata_error(status.HTTP_400_BAD_REQUEST, "BadRequest", str(exc))

    application.include_router(build_router(settings))

    @application.get("/health")
    def healthcheck(request: Request) -> Dict[str, Any]:
        ready = request.app.state.registry is not None
        return {
            "status": "ok" if ready else "starting",
            "ingestion": [
                report.model_dump(mode="json") for report in request.app.state.reports
            ],
        }

    return application
