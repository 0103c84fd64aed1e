"""FastAPI application factory for RBACViz.

Usage::

    from rbacviz.api.app import create_app

    app = create_app(config=load_config())

Both the ``rbacviz serve`` command and the tests build the app through
this factory.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rbacviz.api.routes import router
from rbacviz.api.schemas import ErrorResponse
from rbacviz.graph.pipeline import GraphPipeline
from rbacviz.models.config import RBACVizConfig
from rbacviz.snapshot import SnapshotFormatError

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    config: RBACVizConfig | None = None,
    pipeline: GraphPipeline | None = None,
) -> FastAPI:
    """Create and configure the RBACViz FastAPI application.

    Args:
        config:   RBACVizConfig. Defaults apply when omitted.
        pipeline: Optional pre-built GraphPipeline; one is built from
                  ``config`` otherwise.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from rbacviz import __version__

    config = config or RBACVizConfig()
    if pipeline is None:
        pipeline = GraphPipeline(
            graph_config=config.graph,
            layout_config=config.layout,
            max_entries=config.cache.max_entries,
        )

    app = FastAPI(
        title="RBACViz",
        summary="Kubernetes RBAC access-relationship graphs",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.config = config
    app.state.pipeline = pipeline

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Map Pydantic validation errors to the error envelope."""
        errors = exc.errors()
        first_field = ""
        first_msg = ""
        if errors:
            locs = errors[0].get("loc", ())
            first_field = ".".join(str(part) for part in locs[1:]) if len(locs) > 1 else ""
            first_msg = str(errors[0].get("msg", ""))

        error_code = "INVALID_LAYOUT" if first_field.startswith("layout") else "INVALID_REQUEST"
        detail = f"{first_field}: {first_msg}" if first_field else first_msg
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=error_code, detail=detail).model_dump(),
        )

    @app.exception_handler(SnapshotFormatError)
    async def snapshot_exception_handler(
        _request: Request,
        exc: SnapshotFormatError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_SNAPSHOT", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(
        _request: Request,
        exc: ValueError,
    ) -> JSONResponse:
        """Unknown filter types, layout directions and kinds."""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_PARAMETER", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
