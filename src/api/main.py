"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers.review_requests import router as review_request_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    yield


app = FastAPI(
    title="Legal Review Workflow API",
    version="0.1.0",
    description=(
        "Review-request workflow service for marketing material.\n\n"
        "Requests move from `DRAFT` through legal intake, legal and compliance review and "
        "closeout; every action is permission-gated and tracks business hours per stage."
    ),
    openapi_tags=[
        {
            "name": "Review Request Workflow",
            "description": "Review request creation, retrieval and workflow actions.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
app.include_router(review_request_router)


@app.get("/health", include_in_schema=False)
async def health() -> dict:
    return {"status": "ok"}


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )
