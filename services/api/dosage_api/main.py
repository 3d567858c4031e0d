from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dosetrack.errors import DosageError, IntegrityFault, ValidationError

from .db import create_schema, engine
from .routers import router
from .schemas import Issue, Problem
from .settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await create_schema(engine)
    yield
    await engine.dispose()


def problem(status_code: int, title: str, detail: str, errors: list[Issue] | None = None) -> JSONResponse:
    body = Problem(title=title, detail=detail, errors=errors or [])
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


async def handle_integrity_fault(request: Request, exc: IntegrityFault) -> JSONResponse:
    logger.error("Integrity fault serving %s %s: %s", request.method, request.url.path, exc)
    return problem(500, exc.title, "An unexpected error occurred while resolving the dosage pattern.")


async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    errors = [Issue(field=i.field, message=i.message) for i in exc.issues]
    return problem(exc.status_code, exc.title, str(exc), errors)


async def handle_dosage_error(request: Request, exc: DosageError) -> JSONResponse:
    return problem(exc.status_code, exc.title, str(exc))


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        # drop the "body"/"query" prefix so the field reads like the JSON key
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append(Issue(field=".".join(loc), message=err.get("msg", "Invalid value")))
    return problem(400, "Validation failed", "The request could not be parsed.", errors)


def create_app() -> FastAPI:
    app = FastAPI(title="DoseTrack API", version="0.1.0", lifespan=lifespan)
    app.include_router(router)
    app.add_exception_handler(IntegrityFault, handle_integrity_fault)
    app.add_exception_handler(ValidationError, handle_validation_error)
    app.add_exception_handler(DosageError, handle_dosage_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    return app


app = create_app()
