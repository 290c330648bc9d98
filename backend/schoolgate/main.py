"""
Point d'entrée principal de l'API SchoolGate.
Démarrage : uvicorn schoolgate.main:app --reload (depuis backend/)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, List, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import schoolgate.models  # noqa: F401 : enregistre tous les modèles dans Base.metadata avant les routers
from schoolgate.config import settings
from schoolgate.routers import dashboard, masterdata, messages, report, students

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : configure le niveau de log global."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("SchoolGate API démarrée (env=%s)", settings.ENV)
    yield


app = FastAPI(
    title="SchoolGate API",
    description="API de présences par badge RFID et de gestion des élèves",
    version=API_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(dashboard.router)
app.include_router(report.router)
app.include_router(students.router)
app.include_router(students.all_students_router)
app.include_router(masterdata.router)
app.include_router(messages.router)


def validation_messages(errors: Sequence[Any]) -> List[str]:
    """Messages lisibles : le texte du validateur s'il existe, sinon « champ: message »."""
    messages = []
    for err in errors:
        ctx_error = (err.get("ctx") or {}).get("error")
        if ctx_error is not None:
            messages.append(str(ctx_error))
            continue
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Toutes les erreurs métier sortent au format {ok: false, message, ...}."""
    if isinstance(exc.detail, dict):
        content = {"ok": False, **exc.detail}
    else:
        content = {"ok": False, "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = validation_messages(exc.errors())
    return JSONResponse(
        status_code=400,
        content={"ok": False, "message": errors[0] if errors else "Validation failed", "errors": errors},
    )


@app.exception_handler(NotImplementedError)
async def not_implemented_handler(request: Request, exc: NotImplementedError) -> JSONResponse:
    return JSONResponse(
        status_code=501,
        content={"ok": False, "message": str(exc) or "Not implemented"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour que la réponse 500
    passe par CORSMiddleware et garde le format {ok: false, message}.
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "message": "An internal error occurred"},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "SchoolGate API", "version": API_VERSION}
