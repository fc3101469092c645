from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import firebase_admin
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from firebase_admin import credentials, firestore
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from config.settings import Settings, get_settings
from converter.auth import FirebaseTokenVerifier, extract_token
from converter.errors import ConverterError
from converter.history import FirestoreHistoryStore
from converter.models import HistoryEntry, VerifiedIdentity


logging.basicConfig(
    level=get_settings().log_level,
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("converter")


def init_firebase(settings: Settings) -> firebase_admin.App:
    """Initialize the default Firebase app once per process."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        cred = credentials.Certificate(settings.service_account_info())
        return firebase_admin.initialize_app(cred)


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


async def require_identity(request: Request) -> VerifiedIdentity:
    body = await _read_json(request)
    token = extract_token(body, request.headers.get("authorization"))
    verifier = request.app.state.verifier
    return await run_in_threadpool(verifier.verify, token)


def _validation_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def create_app(
    verifier: Any = None,
    store: Any = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application.

    ``verifier`` needs ``verify(token) -> VerifiedIdentity``; ``store`` needs
    ``append(email, entry)`` and ``list_by_identity(email)``. Missing handles
    are built from Firebase at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.verifier is None or app.state.store is None:
            firebase_app = init_firebase(settings)
            if app.state.verifier is None:
                app.state.verifier = FirebaseTokenVerifier(firebase_app)
            if app.state.store is None:
                app.state.store = FirestoreHistoryStore(
                    firestore.client(firebase_app), collection=settings.history_collection
                )
            logger.info(
                "Firebase initialized: project=%s collection=%s",
                firebase_app.project_id,
                settings.history_collection,
            )
        yield

    app = FastAPI(title="Currency Converter", version="1.0.0", lifespan=lifespan)
    app.state.verifier = verifier
    app.state.store = store
    app.state.settings = settings

    # CORS: allow local frontend during development
    if settings.is_dev:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(ConverterError)
    async def converter_error_handler(request: Request, exc: ConverterError):
        if exc.status_code == 401:
            logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.post("/auth")
    def authenticate(identity: VerifiedIdentity = Depends(require_identity)) -> Dict[str, Any]:
        logger.info("Authenticated: email=%s", identity.email)
        return {"message": "Authenticated"}

    @app.post("/api/save-history")
    async def save_history(request: Request, identity: VerifiedIdentity = Depends(require_identity)):
        body = await _read_json(request)
        try:
            entry = HistoryEntry.model_validate(body)
        except ValidationError as exc:
            return JSONResponse(
                status_code=422,
                content={"error": "Invalid request", "details": _validation_details(exc)},
            )

        record = await run_in_threadpool(request.app.state.store.append, identity.email, entry)
        logger.info(
            "Saved history: email=%s from=%s to=%s timestamp=%s",
            record.email,
            record.from_currency,
            record.to_currency,
            record.timestamp,
        )
        return {"message": "Saved"}

    @app.get("/api/get-history")
    async def get_history(request: Request, identity: VerifiedIdentity = Depends(require_identity)):
        records = await run_in_threadpool(request.app.state.store.list_by_identity, identity.email)
        logger.info("History read: email=%s records=%s", identity.email, len(records))
        return {"history": [record.to_document() for record in records]}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/{full_path:path}", include_in_schema=False)
    def serve_client(full_path: str):
        static_root = settings.static_dir.resolve()
        if full_path:
            candidate = (static_root / full_path).resolve()
            if candidate.is_file() and static_root in candidate.parents:
                return FileResponse(candidate)
        return FileResponse(static_root / "index.html")

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    logger.info("Server running on port %s", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
