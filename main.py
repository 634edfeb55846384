import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import ConnectionFailure

import config
from repository import MongoRepository
from routers import admin, auth, questionnaire, realtime, token
from services.errors import SignageError
from state import AppState

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# 세 개의 프론트엔드 번들 (폰 설문 / 사이니지 화면 / 관리자)
FRONTEND_BUNDLES = ("play", "signage", "admin")


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SignageError)
    async def signage_error_handler(request: Request, exc: SignageError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"detail": message})

    @app.exception_handler(ConnectionFailure)
    async def datastore_error_handler(request: Request, exc: ConnectionFailure):
        logger.warning("Database unavailable during %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Database unavailable"})

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _mount_frontends(app: FastAPI) -> None:
    for bundle in FRONTEND_BUNDLES:
        directory = os.path.join(config.STATIC_ROOT, bundle)
        if os.path.isdir(directory):
            app.mount(f"{config.BASE_PATH}/{bundle}", StaticFiles(directory=directory, html=True), name=bundle)
        else:
            logger.debug("Front-end bundle %s not found at %s", bundle, directory)


def create_app(repository=None, init_database: bool = True, state: AppState = None) -> FastAPI:
    state = state or AppState.build(repository if repository is not None else MongoRepository())

    # --- [Lifespan: 앱 생명주기 관리] ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 1. 시작 시: DB 연결 (실패해도 토큰/웹소켓은 동작)
        if init_database:
            await state.repository.connect()
        yield
        # 2. 종료 시: 연결 정리
        if init_database:
            state.repository.close()
        logger.info("App shutdown")

    app = FastAPI(title="Signage Questionnaire API", lifespan=lifespan)
    app.state.signage = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials="*" not in config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(token.router)
    app.include_router(questionnaire.router)
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(realtime.router)

    _mount_frontends(app)

    @app.get(f"{config.BASE_PATH}/health")
    async def health():
        return {"status": "ok"}

    @app.get(config.BASE_PATH or "/")
    async def root():
        return RedirectResponse(url=f"{config.BASE_PATH}/signage", status_code=301)

    return app


app = create_app()
