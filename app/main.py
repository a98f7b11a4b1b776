# app/main.py
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .db import Database
from .errors import AppError, InvalidInput
from .nl2sql import OllamaClient
from .pipeline import Pipeline
from .routes import router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def error_body(category: str, message: str) -> dict:
    return {"success": False, "error": category, "message": message}


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.category, exc.message, exc_info=exc.__cause__)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.category, exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        msg = err.get("msg", "Invalid value").removeprefix("Value error, ")
        field = err.get("loc", ())[-1] if err.get("loc") else None
        messages.append(f"{field}: {msg}" if field and field != "body" else msg)
    return JSONResponse(
        status_code=InvalidInput.status_code,
        content=error_body(InvalidInput.category, "; ".join(messages)),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database.from_settings(settings)
        await db.open()
        llm = OllamaClient.from_settings(settings)
        app.state.pipeline = Pipeline(db, llm)
        logger.info("NL2SQL gateway ready (model=%s, ollama=%s)", settings.ollama_model, settings.ollama_url)
        yield
        await llm.aclose()
        await db.close()

    app = FastAPI(title="NL2SQL Gateway", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)

    @app.get("/")
    async def root():
        return {"message": "NL2SQL gateway. See /docs for the API."}

    return app


app = create_app()
