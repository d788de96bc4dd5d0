from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

# 프로젝트 루트의 .env 파일 명시적 로딩
project_root = Path(__file__).parent.parent
env_path = project_root / ".env"

if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ingestion.settings import get_settings
from ingestion.utils.logging import configure_logging

from .database import init_db
from .routes import router

settings = get_settings()
configure_logging(settings.structlog_level, json_enabled=settings.log_json)
logging.getLogger(__name__).info("api.startup", extra={"env_file": env_path.exists()})

app = FastAPI(title="Content Aggregator API", version="0.1.0")

init_db()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(router)


@app.get("/healthz", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
