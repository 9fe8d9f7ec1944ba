import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from erp_sync.config import get_settings
from erp_sync.api.v1.api import api_router
from erp_sync.database import engine, Base
import erp_sync.models  # noqa: F401  (registers tables on Base.metadata)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="ERP Google Sync",
    description="Mirrors ERP contacts and calendar events into Google",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
