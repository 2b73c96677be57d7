import logging

from fastapi import FastAPI

from safarigam.api.deps import close_redis
from safarigam.api.routes import router
from safarigam.catalog.singleton import catalog_summary
from safarigam.catalog.startup import init_catalog_for_app
from safarigam.config import settings_from_env
from safarigam.sessions import registry

app = FastAPI(title="safarigam", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    settings = settings_from_env()
    registry.configure(settings)
    init_catalog_for_app(settings)
    logger.info("safarigam started (state_version=%s)", settings.state_version)


@app.on_event("shutdown")
async def _shutdown() -> None:
    closed = registry.close_all()
    close_redis()
    logger.info("safarigam stopped; disposed %d session(s)", closed)


@app.get("/info")
async def info() -> dict[str, object]:
    return {"name": "safarigam", "version": "0.1.0", "catalog": catalog_summary()}
