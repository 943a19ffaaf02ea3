from fastapi import FastAPI
import logging

from dotenv import load_dotenv

from wikiline.api.routes import router
from wikiline.config import settings_from_env
from wikiline.infra.redis_client import create_redis
from wikiline.session import get_session, init_session
from wikiline.websocket_hub import hub

# Real environment variables win over the repo .env.
load_dotenv(override=False)

app = FastAPI(title="wikiline", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    settings = settings_from_env()
    # Tests may have built the session already with fakes; that one is kept.
    session = init_session(r=create_redis(settings.redis_url), settings=settings, publish=hub.publish)
    await session.store.init()
    logger.info("wikiline ready (phase=%s)", session.store.state.phase.value)


@app.on_event("shutdown")
async def _shutdown() -> None:
    get_session().dispose()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "wikiline", "version": "0.1.0"}
