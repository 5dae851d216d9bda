"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codex.api import contributions, ops, page_views, profiles
from codex.api.errors import install_error_handlers
from codex.domain.contributions import container
from codex.infra import postgres
from codex.infra.redis import close_redis
from codex.infra.postgres_repo import ensure_schema
from codex.obs import init as obs_init
from codex.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is not None:
		await ensure_schema(pool)
		container.configure_postgres(pool)
	else:
		logger.warning("postgres_disabled_using_memory_repositories")
	try:
		yield
	finally:
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Codex Contributions API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(ops.router)
# Fixed prefixes first so they are not captured by /{content_type}/{item_id}.
app.include_router(page_views.router, prefix="/api/v1", tags=["page-views"])
app.include_router(profiles.router, prefix="/api/v1", tags=["profiles"])
app.include_router(contributions.router, prefix="/api/v1", tags=["contributions"])
