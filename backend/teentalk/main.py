"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from teentalk.api import moderation as moderation_api
from teentalk.api import notifications as notifications_api
from teentalk.api import ops, trust
from teentalk.api.errors import install_error_handlers
from teentalk.infra import postgres
from teentalk.infra.docstore import InMemoryDocumentStore
from teentalk.moderation.domain.container import build_push_sender, configure, configure_postgres, load_policy
from teentalk.obs import init as obs_init
from teentalk.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	policy = load_policy()
	http = httpx.AsyncClient()
	sender = build_push_sender(http)
	if settings.store_backend == "postgres":
		pool = await postgres.init_pool()
		await configure_postgres(pool, policy=policy, sender=sender)
	else:
		configure(store=InMemoryDocumentStore(), policy=policy, sender=sender)
	logger.info(
		"moderation backend configured",
		extra={
			"store_backend": settings.store_backend,
			"report_threshold": policy.escalation.report_threshold,
		},
	)
	try:
		yield
	finally:
		await http.aclose()
		await postgres.close_pool()


app = FastAPI(title="TeenTalk Trust & Moderation", lifespan=lifespan)
obs_init(app)
install_error_handlers(app)

app.include_router(ops.router)
app.include_router(trust.router)
app.include_router(moderation_api.router)
app.include_router(notifications_api.router)
