from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .clients.providers import ProviderChain
from .config import CALL_TIMEOUT_S, DEFAULT_POLICY
from .net import CircuitRegistry, Gateway
from .pipeline import VariantPipeline
from .routers.variant_router import router as variant_router
from .utils.ledger import OutcomeLedger

# ------------------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    stream=sys.stdout,
)
log = logging.getLogger("variantlens.main")

# ------------------------------------------------------------------------------
# App metadata / env
# ------------------------------------------------------------------------------
APP_TITLE = os.getenv("APP_TITLE", "VariantLens Evidence Core")
APP_VERSION = os.getenv("APP_VERSION", __version__)
ROOT_PATH = os.getenv("ROOT_PATH", "")
DOCS_URL = os.getenv("DOCS_URL", "/docs")
OPENAPI_URL = os.getenv("OPENAPI_URL", "/openapi.json")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # one shared client and one circuit registry for the process
    http = httpx.AsyncClient(timeout=CALL_TIMEOUT_S, follow_redirects=True)
    ledger = OutcomeLedger()
    gateway = Gateway(http, circuits=CircuitRegistry(DEFAULT_POLICY), ledger=ledger)
    app.state.http = http
    app.state.gateway = gateway
    app.state.pipeline = VariantPipeline(gateway)
    app.state.providers = ProviderChain(gateway)
    log.info("VariantLens %s ready (timeout=%.1fs)", APP_VERSION, CALL_TIMEOUT_S)
    try:
        yield
    finally:
        await http.aclose()


app = FastAPI(
    title=APP_TITLE,
    version=APP_VERSION,
    docs_url=DOCS_URL,
    openapi_url=OPENAPI_URL,
    root_path=ROOT_PATH,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(variant_router)


@app.get("/healthz")
@app.get("/v1/healthz")
async def healthz():
    return {"ok": True, "version": APP_VERSION}
