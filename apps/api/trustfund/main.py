from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .routes import vault as vault_routes
from .vault import bootstrap

logger = logging.getLogger(__name__)

bootstrap()

app = FastAPI(
    title="TrustFund API",
    version="0.1.0",
    description="Custodial fund with staggered eligibility and capped emergency withdrawals",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(vault_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/")
async def root() -> dict:
    return {"message": "TrustFund API ready"}
