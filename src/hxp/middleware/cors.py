"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hxp.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the academy frontend origins to call the API with a wallet header."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Wallet-Address", "X-Request-Id"],
        expose_headers=["X-Request-Id", "Retry-After"],
    )
