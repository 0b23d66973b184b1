import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from townbook.config import config


logger = logging.getLogger(__name__)


def setup_middlewares(app: FastAPI):
    allow_origins = config.allowed_origins
    logger.info(f"Allowed CORS origins: {allow_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
