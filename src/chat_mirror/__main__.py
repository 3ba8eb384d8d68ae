"""Entrypoint: python -m chat_mirror"""
from __future__ import annotations

import logging

import uvicorn

from chat_mirror.api.middleware.correlation_id import CorrelationIdFilter
from chat_mirror.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s"


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdFilter())

    uvicorn.run(
        "chat_mirror.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL,
        log_config=None,
    )


if __name__ == "__main__":
    main()
