"""
evdms_rules.api.__main__

Entrypoint for running the FastAPI application via `python -m evdms_rules.api`.

Responsibilities:
- Expose `build()` as an app factory (`uvicorn --factory evdms_rules.api.__main__:build`).
- Start uvicorn with structlog-compatible logging config.
"""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI

from evdms_rules.api.app import create_app
from evdms_rules.settings import get_settings


def build() -> FastAPI:
    return create_app(settings=get_settings())


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "evdms_rules.api.__main__:build",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
    )


if __name__ == "__main__":
    main()
