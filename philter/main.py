import os

import uvicorn

from philter.core.app_factory import create_app

app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn (``HOST``/``PORT`` override the bind address)."""
    uvicorn.run(
        "philter.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )
