"""Script to run the FastAPI application using uvicorn."""

import uvicorn
import sys
import os
import logging
from pathlib import Path

# Add current directory to Python path
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

from backend.core.config import settings

# Suppress uvicorn access logs
logging.getLogger("uvicorn.access").setLevel(logging.ERROR)
logging.getLogger("uvicorn.access").disabled = True

if __name__ == "__main__":
    host = os.getenv("HOST", settings.SERVER_HOST)
    port = int(os.getenv("PORT", settings.SERVER_PORT))
    reload = os.getenv("RELOAD", "false").lower() == "true"

    # Each worker has its own change feed; dashboards only see changes made
    # through the worker they are connected to, so keep one worker unless
    # clients poll as well.
    workers = int(os.getenv("WORKERS", 1))

    print(f"Starting server on {host}:{port}")
    print(f"Reload: {reload}")
    print(f"Workers: {workers} {'(reload mode, using 1 worker)' if reload and workers > 1 else ''}")
    print("-" * 50)

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers if not reload else 1,  # Reload doesn't work with multiple workers
        log_level="info",
        access_log=False
    )
