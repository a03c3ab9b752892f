#!/usr/bin/env python3
"""
Start script - handles PORT/APP_HOST through settings
"""

if __name__ == "__main__":
    import uvicorn

    from core.config import settings

    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
