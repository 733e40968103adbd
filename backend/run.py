#!/usr/bin/env python3
# backend/run.py
"""
Local server runner for the check-out API.

Reads HOST/PORT from the environment; reload is only enabled outside production.
"""
import os
import sys
from pathlib import Path

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

from casaora.core.config import settings

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    print(f"🚀 Starting {settings.app_name} ({settings.environment})")
    print(f"🌐 Access at: http://localhost:{port}")
    print(f"📚 API Docs: http://localhost:{port}/docs")

    uvicorn.run(
        "casaora.main:app",
        host=host,
        port=port,
        reload=settings.environment != "production",
        log_level="info",
    )
