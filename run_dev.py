#!/usr/bin/env python3
"""
Development runner for the Group Activity Stats service.
"""
import uvicorn
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from aggregator.config import settings
from aggregator.database import db_settings

if __name__ == "__main__":
    print("Starting Group Activity Stats service")
    print(f"Host: {settings.host}:{settings.port}")
    print(f"Debug: {settings.debug}")
    print(f"Database: {db_settings.database_url}")
    print(f"Workers per report: {settings.max_workers}")
    print(f"Cache TTL: {settings.cache_ttl_seconds}s")
    print("-" * 50)

    uvicorn.run(
        "aggregator.service:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning"
    )
