#!/usr/bin/env python3
"""
Local development server for the cache advisor API.
"""

import os
import sys
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

# Add src to Python path
current_dir = Path(__file__).parent
src_dir = current_dir / "src"
sys.path.insert(0, str(src_dir))

os.environ.setdefault('APP_ENV', 'dev')
# Local runs without Redis keep applied strategies in memory
os.environ.setdefault('SMART_CACHE_STRATEGY_STORE', 'memory')

if __name__ == "__main__":
    import uvicorn
    from cache_advisor.infrastructure.db import init_db

    init_db()
    path = os.getenv('SMART_CACHE_DASHBOARD_PATH', 'smart-cache')
    print("Starting Cache Advisor API")
    print(f"Stats:   http://localhost:8000/{path}/api/stats")
    print("Metrics: http://localhost:8000/metrics")
    print("Health:  http://localhost:8000/health")
    print("Press Ctrl+C to stop\n")

    uvicorn.run(
        "cache_advisor.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
