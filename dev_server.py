#!/usr/bin/env python3
"""
Local development server for the Replay Analyzer API.
"""

import os

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

os.environ.setdefault('ENVIRONMENT', 'development')

if __name__ == "__main__":
    import uvicorn

    from replay_analyzer.config import get_settings

    settings = get_settings()
    print("Starting Replay Analyzer API")
    print(f"Docs:    http://localhost:{settings.api_port}/docs")
    print(f"Health:  http://localhost:{settings.api_port}/health")
    print(f"Metrics: http://localhost:{settings.api_port}/metrics")
    print("Press Ctrl+C to stop\n")

    uvicorn.run(
        "replay_analyzer.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
