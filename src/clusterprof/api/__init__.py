"""
Cluster profiling HTTP API package.

Lightweight initializer (no framework imports at import time).
Use the FastAPI app at clusterprof.api.main:app to run the service, or build
one with clusterprof.api.app.create_app.

Examples:
- uvicorn clusterprof.api.main:app --host 127.0.0.1 --port 8000
- from clusterprof.api.app import create_app
"""
