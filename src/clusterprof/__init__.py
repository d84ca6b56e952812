"""
Cluster profiling capture service.

Starts and stops cluster-wide profiling sessions through an administrative
gateway and streams the resulting diagnostic archive back to callers.

Examples:
- uvicorn clusterprof.api.main:app --host 127.0.0.1 --port 8000
- clusterprof profile capture cpu --duration 30 --output profile.zip
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = ["__version__"]
