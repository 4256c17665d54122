"""Health check endpoint for monitoring and readiness probes."""

import time
from typing import Any, Dict

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse

from rolekeeper.boards.cm.state import CmBoardsState
from rolekeeper.boards.srcom.state import SrComBoardsState


def create_app(srcom_state: SrComBoardsState, cm_state: CmBoardsState) -> FastAPI:
    """
    Build the health app around the running board states.

    Args:
        srcom_state: speedrun.com leaderboard store
        cm_state: CM aggregate store

    Returns:
        FastAPI app exposing /health, /readiness, /liveness and /metrics
    """
    app = FastAPI(title="Role Keeper Health Check")
    start_time = time.time()

    @app.get("/health")
    async def health_check() -> JSONResponse:
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": int(time.time() - start_time),
            "service": "rolekeeper-bot",
        })

    @app.get("/readiness")
    async def readiness_check() -> Response:
        """
        Ready once the first CM aggregate refresh has landed.

        Returns:
            200 if service is ready to accept traffic
            503 if service is not ready
        """
        if cm_state.has_aggregates():
            return Response(status_code=200, content="Ready")
        return Response(status_code=503, content="Not ready: CM aggregates not loaded")

    @app.get("/liveness")
    async def liveness_check() -> Response:
        return Response(status_code=200, content="Alive")

    @app.get("/metrics")
    async def metrics() -> Dict[str, Any]:
        return {
            "uptime_seconds": int(time.time() - start_time),
            "start_time": start_time,
            "caches": {
                "srcom": srcom_state.cache_stats(),
                "cm": cm_state.cache_stats(),
            },
        }

    return app
