"""
Liveness, readiness and metrics endpoints.

- GET /health   - process is up
- GET /ready    - configured backends (PostgreSQL, Redis) answer
- GET /metrics  - table and connection counts
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_db_pool = None
_redis_client = None
_room_manager = None
_game_store = None


def set_health_dependencies(
    db_pool=None,
    redis_client=None,
    room_manager=None,
    game_store=None,
):
    """Set what the readiness checks look at. Anything left as None is reported not configured."""
    global _db_pool, _redis_client, _room_manager, _game_store
    _db_pool = db_pool
    _redis_client = redis_client
    _room_manager = room_manager
    _game_store = game_store


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _check_database() -> dict:
    if _db_pool is None:
        return {"status": "not_configured"}
    try:
        async with _db_pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        return {"status": "error", "message": str(e)}
    return {"status": "ok"}


async def _check_redis() -> dict:
    if _redis_client is None:
        return {"status": "not_configured"}
    try:
        await _redis_client.ping()
    except Exception as e:
        logger.warning(f"Redis check failed: {e}")
        return {"status": "error", "message": str(e)}
    return {"status": "ok"}


@router.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": _now()}


@router.get("/ready")
async def readiness_check():
    """503 while a configured backend is unreachable."""
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    healthy = all(c["status"] != "error" for c in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "checks": checks,
            "timestamp": _now(),
        },
    )


@router.get("/metrics")
async def metrics():
    data = {"timestamp": _now()}

    if _room_manager is not None:
        data["rooms_with_connections"] = len(_room_manager.rooms)
        data["connected_websockets"] = _room_manager.connection_count()

    if _game_store is not None:
        try:
            data["active_games"] = len(await _game_store.get_active_games())
        except Exception as e:
            logger.warning(f"Could not count active games: {e}")

    return data
