from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from query_api.routers import bounties, claims, health
from event_sync.scheduler import SyncScheduler


def create_app(scheduler: Optional[SyncScheduler] = None) -> FastAPI:
    """
    Build the read-only query API.

    The scheduler, when given, is only read for /health.
    """
    app = FastAPI(
        title="TaskMint Indexer API",
        description="Read-only views over indexed bounties and claims.",
        version="1.0.0",
    )
    app.state.scheduler = scheduler

    # CORS (front end is served from another origin)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Errors as {"error": "..."}
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    app.include_router(health.router)
    app.include_router(bounties.router)
    app.include_router(claims.router)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=4000)
