"""FastAPI application for serving agent graphs and run traces."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentgraph.errors import (
    CaptureDisabled,
    InconsistentGraph,
    NotFound,
    PartialWriteFailure,
    SlugConflict,
)
from agentgraph_server.db import db_path, init_all
from agentgraph_server.graph_routes import router as graph_router
from agentgraph_server.trace_routes import router as trace_router

from dotenv import load_dotenv
load_dotenv()  # load environment variables from .env file

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# CORS origins - configurable via environment variable
# Use comma-separated values for multiple origins, or "*" for all (development only)
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables on startup."""
    init_all()
    logger.info("Database ready at %s", db_path())
    yield


app = FastAPI(
    title="AgentGraph API",
    description="API server for agent execution graphs and run traces",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InconsistentGraph)
async def inconsistent_graph_handler(request: Request, exc: InconsistentGraph) -> JSONResponse:
    logger.warning("Rejected graph mutation on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SlugConflict)
async def slug_conflict_handler(request: Request, exc: SlugConflict) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(CaptureDisabled)
async def capture_disabled_handler(request: Request, exc: CaptureDisabled) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(PartialWriteFailure)
async def partial_write_handler(request: Request, exc: PartialWriteFailure) -> JSONResponse:
    logger.error("Role recompute rolled back: %s", exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# include routes
app.include_router(graph_router, prefix="/api")
app.include_router(trace_router, prefix="/api")


@app.get("/")
def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "0.1.0",
        "db": str(db_path()),
        "endpoints": {
            "agents": "/api/agents",
            "structure": "/api/agents/{agent_id}/structure",
            "runs": "/api/runs",
            "trace": "/api/runs/{run_id}/trace",
            "track": "/api/track",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
