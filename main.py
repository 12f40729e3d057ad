"""Main FastAPI application for the QnA session service.

Keeps one BigFix QnA process alive between requests and stops it when idle.
The process is started on the first query, not at application startup.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from qna.api.routers import query
from qna.config import get_evaluation_timeout, get_idle_timeout, get_qna_path

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events (startup and shutdown)."""
    logger = logging.getLogger(__name__)

    try:
        logger.info("Starting up application...")
        logger.info(
            f"QnA configuration: path={get_qna_path() or '<search>'}, "
            f"idle_timeout={get_idle_timeout()}s, "
            f"evaluation_timeout={get_evaluation_timeout()}s"
        )
        logger.info("Startup complete")

        yield  # Application runs here

    finally:
        logger.info("Shutting down application...")
        try:
            from qna.worker import shutdown_session

            await asyncio.to_thread(shutdown_session)
            logger.info("QnA session shut down")
        except Exception as e:
            logger.warning(f"Error shutting down QnA session: {e}")
        logger.info("Shutdown complete")


# Create FastAPI app with lifespan handler
app = FastAPI(
    title="QnA Session API",
    description="REST API over a supervised BigFix QnA relevance evaluator",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.include_router(query.router)


@app.get("/api")
async def root():
    """Root API endpoint with service information."""
    return {
        "name": "QnA Session API",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "query": "/api/query",
            "session": "/api/session",
            "timeouts": "/api/session/timeouts",
            "health": "/api/health",
            "docs": "/api/docs",
        },
    }


@app.get("/api/health")
async def health():
    """Health check endpoint. Does not start QnA."""
    from qna.worker import peek_session

    session = peek_session()
    return {
        "status": "healthy",
        "session": session.status() if session is not None else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("QNA_API_PORT", "12320")))
