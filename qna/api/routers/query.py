"""QnA query API router for relevance evaluation."""

import asyncio
import logging
import time
import uuid

from fastapi import APIRouter, HTTPException

from ..models.query import (
    QueryRequest,
    QueryResponse,
    SessionStatusResponse,
    SessionTimeoutsUpdate,
)
from ...worker import ExecutableNotFoundError, Session, WorkerSpawnError, get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["query"])


async def _open_session(request_id: str) -> Session:
    """Get the global session, mapping startup failures to 503."""
    try:
        return await asyncio.to_thread(get_session)
    except (ExecutableNotFoundError, WorkerSpawnError) as e:
        logger.warning(f"QnA unavailable for request {request_id}: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "code": "QNA_UNAVAILABLE",
                "message": str(e),
                "request_id": request_id,
            },
        )


@router.post("/query", response_model=QueryResponse)
async def run_query(request: QueryRequest) -> QueryResponse:
    """
    Evaluate a relevance expression with QnA.

    Evaluation errors reported by QnA are part of a successful response
    (``error`` field); only an unavailable QnA process is an HTTP error.

    Args:
        request: Query request

    Returns:
        Answers, error and timing for the query

    Raises:
        HTTPException: 503 if QnA cannot be located or started
    """
    request_id = str(uuid.uuid4())
    start_time = time.time()

    session = await _open_session(request_id)
    result = await asyncio.to_thread(session.query, request.query)

    processing_time_ms = int((time.time() - start_time) * 1000)
    if result.is_error:
        logger.info(f"Query {request_id} returned error: {result.error}")

    return QueryResponse(
        request_id=request_id,
        processing_time_ms=processing_time_ms,
        **result.to_dict(),
    )


@router.get("/session", response_model=SessionStatusResponse)
async def session_status() -> SessionStatusResponse:
    """Get the QnA session state, starting the session if needed."""
    session = await _open_session(str(uuid.uuid4()))
    return SessionStatusResponse(**session.status())


@router.put("/session/timeouts", response_model=SessionStatusResponse)
async def update_timeouts(update: SessionTimeoutsUpdate) -> SessionStatusResponse:
    """Change the idle and/or evaluation timeout of the running session."""
    session = await _open_session(str(uuid.uuid4()))
    if update.idle_timeout is not None:
        session.idle_timeout = update.idle_timeout
    if update.evaluation_timeout is not None:
        session.evaluation_timeout = update.evaluation_timeout
    logger.info(
        f"Session timeouts updated: idle_timeout={session.idle_timeout}s, "
        f"evaluation_timeout={session.evaluation_timeout}s"
    )
    return SessionStatusResponse(**session.status())
