"""Pydantic models for the QnA query and session API."""

from typing import List, Optional

from pydantic import BaseModel, Field


class BaseResponse(BaseModel):
    """Fields shared by request-scoped responses."""

    request_id: str = Field(..., description="Unique request identifier")
    processing_time_ms: int = Field(..., description="Time spent serving the request in milliseconds")


class QueryRequest(BaseModel):
    """Request model for evaluating a relevance expression."""

    query: str = Field(..., min_length=1, description="Relevance expression to evaluate")


class QueryResponse(BaseResponse):
    """Response model for a relevance evaluation."""

    query: str = Field(..., description="Relevance expression that was evaluated")
    answers: List[str] = Field(default_factory=list, description="Answers in the order QnA produced them")
    error: Optional[str] = Field(None, description="Evaluation or process error, null on success")
    eval_time_ms: int = Field(0, description="Evaluation time reported by QnA in milliseconds")
    fingerprint: str = Field(..., description="SHA-256 of the query text")


class SessionStatusResponse(BaseModel):
    """Current state of the QnA session."""

    state: str = Field(..., description="no_process, ready, busy or closed")
    executable_path: str = Field(..., description="QnA executable in use")
    version: str = Field(..., description="QnA version (informational)")
    pid: Optional[int] = Field(None, description="PID of the running QnA process")
    alive: bool = Field(..., description="True when a QnA process is running")
    busy: bool = Field(..., description="True while a query is in flight")
    idle_seconds: float = Field(..., description="Seconds since the last query or spawn")
    spawn_count: int = Field(..., description="Number of QnA processes started by this session")
    idle_timeout: float = Field(..., description="Seconds of inactivity before QnA is stopped")
    evaluation_timeout: float = Field(..., description="Seconds a query may wait for its response")


class SessionTimeoutsUpdate(BaseModel):
    """Request model for changing session timeouts at runtime."""

    idle_timeout: Optional[float] = Field(None, gt=0, description="New idle timeout in seconds")
    evaluation_timeout: Optional[float] = Field(None, gt=0, description="New evaluation timeout in seconds")
