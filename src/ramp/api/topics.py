"""Topic intent API endpoints for Ramp.

Feeds classified messages into the tracker and reads back a user's active
topics and strategy directive.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ramp.api.deps import get_service
from ramp.models import ClassifierResult, IntentSignal, SignalKind, TopicIntentUpdate

if TYPE_CHECKING:
    from ramp.service import TopicIntentService

router = APIRouter(prefix="/topics", tags=["topics"])


# =============================================================================
# Request / Response Models
# =============================================================================


class MessageRequest(BaseModel):
    """A user message with the classifier's verdict."""

    session_id: Optional[str] = None
    message: str = ""
    detected_topic: Optional[str] = None
    interest_signal: Optional[str] = None


class SignalRequest(BaseModel):
    """A signal applied directly to a known topic."""

    signal: SignalKind
    message: str = ""


class TopicResponse(BaseModel):
    """An active topic as seen by API clients."""

    id: str
    topic: str
    category: Optional[str]
    confidence: int
    phase: str
    strategy: Optional[str]
    signals: list[IntentSignal]
    last_signal_at: datetime
    created_at: datetime


class TopicListResponse(BaseModel):
    """A user's active topics, warmest first."""

    user_id: str
    topics: list[TopicResponse]


class StrategyResponse(BaseModel):
    """Directive for the user's warmest active topic."""

    user_id: str
    strategy: Optional[str]


class EndTopicResponse(BaseModel):
    """Outcome of completing or abandoning a topic."""

    topic_id: str
    phase: str


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{user_id}", response_model=TopicListResponse)
async def list_topics(
    user_id: str,
    limit: int = Query(5, ge=1, le=50, description="Maximum topics to return"),
    service: "TopicIntentService" = Depends(get_service),
) -> TopicListResponse:
    """List a user's active topics ordered by confidence, then recency."""
    active = await service.get_active_topics(user_id, limit)
    return TopicListResponse(
        user_id=user_id,
        topics=[
            TopicResponse(
                id=t.id,
                topic=t.topic,
                category=t.category.value if t.category else None,
                confidence=t.confidence,
                phase=t.phase.value,
                strategy=t.strategy,
                signals=t.signals,
                last_signal_at=t.last_signal_at,
                created_at=t.created_at,
            )
            for t in active
        ],
    )


@router.get("/{user_id}/strategy", response_model=StrategyResponse)
async def get_strategy(
    user_id: str,
    service: "TopicIntentService" = Depends(get_service),
) -> StrategyResponse:
    """Get the directive for the user's warmest active topic."""
    return StrategyResponse(user_id=user_id, strategy=await service.get_strategy(user_id))


@router.post("/{user_id}/messages", response_model=TopicIntentUpdate)
async def process_message(
    user_id: str,
    body: MessageRequest,
    service: "TopicIntentService" = Depends(get_service),
) -> TopicIntentUpdate:
    """Feed one classified message into the tracker.

    Returns ``detected=false`` when the message neither names a topic nor
    carries a signal for an existing one.
    """
    return await service.process_message(
        user_id,
        body.session_id,
        body.message,
        ClassifierResult(
            detected_topic=body.detected_topic,
            interest_signal=body.interest_signal,
        ),
    )


@router.post("/{user_id}/{topic_id}/signals", response_model=TopicIntentUpdate)
async def record_signal(
    user_id: str,
    topic_id: str,
    body: SignalRequest,
    service: "TopicIntentService" = Depends(get_service),
) -> TopicIntentUpdate:
    """Apply a signal to a specific topic."""
    update = await service.record_signal(user_id, topic_id, body.signal, body.message)
    if not update.detected:
        raise HTTPException(status_code=404, detail=f"Topic not found: {topic_id}")
    return update


@router.post("/{user_id}/{topic_id}/complete", response_model=EndTopicResponse)
async def complete_topic(
    user_id: str,
    topic_id: str,
    service: "TopicIntentService" = Depends(get_service),
) -> EndTopicResponse:
    """Mark an active topic as completed."""
    if not await service.complete_topic(user_id, topic_id):
        raise HTTPException(status_code=404, detail=f"Active topic not found: {topic_id}")
    return EndTopicResponse(topic_id=topic_id, phase="completed")


@router.post("/{user_id}/{topic_id}/abandon", response_model=EndTopicResponse)
async def abandon_topic(
    user_id: str,
    topic_id: str,
    service: "TopicIntentService" = Depends(get_service),
) -> EndTopicResponse:
    """Mark an active topic as abandoned."""
    if not await service.abandon_topic(user_id, topic_id):
        raise HTTPException(status_code=404, detail=f"Active topic not found: {topic_id}")
    return EndTopicResponse(topic_id=topic_id, phase="abandoned")
