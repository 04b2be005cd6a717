"""Follow-up conversation loop and its collaborators."""

from echojournal.conversation.collaborators import (
    AudioCapture,
    ConnectivityMonitor,
    GenerationService,
    TranscriptionService,
)
from echojournal.conversation.controller import FollowUpLoopController
from echojournal.conversation.latency import LatencyMonitor
from echojournal.conversation.models import ChatMessage, LoopPhase, LoopState

__all__ = [
    "AudioCapture",
    "ChatMessage",
    "ConnectivityMonitor",
    "FollowUpLoopController",
    "GenerationService",
    "LatencyMonitor",
    "LoopPhase",
    "LoopState",
    "TranscriptionService",
]
