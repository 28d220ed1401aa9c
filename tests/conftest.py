import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from minutemaster.models import TranscriptSegment


def chat_reply(payload) -> SimpleNamespace:
    """Build an object shaped like a chat completion response."""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def openai_client():
    """MagicMock standing in for an OpenAI client."""
    return MagicMock()


@pytest.fixture
def segments():
    return [
        TranscriptSegment(start=0.0, end=4.0, text="Hi, I'm Anna, let's start with the budget.", id=0),
        TranscriptSegment(start=4.0, end=9.5, text="Did anyone watch the game last night?", id=1),
        TranscriptSegment(start=40.0, end=48.0, text="Tom will send the Q3 report by Friday.", id=2),
        TranscriptSegment(start=75.0, end=100.0, text="The vendor contract needs legal review.", id=3),
    ]
