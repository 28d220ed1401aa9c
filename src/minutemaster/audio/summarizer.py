"""
Meeting summarization functionality using OpenAI API.

This module turns the work-related part of a transcript into structured
meeting minutes: an executive summary, key points, action items and topic
sections, all returned as JSON by the model.

Key features:
- Lazy loading of OpenAI client (inherited from OpenAIService)
- Configurable model selection (GPT-4, GPT-4o-mini, etc.)
- Tolerant parsing: missing assignees and deadlines become "Not specified"
"""

import logging
from typing import Iterable, Sequence

from ..models import MeetingSummary, TranscriptSegment
from .llm import InvalidModelResponse, OpenAIService

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are a meeting summarization assistant. Analyze meeting transcripts and extract key "
    "information, action items, and topics. Respond only with valid JSON."
)


def build_filtered_transcript(segments: Sequence[TranscriptSegment], selected_indices: Iterable[int]) -> str:
    """
    Join the text of the selected segments in transcript order.

    Args:
        segments: All transcript segments
        selected_indices: Indices the user kept

    Returns:
        Selected segment texts separated by single spaces
    """
    selected = sorted({idx for idx in selected_indices if 0 <= idx < len(segments)})
    return " ".join(segments[idx].text for idx in selected if segments[idx].text)


class MeetingSummarizer(OpenAIService):
    """
    Handle meeting summarization using OpenAI API.

    Generates structured meeting minutes from a filtered transcript,
    organizing content by topic and extracting action items.
    """

    def summarize(self, filtered_transcript: str) -> MeetingSummary:
        """
        Generate structured minutes from transcript text.

        Args:
            filtered_transcript: Work-related transcript text

        Returns:
            MeetingSummary

        Raises:
            ValueError: If the transcript is empty
            InvalidModelResponse: If the reply is not a JSON object
        """
        if not filtered_transcript or not filtered_transcript.strip():
            raise ValueError("Transcript is empty")

        prompt = f"""Analyze this meeting transcript and provide:

1. A brief executive summary (2-3 sentences)
2. Key discussion points (bullet points)
3. Action items with:
   - What needs to be done
   - Who is responsible (if mentioned)
   - When it should be completed (if mentioned)
4. Main topics discussed (generate appropriate headers)

Transcript:
{filtered_transcript}

Return the response as JSON with this structure:
{{
  "summary": "executive summary text",
  "keyPoints": ["point 1", "point 2", ...],
  "actionItems": [
    {{
      "task": "description",
      "assignee": "person name or 'Not specified'",
      "deadline": "date or 'Not specified'"
    }}
  ],
  "topics": [
    {{
      "title": "topic header",
      "content": "summary of this topic discussion"
    }}
  ]
}}

Respond ONLY with valid JSON, no other text."""

        logger.info(f"Generating summary using {self.model} ({len(filtered_transcript)} chars)")
        raw = self.chat_json(SUMMARY_SYSTEM_PROMPT, prompt, temperature=0.3)
        if not isinstance(raw, dict):
            raise InvalidModelResponse("Expected a JSON object with the meeting summary")

        summary = MeetingSummary.from_dict(raw)
        logger.info(
            f"Summary generated: {len(summary.key_points)} key points, "
            f"{len(summary.action_items)} action items, {len(summary.topics)} topics"
        )
        return summary
