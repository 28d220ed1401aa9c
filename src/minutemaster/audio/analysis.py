"""
Transcript analysis using OpenAI chat completions.

Each segment is labelled as work-related or casual conversation with a short
topic. The labels only pre-select which segments go into the minutes; the
user makes the final choice. A second, best-effort pass looks for speakers
introducing themselves so their names can be suggested later.
"""

import logging
from typing import Dict, List, Sequence

from ..models import DetectedSpeaker, SegmentAnalysis, TranscriptSegment
from .llm import InvalidModelResponse, OpenAIService

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a meeting analysis assistant. Analyze transcript segments and classify them as "
    "work-related or casual conversation. Respond only with valid JSON."
)

SPEAKER_DETECTION_SYSTEM_PROMPT = (
    "You are a meeting analysis assistant. Find people introducing themselves in a transcript. "
    "Respond only with valid JSON."
)


def _format_segment_lines(segments: Sequence[TranscriptSegment]) -> str:
    return "\n".join(f"[{idx}] ({seg.start}s - {seg.end}s): {seg.text}" for idx, seg in enumerate(segments))


class TranscriptAnalyzer(OpenAIService):
    """Classify transcript segments and detect speaker introductions."""

    def classify_segments(self, segments: Sequence[TranscriptSegment]) -> List[SegmentAnalysis]:
        """
        Label every segment as work-related or casual.

        Args:
            segments: Transcript segments in order

        Returns:
            One SegmentAnalysis per segment, ordered by index. Segments the
            model skipped default to work-related with topic "Unknown".

        Raises:
            InvalidModelResponse: If the reply is not a JSON array
        """
        if not segments:
            return []

        prompt = f"""Analyze the following meeting transcript segments and identify which segments are work-related and which are not. For each segment, determine if it's work-related or casual/off-topic conversation.

Transcript segments:
{_format_segment_lines(segments)}

Return a JSON array where each element has:
- segmentIndex: the segment index
- isWorkRelated: boolean (true if work-related, false if casual)
- topic: brief description of what this segment is about

Respond ONLY with valid JSON, no other text."""

        logger.info(f"Classifying {len(segments)} segments using {self.model}")
        raw = self.chat_json(ANALYSIS_SYSTEM_PROMPT, prompt, temperature=0.3)

        # Some models wrap the array in an object
        if isinstance(raw, dict):
            raw = raw.get("analysis") or raw.get("segments") or []
        if not isinstance(raw, list):
            raise InvalidModelResponse("Expected a JSON array of segment classifications")

        by_index: Dict[int, SegmentAnalysis] = {}
        for item in raw:
            if not isinstance(item, dict):
                continue
            analysis = SegmentAnalysis.from_dict(item)
            if 0 <= analysis.segment_index < len(segments) and analysis.segment_index not in by_index:
                by_index[analysis.segment_index] = analysis

        missing = len(segments) - len(by_index)
        if missing:
            logger.warning(f"Model skipped {missing} segments; defaulting them to work-related")

        result = [by_index.get(idx, SegmentAnalysis(segment_index=idx)) for idx in range(len(segments))]
        work_count = sum(1 for a in result if a.is_work_related)
        logger.info(f"Classification complete: {work_count}/{len(result)} work-related")
        return result

    def detect_speakers(self, segments: Sequence[TranscriptSegment]) -> List[DetectedSpeaker]:
        """
        Find segments where a speaker states their own name.

        Detection is only a hint for the speaker step, so any failure is
        logged and an empty list returned.
        """
        if not segments:
            return []

        prompt = f"""Read these meeting transcript segments and find every place where a person introduces themselves by name (for example "Hi, I'm Anna" or "This is Tom from finance").

Transcript segments:
{_format_segment_lines(segments)}

Return a JSON array where each element has:
- name: the name the speaker gave for themselves
- segmentIndex: the index of the segment containing the introduction

Return an empty array if nobody introduces themselves.
Respond ONLY with valid JSON, no other text."""

        try:
            raw = self.chat_json(SPEAKER_DETECTION_SYSTEM_PROMPT, prompt, temperature=0.2)
        except Exception as e:
            logger.warning(f"Speaker detection failed, continuing without it: {e}")
            return []

        if isinstance(raw, dict):
            raw = raw.get("speakers") or raw.get("detectedSpeakers") or []
        if not isinstance(raw, list):
            return []

        detected = []
        seen = set()
        for item in raw:
            if not isinstance(item, dict):
                continue
            speaker = DetectedSpeaker.from_dict(item)
            key = (speaker.name.lower(), speaker.segment_index)
            if speaker.name and 0 <= speaker.segment_index < len(segments) and key not in seen:
                seen.add(key)
                detected.append(speaker)

        logger.info(f"Detected {len(detected)} speaker introductions")
        return detected
