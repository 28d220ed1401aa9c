"""
Speaker assignment for transcript segments.

Transcription returns anonymous segments. Names are attached in one of three
ways:
- the user labels a handful of short audio samples and each segment takes
  the name of the nearest labelled sample in time
- the user labels a few segments and the language model propagates the
  names to the rest from conversational context
- the user skips the step and every segment becomes "Unknown Speaker"
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import UNKNOWN_SPEAKER, DetectedSpeaker, SpeakerSample, TranscriptLine, TranscriptSegment
from .llm import InvalidModelResponse, OpenAIService
from .utils import format_timestamp

logger = logging.getLogger(__name__)

SPEAKER_SYSTEM_PROMPT = (
    "You are a speaker identification assistant. Use provided voice labels and context to identify "
    "speakers throughout a transcript. Respond only with valid JSON."
)


class SpeakerIdentifier(OpenAIService):
    """Propagate a few user-provided speaker labels to the whole transcript."""

    def identify(self, segments: Sequence[TranscriptSegment], voice_labels: Mapping[int, str]) -> Dict[int, str]:
        """
        Ask the model to name the speaker of every segment.

        Args:
            segments: Transcript segments in order
            voice_labels: Segment index -> name given by the user

        Returns:
            Segment index -> speaker name. User labels always take precedence
            over the model's guesses.
        """
        labels = {int(idx): name.strip() for idx, name in voice_labels.items() if name and name.strip()}
        if not segments:
            return {}

        label_lines = "\n".join(f"Segment {idx}: {name}" for idx, name in sorted(labels.items()))
        segment_lines = "\n".join(f"[{idx}]: {seg.text}" for idx, seg in enumerate(segments))

        prompt = f"""Given these voice labels provided by the user:
{label_lines}

And these transcript segments:
{segment_lines}

Analyze the content and speaking patterns to assign speaker names to all segments. Use context clues like pronouns, addressing others, and topic continuity to determine who is speaking in each segment.

Return a JSON array where each element has:
- segmentIndex: the segment index
- speaker: the identified speaker name

Respond ONLY with valid JSON, no other text."""

        logger.info(f"Identifying speakers for {len(segments)} segments from {len(labels)} labels")
        raw = self.chat_json(SPEAKER_SYSTEM_PROMPT, prompt, temperature=0.2)
        if isinstance(raw, dict):
            raw = raw.get("speakerMap") or raw.get("speakers") or []
        if not isinstance(raw, list):
            raise InvalidModelResponse("Expected a JSON array of speaker assignments")

        speaker_map: Dict[int, str] = {}
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                idx = int(item.get("segmentIndex"))
            except (TypeError, ValueError):
                continue
            name = str(item.get("speaker") or "").strip()
            if 0 <= idx < len(segments) and name:
                speaker_map[idx] = name

        speaker_map.update({idx: name for idx, name in labels.items() if 0 <= idx < len(segments)})
        return speaker_map


def select_speaker_samples(
    segments: Sequence[TranscriptSegment],
    indices: Optional[Sequence[int]] = None,
    detected: Optional[Iterable[DetectedSpeaker]] = None,
    max_samples: int = 10,
    min_gap: float = 30.0,
    max_clip: float = 15.0,
) -> List[SpeakerSample]:
    """
    Pick short, well-spread excerpts for the user to listen to and name.

    Segments where someone introduced themselves are taken first, then
    segments at least ``min_gap`` seconds away from every sample already
    chosen, until ``max_samples`` is reached.

    Args:
        segments: Candidate segments (usually the ones kept for the minutes)
        indices: Original transcript index of each candidate (default: position)
        detected: Speaker introductions found during analysis
        max_samples: Upper bound on the number of samples
        min_gap: Minimum spacing between sample start times, in seconds
        max_clip: Maximum clip length, in seconds

    Returns:
        Samples ordered by start time, numbered from 0
    """
    if indices is None:
        indices = list(range(len(segments)))
    if len(indices) != len(segments):
        raise ValueError("indices must have one entry per segment")

    candidates = [(idx, seg) for idx, seg in zip(indices, segments) if seg.text.strip()]
    candidates.sort(key=lambda pair: pair[1].start)
    by_index = {idx: seg for idx, seg in candidates}

    chosen: Dict[int, TranscriptSegment] = {}

    for speaker in detected or []:
        if len(chosen) >= max_samples:
            break
        seg = by_index.get(speaker.segment_index)
        if seg is not None:
            chosen[speaker.segment_index] = seg

    for idx, seg in candidates:
        if len(chosen) >= max_samples:
            break
        if idx in chosen:
            continue
        if all(abs(seg.start - other.start) >= min_gap for other in chosen.values()):
            chosen[idx] = seg

    ordered = sorted(chosen.items(), key=lambda pair: pair[1].start)
    samples = []
    for sample_index, (idx, seg) in enumerate(ordered):
        end = seg.end if seg.end > seg.start else seg.start + max_clip
        samples.append(
            SpeakerSample(
                sample_index=sample_index,
                segment_index=idx,
                start_time=seg.start,
                end_time=min(end, seg.start + max_clip),
                text=seg.text,
            )
        )

    logger.info(f"Selected {len(samples)} speaker samples from {len(candidates)} segments")
    return samples


def assign_speakers_from_samples(
    segments: Sequence[TranscriptSegment],
    selected_indices: Iterable[int],
    samples: Sequence[SpeakerSample],
    names: Mapping[int, str],
    max_distance: float = 60.0,
) -> Dict[int, str]:
    """
    Give every selected segment the name of the nearest labelled sample.

    Args:
        segments: All transcript segments
        selected_indices: Indices of segments kept for the minutes
        samples: Samples shown to the user
        names: Sample index -> name typed by the user
        max_distance: Samples starting this many seconds or more away are ignored

    Returns:
        Segment index -> speaker name ("Unknown Speaker" when nothing is close)
    """
    assignments: Dict[int, str] = {}

    for idx in selected_indices:
        if not 0 <= idx < len(segments):
            continue

        segment_start = segments[idx].start
        closest_name = None
        closest_distance = float("inf")

        for sample in samples:
            if sample.sample_index not in names:
                continue
            distance = abs(segment_start - sample.start_time)
            if distance < closest_distance and distance < max_distance:
                closest_distance = distance
                closest_name = (names[sample.sample_index] or "").strip() or UNKNOWN_SPEAKER

        assignments[idx] = closest_name or UNKNOWN_SPEAKER

    return assignments


def skip_speaker_assignment(selected_indices: Iterable[int]) -> Dict[int, str]:
    """Mark every selected segment as spoken by an unknown speaker."""
    return {idx: UNKNOWN_SPEAKER for idx in selected_indices}


def build_transcript_lines(
    segments: Sequence[TranscriptSegment],
    selected_indices: Iterable[int],
    assignments: Mapping[int, str],
) -> List[TranscriptLine]:
    """Build the transcript document lines for the selected segments, in transcript order."""
    lines = []
    for idx in sorted({i for i in selected_indices if 0 <= i < len(segments)}):
        seg = segments[idx]
        lines.append(
            TranscriptLine(
                speaker=assignments.get(idx) or UNKNOWN_SPEAKER,
                text=seg.text,
                timestamp=format_timestamp(seg.start),
            )
        )
    return lines
