"""Pydantic models for the ingestion input.

A Transcript is consumed once by the chunker and never persisted on its own.
"""

from pydantic import BaseModel, Field, model_validator


class TranscriptSegment(BaseModel):
    """One time-coded span of speech.

    Attributes:
        index: Position of the segment in the transcript.
        start: Start time in seconds.
        end:   End time in seconds; strictly greater than start.
        text:  Spoken text of the segment.
    """

    index: int = Field(ge=0)
    start: float = Field(ge=0.0)
    end: float
    text: str = ""

    @model_validator(mode="after")
    def check_time_range(self) -> "TranscriptSegment":
        if self.end <= self.start:
            raise ValueError(f"segment {self.index}: end ({self.end}) must be greater than start ({self.start})")
        return self


class Transcript(BaseModel):
    """Full transcript of a processed video.

    Attributes:
        text:     Full transcript text.
        segments: Timestamped segments, ordered by start time.
        language: Language code of the transcript.
        duration: Total video duration in seconds, if known.
    """

    text: str = ""
    segments: list[TranscriptSegment] = []
    language: str = "en"
    duration: float | None = None

    @model_validator(mode="after")
    def check_segment_order(self) -> "Transcript":
        for previous, current in zip(self.segments, self.segments[1:]):
            if current.start < previous.start:
                raise ValueError(
                    f"segments must be ordered by start time (segment {current.index} starts before segment {previous.index})"
                )
        return self
