from collections import Counter
import re

from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import TextChunk
from shared.models.transcript import Transcript, TranscriptSegment

_SENTENCE_END = re.compile(r"[.!?;][\"')\]]*$")
_TAG_WORD = re.compile(r"[a-zA-Z][a-zA-Z0-9+#-]{3,}")
_TOPIC_TAG_LIMIT = 3
_STOPWORDS = frozenset(
    """
    about above after again against also because been before being below between both could does doing down
    during each even every from further going gonna have having here into just know like little made make many
    more most much must need only other over really right same should some something such than that their them
    then there these they thing things this those through under until very want well were what when where which
    while will with would your yours yeah okay actually basically kind sort look see going thats dont cant
    """.split()
)


class TranscriptChunker:
    """Splits a time-coded transcript into bounded chunks of whole segments.

    Segments are accumulated greedily until adding the next one would exceed the
    word budget or stretch the chunk past the maximum duration; the next chunk
    then starts at that segment. A segment is never split. Segments without any
    text are skipped and never start or stretch a chunk.

    Two optional refinements, both off by default:

    * ``overlap_words`` (CHUNK_OVERLAP_WORDS): the next chunk repeats the
      trailing whole segments of the previous one, up to this many words, as
      long as they still fit its budget. With 0 every segment belongs to
      exactly one chunk.
    * ``sentence_boundary`` (CHUNK_SENTENCE_BOUNDARY): when a chunk is full,
      it is cut after the last segment that ends a sentence instead of after
      the last segment that fit, provided the cut keeps at least half of the
      word budget. The remainder moves on to the next chunk.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        max_words: int | None = None,
        max_duration: float | None = None,
        overlap_words: int | None = None,
        sentence_boundary: bool | None = None,
    ):
        self.logging = helper_config.get_logger()
        self.max_words = int(max_words or helper_config.get_positive_number_val("CHUNK_MAX_WORDS", default=750))
        self.max_duration = float(max_duration or helper_config.get_positive_number_val("CHUNK_MAX_DURATION", default=300))
        if overlap_words is None:
            overlap_words = helper_config.get_number_val("CHUNK_OVERLAP_WORDS", default=0)
        self.overlap_words = int(overlap_words)
        if self.overlap_words < 0 or self.overlap_words >= self.max_words:
            raise ValueError(
                f"CHUNK_OVERLAP_WORDS must be between 0 and CHUNK_MAX_WORDS - 1, got {self.overlap_words}"
            )
        if sentence_boundary is None:
            sentence_boundary = helper_config.get_bool_val("CHUNK_SENTENCE_BOUNDARY", default=False)
        self.sentence_boundary = bool(sentence_boundary)

    def chunk(self, transcript: Transcript) -> list[TextChunk]:
        """Chunk a transcript.

        Args:
            transcript (Transcript): Validated transcript with ordered segments.

        Returns:
            list[TextChunk]: Chunks with contiguous zero-based indices and non-empty
                text. Empty when the transcript has no segments with text.
        """
        segments = [s for s in transcript.segments if self._count_words(s.text)]
        if not segments:
            self.logging.info("Transcript has no spoken segments, nothing to chunk.")
            return []

        groups: list[list[TranscriptSegment]] = []
        # carried: overlap repeated from the previous chunk, own: segments new to this one
        carried: list[TranscriptSegment] = []
        own: list[TranscriptSegment] = []

        for segment in segments:
            while own and not self._fits(carried + own + [segment]):
                head, tail = self._split(own)
                groups.append(carried + head)
                carried = self._carry_over(carried + head, tail + [segment])
                own = tail
            own.append(segment)

        groups.append(carried + own)

        chunks = [self._build_chunk(index, group) for index, group in enumerate(groups)]
        self.logging.debug(
            "Chunked %d segments into %d chunks (max %d words, %ss, overlap %d, sentence cuts %s).",
            len(transcript.segments), len(chunks), self.max_words, self.max_duration,
            self.overlap_words, self.sentence_boundary,
        )
        return chunks

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _fits(self, group: list[TranscriptSegment]) -> bool:
        if sum(self._count_words(s.text) for s in group) > self.max_words:
            return False
        return max(s.end for s in group) - min(s.start for s in group) <= self.max_duration

    def _split(self, own: list[TranscriptSegment]) -> tuple[list[TranscriptSegment], list[TranscriptSegment]]:
        """Return (chunk to close, segments moved on). The first part is never empty."""
        if not self.sentence_boundary or self._ends_sentence(own[-1]):
            return own, []
        min_words = self.max_words // 2
        for cut in range(len(own) - 1, 0, -1):
            head = own[:cut]
            if sum(self._count_words(s.text) for s in head) < min_words:
                break
            if self._ends_sentence(head[-1]):
                return head, own[cut:]
        return own, []

    def _carry_over(
        self, closed: list[TranscriptSegment], following: list[TranscriptSegment]
    ) -> list[TranscriptSegment]:
        if not self.overlap_words:
            return []
        carry: list[TranscriptSegment] = []
        words = 0
        # never repeat a whole chunk
        for segment in reversed(closed[1:]):
            words += self._count_words(segment.text)
            if words > self.overlap_words:
                break
            carry.insert(0, segment)
        while carry and not self._fits(carry + following):
            carry.pop(0)
        return carry

    def _build_chunk(self, index: int, segments: list[TranscriptSegment]) -> TextChunk:
        text = " ".join(s.text.strip() for s in segments)
        return TextChunk(
            chunk_index=index,
            text=text,
            start_timestamp=min(s.start for s in segments),
            end_timestamp=max(s.end for s in segments),
            word_count=self._count_words(text),
            segments=list(segments),
            topic_tags=extract_topic_tags(text),
        )

    @staticmethod
    def _ends_sentence(segment: TranscriptSegment) -> bool:
        return bool(_SENTENCE_END.search(segment.text.strip()))

    @staticmethod
    def _count_words(text: str) -> int:
        return len(text.split())


def extract_topic_tags(text: str, limit: int = _TOPIC_TAG_LIMIT) -> list[str]:
    """Most frequent content words of a chunk, lowercased.

    Words shorter than four letters and common filler are ignored; a word must
    occur at least twice to count as a topic. Ties keep first-seen order.
    """
    words = [w.lower() for w in _TAG_WORD.findall(text)]
    counts = Counter(w for w in words if w not in _STOPWORDS)
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [word for word, count in ranked if count >= 2][:limit]
