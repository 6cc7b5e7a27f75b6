import asyncio
import re

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions.RAGErrors import GenerationUnavailableError, ProviderError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.RetryPolicy import RetryPolicy
from shared.models.chat import ChatMessage, GeneratedAnswer, MessageRole, VideoReference
from shared.models.chunk import RetrievalResult, ScoredChunk

NO_CONTEXT_ANSWER = "I don't have information about that in the course videos. Could you rephrase your question?"

FOLLOW_UP_LIMIT = 3
FOLLOW_UP_MIN_CONFIDENCE = 0.5
LOW_CONFIDENCE_FOLLOW_UPS = (
    "Could you rephrase your question to be more specific?",
    "What specific aspect would you like to know more about?",
)
GENERAL_FOLLOW_UPS = (
    "Can you show me an example?",
    "What are the common mistakes to avoid?",
    "How can I practice this concept?",
)

SYSTEM_PROMPT = (
    "You are a teaching assistant for an online video course. "
    "Answer the student's question using only the numbered sources provided with the question. "
    "Cite every source you use with its tag in square brackets, for example [S1] or [S2]. "
    "Only use tags that appear in the source list. "
    "If the sources do not contain the answer, say that the course videos do not cover it. "
    "Finish with a last line that is exactly 'GROUNDED: yes' when the sources fully support your answer, "
    "or 'GROUNDED: no' when they do not."
)

SNIPPET_MAX_CHARS = 200

_TAG_PATTERN = re.compile(r"\[(S\d+(?:\s*,\s*S\d+)*)\]", re.IGNORECASE)
_GROUNDED_PATTERN = re.compile(r"^\s*GROUNDED:\s*(yes|no)\s*\.?\s*$", re.IGNORECASE | re.MULTILINE)
_WORD_PATTERN = re.compile(r"[a-z0-9]+")

_STOPWORDS = frozenset(
    "a an and are as at be but by can do does for from how i in is it of on or so that the this "
    "to was what when where which who why will with you your about there their then they me my we".split()
)


def format_timestamp(seconds: float) -> str:
    """Render seconds as mm:ss, or h:mm:ss from one hour on."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def _keywords(text: str) -> set[str]:
    words = set()
    for word in _WORD_PATTERN.findall(text.lower()):
        if word in _STOPWORDS:
            continue
        if len(word) > 3 and word.endswith("s"):
            word = word[:-1]
        words.add(word)
    return words


class AnswerGenerator:
    """Produces a grounded answer with citations from retrieved chunks.

    The model only ever sees the retrieved chunks as tagged sources [S1]..[Sn];
    citations are built from the tags it uses, and tags that do not map to a
    retrieved chunk are dropped. Confidence is the mean similarity of the cited
    chunks, halved when the model reports the sources as insufficient.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        llm_client: LLMClientInterface,
        retry_policy: RetryPolicy,
    ):
        self.logging = helper_config.get_logger()
        self.llm_client = llm_client
        self.retry_policy = retry_policy
        self.history_max_turns = int(helper_config.get_positive_number_val("HISTORY_MAX_TURNS", default=10))
        self.timeout = float(helper_config.get_positive_number_val("GENERATION_TIMEOUT", default=30))

    ##########################################
    ############### CORE #####################
    ##########################################

    async def generate(
        self,
        question: str,
        retrieval: RetrievalResult,
        history: list[ChatMessage] | None = None,
    ) -> GeneratedAnswer:
        """Answer a question from the retrieved chunks.

        Args:
            question (str): The student's question.
            retrieval (RetrievalResult): Output of the retriever for this question.
            history (list[ChatMessage] | None): Prior messages of the session, oldest first.

        Returns:
            GeneratedAnswer: Answer text, confidence, citations and grounding flag.

        Raises:
            GenerationUnavailableError: If the language model keeps failing or timing out.
        """
        if not retrieval.has_relevant_context or not retrieval.chunks:
            self.logging.info("No relevant context for tenant %s, answering without the model.", retrieval.tenant_id)
            return GeneratedAnswer(
                answer=NO_CONTEXT_ANSWER,
                confidence=0.0,
                citations=[],
                grounded=False,
                suggested_questions=self.suggest_follow_ups([], 0.0),
            )

        messages = self.build_messages(question, retrieval.chunks, history or [])
        try:
            reply = await self.retry_policy.run(
                lambda: self._chat_with_timeout(messages),
                description=f"Answer generation for tenant {retrieval.tenant_id}",
            )
        except ProviderError as e:
            self.logging.error("Answer generation unavailable for tenant %s: %s", retrieval.tenant_id, e)
            raise GenerationUnavailableError() from e

        return self.parse_reply(reply, question, retrieval.chunks)

    ##########################################
    ############# PROMPT BUILDER #############
    ##########################################

    def build_messages(self, question: str, chunks: list[ScoredChunk], history: list[ChatMessage]) -> list[dict]:
        """Build the chat messages: system prompt, bounded history, sources and question."""
        messages: list[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]

        for message in history[-self.history_max_turns * 2:]:
            role = "user" if message.role == MessageRole.QUESTION else "assistant"
            messages.append({"role": role, "content": message.content})

        source_lines = []
        for number, scored in enumerate(chunks, start=1):
            chunk = scored.chunk
            source_lines.append(
                f"[S{number}] (video {chunk.video_id}, {format_timestamp(chunk.start_timestamp)}"
                f"-{format_timestamp(chunk.end_timestamp)})\n{chunk.text}"
            )
        content = "Sources:\n\n" + "\n\n".join(source_lines) + f"\n\nQuestion: {question}"
        messages.append({"role": "user", "content": content})
        return messages

    ##########################################
    ############### PARSING ##################
    ##########################################

    def parse_reply(self, reply: str, question: str, chunks: list[ScoredChunk]) -> GeneratedAnswer:
        """Turn the raw model reply into a GeneratedAnswer.

        Only tags S1..Sn for the n retrieved chunks become citations, in order of
        first use. Unknown tags are stripped from the answer text.
        """
        grounded_matches = _GROUNDED_PATTERN.findall(reply)
        grounded = bool(grounded_matches) and grounded_matches[-1].lower() == "yes"
        text = _GROUNDED_PATTERN.sub("", reply)

        cited: list[int] = []
        unknown = 0

        def _replace(match: re.Match) -> str:
            nonlocal unknown
            kept = []
            for tag in match.group(1).split(","):
                number = int(tag.strip()[1:])
                if 1 <= number <= len(chunks):
                    kept.append(f"S{number}")
                    if number not in cited:
                        cited.append(number)
                else:
                    unknown += 1
            return f"[{', '.join(kept)}]" if kept else ""

        text = _TAG_PATTERN.sub(_replace, text).strip()
        if unknown:
            self.logging.warning("Dropped %d citation tag(s) that match no retrieved chunk.", unknown)

        used = [chunks[number - 1] for number in cited]
        citations = [self.build_citation(scored, question) for scored in used]
        confidence = self.compute_confidence([scored.similarity for scored in used], grounded)
        return GeneratedAnswer(
            answer=text,
            confidence=confidence,
            citations=citations,
            grounded=grounded,
            suggested_questions=self.suggest_follow_ups(chunks, confidence),
        )

    def build_citation(self, scored: ScoredChunk, question: str) -> VideoReference:
        """Cite the segment of the chunk that shares the most words with the question.

        Falls back to the chunk start when no segment overlaps the question.
        """
        chunk = scored.chunk
        question_words = _keywords(question)
        best_segment = None
        best_overlap = 0
        for segment in chunk.segments:
            overlap = len(question_words & _keywords(segment.text))
            if overlap > best_overlap:
                best_segment, best_overlap = segment, overlap

        if best_segment is None:
            return VideoReference(
                video_id=chunk.video_id,
                timestamp=chunk.start_timestamp,
                snippet=chunk.text[:SNIPPET_MAX_CHARS],
            )
        return VideoReference(
            video_id=chunk.video_id,
            timestamp=best_segment.start,
            snippet=best_segment.text.strip()[:SNIPPET_MAX_CHARS],
        )

    @staticmethod
    def suggest_follow_ups(chunks: list[ScoredChunk], confidence: float) -> list[str]:
        """Up to three follow-up questions.

        Below 0.5 confidence the student is asked to narrow the question down.
        Otherwise the retrieved chunks' topic tags come first, then general
        study questions.
        """
        if confidence < FOLLOW_UP_MIN_CONFIDENCE:
            return list(LOW_CONFIDENCE_FOLLOW_UPS)[:FOLLOW_UP_LIMIT]

        topics: list[str] = []
        for scored in chunks:
            for tag in scored.chunk.topic_tags:
                if tag not in topics:
                    topics.append(tag)
        suggestions = [f"Can you explain more about {topic}?" for topic in topics]
        suggestions.extend(GENERAL_FOLLOW_UPS)
        return suggestions[:FOLLOW_UP_LIMIT]

    @staticmethod
    def compute_confidence(similarities: list[float], grounded: bool) -> float:
        """Mean similarity of the cited chunks, halved when not grounded, clamped to [0, 1]."""
        if not similarities:
            return 0.0
        mean = sum(similarities) / len(similarities)
        factor = 1.0 if grounded else 0.5
        return round(min(1.0, max(0.0, mean * factor)), 4)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _chat_with_timeout(self, messages: list[dict]) -> str:
        try:
            reply = await asyncio.wait_for(self.llm_client.do_chat(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Answer generation timed out after {self.timeout}s.", retryable=True) from e
        if not reply or not reply.strip():
            raise ProviderError("Language model returned an empty answer.", retryable=True)
        return reply
