"""
Gemini-backed meeting summarizer.

Uses the google-genai client with a pydantic response schema, so the model returns the summary
sections directly as JSON rather than as prose to be parsed.
"""

from datetime import UTC, datetime

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import ValidationError

from transcord.config import SummaryConfig
from transcord.errors import ConfigurationError, SummaryError
from transcord.logs import get_logger
from transcord.recording.models import FinalTranscript
from transcord.summary.models import MeetingInfo, MeetingSummary, SummaryContent

SUMMARY_PROMPT = """You are summarizing a voice meeting from its automatic transcript.
The transcript may contain recognition errors and has no reliable speaker labels.

Produce:
- overview: two to four sentences describing what the meeting was about
- discussion_points: the main topics, each with its key points
- action_items: concrete tasks that were agreed, with an owner when one is stated
- decisions: decisions that were made
- next_steps: what happens after this meeting

Only include items that are supported by the transcript.

Transcript:
"""

GENERATOR = "gemini"


def build_prompt(transcript: FinalTranscript, meeting: MeetingInfo) -> str:
  stats = transcript.statistics
  names = ", ".join(meeting.participant_names) or "unknown"
  return (
    f"{SUMMARY_PROMPT}{transcript.combined_text}\n\n"
    "Additional meeting context:\n"
    f"- Participants: {names}\n"
    f"- Total words: {stats.total_words}\n"
    f"- Average confidence: {stats.average_confidence:.0%}\n"
    f"- Meeting duration: {meeting.duration_text}\n"
  )


class GeminiSummarizer:
  """Summarizer that calls the Gemini API through google-genai's async client."""

  def __init__(self, config: SummaryConfig, client: genai.Client | None = None) -> None:
    """
    :param
        config: Model selection and generation settings.
        client: Preconfigured client. When omitted one is created from the configured API key.

    :raises ConfigurationError: when no client is given and no API key is configured.
    """
    self.config = config
    self.logger = get_logger("sum/gemini")

    if client is None:
      if config.api_key is None or not config.api_key.get_secret_value():
        raise ConfigurationError("Gemini API key not configured (set GEMINI_API_KEY)")
      client = genai.Client(api_key=config.api_key.get_secret_value())
    self.client = client

  def select_model(self, transcript_length: int) -> str:
    """Pick the large-input model for transcripts longer than the configured threshold."""
    if transcript_length > self.config.large_input_threshold:
      return self.config.large_model
    return self.config.model

  async def summarize(self, transcript: FinalTranscript, meeting: MeetingInfo) -> MeetingSummary:
    """
    Generate a structured summary.

    :raises SummaryError: when the API call fails or returns nothing usable.
    """
    if transcript.is_empty:
      raise SummaryError("No transcript text available for summarization")

    model = self.select_model(len(transcript.combined_text))
    self.logger.info(
      "Generating summary",
      model=model,
      characters=len(transcript.combined_text),
      words=transcript.statistics.total_words,
      participants=len(meeting.participant_names),
    )

    generation_config = types.GenerateContentConfig(
      response_mime_type="application/json",
      response_schema=SummaryContent,
      temperature=self.config.temperature,
      max_output_tokens=self.config.max_output_tokens,
    )

    try:
      response = await self.client.aio.models.generate_content(
        model=model,
        contents=[
          types.Content(
            role="user", parts=[types.Part.from_text(text=build_prompt(transcript, meeting))]
          )
        ],
        config=generation_config,
      )
    except genai_errors.APIError as e:
      raise SummaryError(f"Gemini request failed: {e}") from e

    content = self._parse_response(response)
    self.logger.info(
      "Summary generated",
      model=model,
      sections=len(content.discussion_points),
      action_items=len(content.action_items),
    )

    return MeetingSummary(
      **content.model_dump(),
      generated_at=datetime.now(UTC),
      generated_by=GENERATOR,
      model=model,
    )

  def _parse_response(self, response: types.GenerateContentResponse) -> SummaryContent:
    if isinstance(response.parsed, SummaryContent):
      return response.parsed

    if not response.text or not response.text.strip():
      raise SummaryError("Gemini returned an empty summary")

    try:
      return SummaryContent.model_validate_json(response.text)
    except ValidationError as e:
      self.logger.debug("Unparseable summary response", text=response.text[:500])
      raise SummaryError(f"Gemini returned a malformed summary: {e}") from e
