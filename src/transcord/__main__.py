import argparse
import asyncio
import os
import sys
from pathlib import Path

from transcord.config import TranscordConfig, load_config_from_file
from transcord.errors import ConfigurationError, TranscordError
from transcord.logs import get_logger, setup_logging
from transcord.presentation import LogPresenter, Presenter
from transcord.recording.orchestrator import MeetingOutcome, RecordingOrchestrator
from transcord.recording.registry import SessionRegistry
from transcord.summary import Summarizer
from transcord.voice.files import FileVoiceSource

EXIT_OK = 0
EXIT_START_FAILED = 1
EXIT_CONFIG_ERROR = 2


def get_env_or_default(env_var, default, var_type: type = str):
  """Get environment variable with type conversion and default fallback."""
  value = os.getenv(env_var)
  if value is None:
    return default

  if var_type is bool:
    return value.lower() in ("true", "1", "yes", "on")
  return value


def parse_participant(value: str) -> tuple[str, Path]:
  name, sep, path = value.partition("=")
  if not sep or not name or not path:
    raise argparse.ArgumentTypeError(f"Expected NAME=PATH, got {value!r}")
  return name, Path(path)


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog="transcord")
  parser.add_argument(
    "--json_logs",
    action="store_true",
    default=get_env_or_default("JSON_LOGS", False, bool),
    help="Output logs in JSON format. (Env: JSON_LOGS)",
  )
  parser.add_argument(
    "--correlation_id",
    type=str,
    default=get_env_or_default("CORRELATION_ID", None),
    help="Correlation ID for log tracing. (Env: CORRELATION_ID)",
  )

  commands = parser.add_subparsers(dest="command", required=True)
  replay = commands.add_parser(
    "replay", help="Replay raw PCM files as meeting participants through the whole pipeline."
  )
  replay.add_argument(
    "--config",
    type=str,
    default=get_env_or_default("TRANSCORD_CONFIG", None),
    help="Path to the configuration file. Defaults are used when omitted. (Env: TRANSCORD_CONFIG)",
  )
  replay.add_argument(
    "--fast",
    action="store_true",
    help="Replay as fast as possible instead of in real time.",
  )
  replay.add_argument(
    "--context",
    type=str,
    default="replay",
    help="Context identifier used as the session id prefix.",
  )
  replay.add_argument(
    "participants",
    nargs="+",
    type=parse_participant,
    metavar="NAME=PATH",
    help="Participant name and headerless pcm_s16le file at the configured rate and channels.",
  )
  return parser


def build_summarizer(config: TranscordConfig) -> Summarizer | None:
  if config.summary.api_key is None:
    return None

  from transcord.summary.gemini import GeminiSummarizer

  return GeminiSummarizer(config.summary)


async def replay(args: argparse.Namespace) -> int:
  logger = get_logger("main")

  try:
    if args.config:
      config = load_config_from_file(args.config)
    else:
      config = TranscordConfig()
      config.pretty_print()
    config.validate_for_recording()
    summarizer = build_summarizer(config)
  except (ConfigurationError, ValueError) as e:
    logger.error("Invalid configuration", error=str(e))
    return EXIT_CONFIG_ERROR

  files = dict(args.participants)
  source = FileVoiceSource(
    files,
    sample_rate=config.audio.sample_rate,
    channels=config.audio.source_channels,
    realtime=not args.fast,
  )
  registry = SessionRegistry(config)
  orchestrator = RecordingOrchestrator(registry, summarizer)
  presenter: Presenter = LogPresenter()

  try:
    info = await orchestrator.begin(source, list(files), context_id=args.context)
  except TranscordError as e:
    logger.error("Recording failed to start", error=str(e))
    await presenter.present(MeetingOutcome.start_failed(e))
    return EXIT_START_FAILED

  logger.info(
    "Replaying participants", session=info.session_id, participants=info.participant_names
  )
  try:
    await source.wait_finished()
  except asyncio.CancelledError:
    logger.warning("Interrupted; stopping recording", session=info.session_id)
    await registry.shutdown()
    raise

  outcome = await orchestrator.conclude(info.session_id)
  await presenter.present(outcome)
  return EXIT_OK


async def main() -> int:
  parser = build_parser()
  args = parser.parse_args()

  log_level = os.getenv("LOG_LEVEL", "INFO").upper()
  setup_logging(level=log_level, json_output=args.json_logs, correlation_id=args.correlation_id)
  logger = get_logger("main")
  logger.info("Starting transcord", command=args.command)

  match args.command:
    case "replay":
      return await replay(args)

  parser.error(f"Unknown command {args.command}")


def run() -> None:
  try:
    sys.exit(asyncio.run(main()))
  except KeyboardInterrupt:
    pass


if __name__ == "__main__":
  run()
