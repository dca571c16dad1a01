"""
Structured logging for transcord.

Everything logs through structlog bound to the standard library, so library loggers (websockets,
py-cord, google-genai) end up in the same handler. Console output is a fixed column layout with
the recording context (session and participant) pulled into its own column; JSON output keeps
every field as is.
"""

import logging
import time
from typing import Any

import numpy as np
import structlog
from structlog.dev import BRIGHT, DIM, RESET_ALL, Column, ConsoleRenderer, KeyValueColumnFormatter
from structlog.typing import EventDict, Processor, WrappedLogger

_STARTED = time.monotonic()

_LEVEL_TAGS = {
  "debug": "dbg",
  "info": "inf",
  "warning": "wrn",
  "error": "err",
  "exception": "exc",
  "critical": "crt",
}

_QUIET_LIBRARIES = ("websockets", "discord", "google_genai", "httpx")

_CONTEXT_FIELDS = ("session", "participant")


def _fg(rgb: int) -> str:
  """24-bit ANSI foreground escape for a 0xRRGGBB color."""
  return f"\x1b[38;2;{rgb >> 16 & 0xFF};{rgb >> 8 & 0xFF};{rgb & 0xFF}m"


class _RoundFloats:
  """Round float values, descending into lists, dicts and numpy arrays."""

  def __init__(self, digits: int = 3) -> None:
    self.digits = digits

  def _round(self, value: Any) -> Any:
    match value:
      case bool():
        return value
      case float() | np.floating():
        return round(float(value), self.digits)
      case np.ndarray():
        return self._round(value.tolist())
      case list() | tuple():
        return [self._round(item) for item in value]
      case dict():
        return {key: self._round(item) for key, item in value.items()}
    return value

  def __call__(self, _: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    return {key: self._round(value) for key, value in event_dict.items()}


def _add_uptime(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
  """Stamp the event with process uptime as +[hh:][mm:]ss.mmm."""
  minutes, seconds = divmod(time.monotonic() - _STARTED, 60)
  hours, minutes = divmod(int(minutes), 60)

  stamp = f"{seconds:06.3f}"
  if hours or minutes:
    stamp = f"{minutes:02d}:{stamp}"
  if hours:
    stamp = f"{hours:02d}:{stamp}"
  event_dict["uptime"] = f"+{stamp}"
  return event_dict


def _tag_level(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
  level = event_dict.get("level")
  if level in _LEVEL_TAGS:
    event_dict["level"] = _LEVEL_TAGS[level]
  return event_dict


def _join_context(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
  """Fold session and participant into one ``session/participant`` field for the console."""
  parts = [str(event_dict.pop(field)) for field in _CONTEXT_FIELDS if field in event_dict]
  if parts:
    event_dict["context"] = "/".join(parts)
  return event_dict


def _console_renderer() -> ConsoleRenderer:
  def column(key: str, style: str, width: int = 0, prefix: str = "", postfix: str = ""):
    return Column(
      key,
      KeyValueColumnFormatter(
        key_style=None,
        value_style=style,
        reset_style=RESET_ALL,
        value_repr=str,
        width=width,
        prefix=prefix,
        postfix=postfix,
      ),
    )

  fields = KeyValueColumnFormatter(
    key_style=_fg(0x6E6A86),
    value_style=_fg(0xF6C177),
    reset_style=RESET_ALL,
    value_repr=str,
  )

  return ConsoleRenderer(
    colors=True,
    columns=[
      Column("", fields),
      column("uptime", DIM),
      column("level", "", prefix="[", postfix="]"),
      column("logger", _fg(0x7D6B95), width=14),
      column("context", _fg(0x9CCFD8), prefix="<", postfix=">"),
      column("event", BRIGHT, width=34),
    ],
  )


def setup_logging(
  level: str = "INFO", json_output: bool = False, correlation_id: str | None = None
) -> None:
  """
  Configure structlog and the root logger.

  :param
      level: Root log level name.
      json_output: Render one JSON object per line instead of console columns.
      correlation_id: Bound to every event when given, for tracing one run across services.
  """
  shared: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.stdlib.ExtraAdder(),
    _RoundFloats(digits=3),
    _add_uptime,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
  ]

  if correlation_id:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

  if json_output:
    renderers: list[Processor] = [structlog.processors.JSONRenderer()]
  else:
    renderers = [_tag_level, _join_context, _console_renderer()]

  structlog.configure(
    processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
  )

  handler = logging.StreamHandler()
  handler.setFormatter(
    structlog.stdlib.ProcessorFormatter(
      foreign_pre_chain=shared,
      processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )
  )

  root = logging.getLogger()
  root.handlers.clear()
  root.addHandler(handler)
  root.setLevel(level)

  for name in _QUIET_LIBRARIES:
    library = logging.getLogger(name)
    library.handlers.clear()
    library.setLevel(logging.WARNING)
    library.propagate = True


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
  """
  Get a logger named ``area/component`` (``ws/session``, ``rec/registry``).

  Bind recording context with ``.bind(session=..., participant=...)``; the console renderer shows
  it in its own column.
  """
  return structlog.get_logger(name, **initial_values)
