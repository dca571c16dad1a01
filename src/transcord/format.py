from typing import NamedTuple


class Unit(NamedTuple):
  value: float


class Bytes(Unit):
  def __str__(self) -> str:
    if self.value >= 1024 * 1024:
      return f"{self.value / (1024 * 1024):.1f}MiB"
    if self.value >= 1024:
      return f"{self.value / 1024:.1f}KiB"
    return f"{int(self.value)}B"


def format_duration(seconds: float | None) -> str:
  """Render a meeting duration the way people read it: "1h 2m 3s", "2m 3s" or "3s"."""
  if not seconds or seconds <= 0:
    return "0 seconds"

  total = int(seconds)
  hours, remainder = divmod(total, 3600)
  minutes, secs = divmod(remainder, 60)

  if hours > 0:
    return f"{hours}h {minutes}m {secs}s"
  if minutes > 0:
    return f"{minutes}m {secs}s"
  return f"{secs}s"
