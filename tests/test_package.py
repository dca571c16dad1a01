"""Smoke tests for the package's public surface."""

import importlib

import pytest

import transcord
from transcord import errors


def test_version_matches_distribution():
  from importlib.metadata import version

  assert transcord.__version__ == version("transcord")


@pytest.mark.parametrize("module", ["transcord.wire", "transcord.summary"])
def test_exports_resolve(module):
  package = importlib.import_module(module)
  for name in package.__all__:
    assert getattr(package, name) is not None


@pytest.mark.parametrize(
  "error",
  [
    errors.ConfigurationError("missing key"),
    errors.SessionConnectionError("refused"),
    errors.ConnectionTimeout("guild_1", 10.0),
    errors.AlreadyRecording("guild_1"),
    errors.SessionNotFound("guild_1"),
    errors.SessionNotActive("guild_1", "closed"),
    errors.AlreadyClosed("guild_1"),
    errors.SummaryError("quota"),
  ],
)
def test_errors_share_a_base(error):
  assert isinstance(error, errors.TranscordError)
  assert str(error)


def test_connection_timeout_is_a_connection_error():
  assert issubclass(errors.ConnectionTimeout, errors.SessionConnectionError)
