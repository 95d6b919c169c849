"""Services package for the card game server."""

from .match_recorder import (
    MatchRecorder,
    LoggingMatchRecorder,
    record_match_safe,
    get_match_recorder,
    set_match_recorder,
    close_match_recorder,
)

__all__ = [
    "MatchRecorder",
    "LoggingMatchRecorder",
    "record_match_safe",
    "get_match_recorder",
    "set_match_recorder",
    "close_match_recorder",
]
