"""
Match result recording.

Completed matches are handed to a MatchRecorder once the game reaches
GAME_OVER with a winner. Long-term storage of statistics and match history
is an external service; this module only defines the seam it plugs into.

Usage:
    # At startup (optional; a logging recorder is used by default)
    from services.match_recorder import set_match_recorder
    set_match_recorder(MyStoreRecorder(...))

    # When a match ends
    asyncio.create_task(record_match_safe(game.summary()))
"""

import logging
from dataclasses import asdict
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from game import MatchSummary

logger = logging.getLogger(__name__)


class MatchRecorder:
    """Write-only sink for completed-match summaries."""

    async def record(self, summary: "MatchSummary") -> None:
        raise NotImplementedError


class LoggingMatchRecorder(MatchRecorder):
    """Default recorder: writes each summary to the application log."""

    async def record(self, summary: "MatchSummary") -> None:
        logger.info(
            f"Match finished in room {summary.room_id}: "
            f"{summary.winner_name} won after {summary.duration_seconds}s",
            extra={"room_id": summary.room_id, "summary": asdict(summary)},
        )


async def record_match_safe(summary: Optional["MatchSummary"]) -> None:
    """
    Record a match in a fire-and-forget manner.

    Called via asyncio.create_task once game_ended has been sent. Failures
    are logged, never raised.
    """
    if summary is None:
        return
    try:
        await get_match_recorder().record(summary)
    except Exception as e:
        logger.error(f"Failed to record match for room {summary.room_id}: {e}")


# Global instance
_match_recorder: Optional[MatchRecorder] = None


def get_match_recorder() -> MatchRecorder:
    """Get the global match recorder, creating the logging default if unset."""
    global _match_recorder
    if _match_recorder is None:
        _match_recorder = LoggingMatchRecorder()
    return _match_recorder


def set_match_recorder(recorder: MatchRecorder) -> None:
    """Set the global match recorder instance."""
    global _match_recorder
    _match_recorder = recorder


def close_match_recorder() -> None:
    """Drop the global match recorder."""
    global _match_recorder
    _match_recorder = None
