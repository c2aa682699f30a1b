"""Head-to-head match models."""

from .match import Match, MatchParticipant, MatchRound, MatchRoundParticipant

__all__ = ["Match", "MatchParticipant", "MatchRound", "MatchRoundParticipant"]
