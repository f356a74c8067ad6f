"""
Domain errors raised by the league engines.

Every error carries a structured ``details`` dict (season/league/division ids,
offending counts) so controllers can hand callers something to act on.
Recoverable "not ready yet" conditions are not errors; see
``league_app.playoffs.services.playoff_service.PlayoffsNotReady``.
"""


class LeagueError(Exception):
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LeagueError):
    status_code = 404


class InvalidRosterSize(LeagueError):
    """A league roster cannot produce a double round-robin (odd, too small or duplicated)."""


class ScheduleIntegrityError(LeagueError):
    """A generated schedule failed its verification step; nothing was persisted."""
    status_code = 500


class CorruptMatchDataError(LeagueError):
    """A finished match has missing or invalid goals."""
    status_code = 409


class PlayoffDrawNotAllowedError(LeagueError):
    """A deciding playoff result would leave the tie level."""


class InvalidPlayoffBracketError(LeagueError):
    """The playoff slice cannot be arranged into a knockout bracket."""
    status_code = 409


class AlreadyGeneratedError(LeagueError):
    """Matches already exist for the (season, league) or (season, division) being generated."""
    status_code = 409


class TransitionBlockedError(LeagueError):
    """The season cannot be closed: pending matches/playoffs or integrity errors."""
    status_code = 409

    def __init__(self, message: str, report=None, **details):
        super().__init__(message, **details)
        self.report = report

    def to_dict(self):
        data = super().to_dict()
        if self.report is not None:
            data["report"] = self.report.to_dict()
        return data


class RegularSeasonFrozenError(LeagueError):
    """Playoffs exist for the division, so its regular-season results can no longer change."""
    status_code = 409
