"""
Error types raised by the bracket engine.

Every error carries a user-facing ``reason`` and the HTTP status code the
web layer answers with.
"""


class TournamentError(Exception):
    """Base class for all rejected tournament operations."""
    status_code = 400
    default_reason = 'Operation rejected.'

    def __init__(self, reason=None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class TournamentNotFound(TournamentError):
    status_code = 404
    default_reason = 'Tournament not found.'


class TournamentNotRunning(TournamentError):
    status_code = 409
    default_reason = 'Tournament is not running.'


class ConfigurationError(TournamentError):
    """A required channel, role or key binding is missing or invalid."""
    status_code = 500
    default_reason = 'Server not configured for this operation.'


# Registration

class RegistrationError(TournamentError):
    pass


class RegistrationClosed(RegistrationError):
    status_code = 409
    default_reason = 'Registration closed.'


class TournamentFull(RegistrationError):
    status_code = 409
    default_reason = 'Tournament full.'


class AlreadyRegistered(RegistrationError):
    default_reason = 'Already registered.'


class NotRegistered(RegistrationError):
    status_code = 404
    default_reason = 'Not registered.'


# Bracket construction

class BuildError(TournamentError):
    pass


class InsufficientParticipants(BuildError):
    default_reason = 'Not enough participants (min 2).'


# Match play

class MatchError(TournamentError):
    pass


class MatchNotFound(MatchError):
    status_code = 404
    default_reason = 'Match not found.'


class InvalidWinnerToken(MatchError):
    default_reason = 'Invalid winner (use p1 or p2).'


class AlreadyDecided(MatchError):
    status_code = 409
    default_reason = 'Match already decided.'


class NotYourTurn(MatchError):
    status_code = 409
    default_reason = 'It is not your turn. Wait for your opponent to reply.'


class NotAParticipant(MatchError):
    status_code = 403
    default_reason = 'You are not playing in this match.'


class MatchNotReady(MatchError):
    status_code = 409
    default_reason = 'Match is waiting for its participants.'


class VoteNotOpen(MatchError):
    status_code = 409
    default_reason = 'Voting is not open for this match.'


class AlreadyVoted(MatchError):
    status_code = 409
    default_reason = 'You already voted.'
