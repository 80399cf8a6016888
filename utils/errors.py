"""
Error taxonomy for the soundbot.

Errors local to one event or one playback are logged and dropped.
Errors about session liveness or credential validity propagate to the
owning process, which reconnects or re-authorizes.
"""


class AuthError(Exception):
    """Base class for credential lifecycle failures."""
    pass


class UserDeclined(AuthError):
    """The user did not grant authorization (or the grant was rejected)."""
    pass


class TransportFailure(AuthError):
    """The authorization endpoint could not be reached or failed server-side."""
    pass


class RefreshFailed(AuthError):
    """Refresh kept failing on transport errors after all retries."""
    pass


class RefreshRevoked(AuthError):
    """The refresh token was rejected; a fresh authorization is required."""
    pass


class RegistrarError(Exception):
    """Base class for subscription management failures."""

    def __init__(self, message: str, event_type: str = ''):
        super().__init__(message)
        self.event_type = event_type


class Unauthorized(RegistrarError):
    """Bearer credential was rejected; refresh and retry once."""

    def __init__(self, message: str, event_type: str = '', credential=None):
        super().__init__(message, event_type)
        # credential that received the 401
        self.credential = credential


class QuotaExceeded(RegistrarError):
    """Subscription limit reached for this event type. Not retried."""
    pass


class SessionError(Exception):
    """Base class for feed session failures."""
    pass


class HandshakeFailed(SessionError):
    """Connection could not be opened or no welcome message arrived."""
    pass


class Terminated(SessionError):
    """Session reached the closed state (revocation or reconnects exhausted)."""
    pass


class DispatchError(Exception):
    pass


class UnrecognizedPayload(DispatchError):
    """Notification payload is not a redemption this bot understands."""
    pass


class PlaybackError(Exception):
    pass


class NoMatch(PlaybackError):
    """No sound resource matches the reward title."""
    pass


class DecodeFailure(PlaybackError):
    """Sound resource could not be opened or decoded."""
    pass
