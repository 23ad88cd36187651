class MatchmakingError(Exception):
    """Base for every failure the matchmaking engine reports to its callers."""

    code = "matchmaking_error"
    retryable = False

    def __init__(self, detail: str, **context):
        self.detail = detail
        self.context = context
        super().__init__(detail)


class NotFound(MatchmakingError):
    code = "not_found"


class InvalidState(MatchmakingError):
    code = "invalid_state"


class InvalidTransition(MatchmakingError):
    code = "invalid_transition"


class LimitExceeded(MatchmakingError):
    code = "limit_exceeded"

    def __init__(self, detail: str, swipe_info: dict | None = None, **context):
        super().__init__(detail, **context)
        self.swipe_info = swipe_info or {}


class Transient(MatchmakingError):
    code = "transient"
    retryable = True


class Internal(MatchmakingError):
    """A broken invariant; never retried."""

    code = "internal"


class MissingDependency(MatchmakingError):
    code = "missing_dependency"
