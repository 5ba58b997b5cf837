class EngineError(Exception):
    code = "engine_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFoundError(EngineError):
    code = "not_found"
    status_code = 404


class InvalidStateError(EngineError):
    code = "invalid_state"
    status_code = 409


class SessionNotActiveError(EngineError):
    code = "session_not_active"
    status_code = 409


class AttemptExpiredError(EngineError):
    code = "attempt_expired"
    status_code = 410


class ForbiddenError(EngineError):
    code = "forbidden"
    status_code = 403


class PaperBankError(EngineError):
    code = "paper_bank_unavailable"
    status_code = 502


class ScoringError(Exception):
    """Snapshot mal formado (p.ej. correctIndex colgante). Fatal sólo para ese intento."""


class InvalidAnswerError(EngineError):
    code = "invalid_answer"
    status_code = 422
