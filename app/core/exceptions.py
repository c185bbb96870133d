from fastapi import HTTPException, status


class GameError(HTTPException):
    """Base class for rejections raised by the service layer.

    Subclasses fix the HTTP status so callers only supply the message; the
    global HTTPException handler turns them into the APIResponse error envelope.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=type(self).status_code, detail=detail)


class InsufficientFundsError(GameError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidQuantityError(GameError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidConfigurationError(GameError):
    status_code = status.HTTP_400_BAD_REQUEST


class EmptyPoolError(GameError):
    status_code = status.HTTP_400_BAD_REQUEST


class ZeroWeightError(EmptyPoolError):
    pass


class NotFoundError(GameError):
    status_code = status.HTTP_404_NOT_FOUND


class StateConflictError(GameError):
    status_code = status.HTTP_409_CONFLICT


class UnresolvedWinnerError(GameError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class TransactionTimeoutError(GameError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
