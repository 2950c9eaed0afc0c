class SureLinkError(Exception):
    """Base class for errors surfaced to a single connection."""

    default_message = "エラーが発生しました"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidPositionError(SureLinkError):
    default_message = "無効な位置情報です"


class InvalidMessageError(SureLinkError):
    default_message = "無効なメッセージ形式です"


class RateLimitExceeded(SureLinkError):
    default_message = "メッセージ送信が速すぎます。少しお待ちください。"

    def __init__(self, event_type: str, message: str | None = None):
        super().__init__(message)
        self.event_type = event_type


class PersistenceFailure(SureLinkError):
    """Raised by the persistence collaborators; wraps the driver error."""

    default_message = "データベースエラーが発生しました"
