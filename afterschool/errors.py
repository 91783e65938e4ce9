"""
Booking Service: エラー分類

すべての失敗は呼び出し元に対して終端的で、ストア内部ではリトライしない。
kind は機械可読な安定した識別子、status_code は HTTP 層での対応。
"""


class BookingError(Exception):
    kind = "booking_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidInput(BookingError):
    """必須項目の欠落・不正な形式・存在しないレッスン ID"""

    kind = "invalid_input"
    status_code = 400


class InvalidField(InvalidInput):
    kind = "invalid_field"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class InsufficientSeats(BookingError):
    """要求数を満たせないレッスンがある（バッチ全体が中止される）"""

    kind = "insufficient_seats"
    status_code = 409

    def __init__(self, lesson_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient seats for lesson {lesson_id}: "
            f"requested={requested}, available={available}"
        )
        self.lesson_id = lesson_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "lessonId": self.lesson_id,
            "requested": self.requested,
            "available": self.available,
        }


class NotFound(BookingError):
    kind = "not_found"
    status_code = 404


class StorageFault(BookingError):
    """バックエンド障害、またはロック待ちが上限時間を超えた"""

    kind = "storage_fault"
    status_code = 500
