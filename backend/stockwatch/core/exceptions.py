"""
관심 종목 서비스 공통 에러 분류

모든 에러는 고정된 ``code`` 를 가진다. 서버는 ``{"detail": ..., "code": ...}`` 로
응답하고, 클라이언트 저장소는 같은 code 로 동일한 예외를 다시 만든다.
"""


class WatchlistError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return "Unexpected error"

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}

    @classmethod
    def from_dict(cls, body: dict) -> "WatchlistError":
        return cls(message=body.get("detail"))


class ValidationError(WatchlistError):
    """네트워크 호출 전에 로컬에서 거부되는 입력 오류"""
    code = "validation_error"
    status_code = 400

    @classmethod
    def default_message(cls) -> str:
        return "Invalid input"


class RangeInvalid(ValidationError):
    code = "range_invalid"

    @classmethod
    def default_message(cls) -> str:
        return "Low price must be less than high price"


class InvalidTarget(ValidationError):
    code = "invalid_target"

    @classmethod
    def default_message(cls) -> str:
        return "Target price must be greater than zero"


class MutationInProgress(ValidationError):
    code = "mutation_in_progress"
    status_code = 409

    @classmethod
    def default_message(cls) -> str:
        return "A change to this stock is still being saved"


class AuthenticationRequired(WatchlistError):
    code = "authentication_required"
    status_code = 401

    @classmethod
    def default_message(cls) -> str:
        return "Authentication required"


class DuplicateSymbol(WatchlistError):
    code = "duplicate_symbol"
    status_code = 409

    def __init__(self, symbol: str | None = None, message: str | None = None):
        self.symbol = symbol
        if message is None and symbol:
            message = f"{symbol} is already tracked"
        super().__init__(message)

    @classmethod
    def default_message(cls) -> str:
        return "This stock is already being tracked"


class NotFound(WatchlistError):
    code = "not_found"
    status_code = 404

    @classmethod
    def default_message(cls) -> str:
        return "Stock not found"


class SchemaNotProvisioned(WatchlistError):
    code = "schema_not_provisioned"
    status_code = 503

    def __init__(self, message: str | None = None, remediation: str | None = None):
        self.remediation = remediation
        super().__init__(message)

    @classmethod
    def default_message(cls) -> str:
        return "Database table not set up. Please run the setup script first."

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.remediation:
            body["remediation"] = self.remediation
        return body

    @classmethod
    def from_dict(cls, body: dict) -> "SchemaNotProvisioned":
        return cls(message=body.get("detail"), remediation=body.get("remediation"))


class UpstreamUnavailable(WatchlistError):
    code = "upstream_unavailable"
    status_code = 502

    @classmethod
    def default_message(cls) -> str:
        return "Upstream service unavailable"


class QuoteServiceUnavailable(UpstreamUnavailable):
    code = "quote_service_unavailable"

    @classmethod
    def default_message(cls) -> str:
        return "Failed to fetch stock data. Please try again."


class QuoteNotFound(WatchlistError):
    code = "quote_not_found"
    status_code = 404

    def __init__(self, symbol: str | None = None, message: str | None = None):
        self.symbol = symbol
        if message is None and symbol:
            message = f"No data found for symbol {symbol}"
        super().__init__(message)

    @classmethod
    def default_message(cls) -> str:
        return "No data found for symbol"


class ConfigurationError(WatchlistError):
    code = "configuration_error"
    status_code = 500

    @classmethod
    def default_message(cls) -> str:
        return "API key not set"


# code -> 예외 클래스 (클라이언트가 응답 바디를 다시 예외로 바꿀 때 사용)
ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        RangeInvalid,
        InvalidTarget,
        MutationInProgress,
        AuthenticationRequired,
        DuplicateSymbol,
        NotFound,
        SchemaNotProvisioned,
        UpstreamUnavailable,
        QuoteServiceUnavailable,
        QuoteNotFound,
        ConfigurationError,
    )
}
