"""Domain errors and the HTTP status/category each one maps to."""


class AppError(Exception):
    status_code = 500
    category = "Internal error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(AppError):
    """Raised for blank fields, rejected SQL and malformed identifiers."""

    status_code = 400
    category = "Invalid request"


class ModelServiceFailure(AppError):
    """Raised when the language model is unreachable or its reply is unusable."""

    status_code = 500
    category = "AI service failed"


class EmptyModelReply(ModelServiceFailure):
    """The model answered, but with no content."""

    def __init__(self, message: str = "model returned empty content"):
        super().__init__(message)


class GenerationFailed(ModelServiceFailure):
    pass


class DatabaseOperationFailure(AppError):
    """Raised when a catalog read, connection or query fails."""

    status_code = 400
    category = "Database operation failed"


class SchemaUnavailable(DatabaseOperationFailure):
    pass


class DatabaseExecutionError(DatabaseOperationFailure):
    def __init__(self, message: str, sql: str):
        super().__init__(message)
        self.sql = sql
