class ExceptionNotifyError(Exception):
    def __init__(self, message: str, error_code: str = None, extra: dict = None):
        self.message = message
        self.error_code = error_code
        self.extra = extra or {}
        super().__init__(message)


class ConfigurationError(ExceptionNotifyError):
    def __init__(self, message: str, error_code: str = "CONFIGURATION", extra: dict = None):
        super().__init__(message, error_code, extra)


class UnknownNotifierError(ExceptionNotifyError):
    def __init__(self, name: str, error_code: str = "UNKNOWN_NOTIFIER", extra: dict = None):
        self.name = name
        super().__init__(f"No notifier registered under '{name}'", error_code, extra)


class MalformedEnvironmentError(ExceptionNotifyError):
    def __init__(self, message: str, error_code: str = "MALFORMED_ENVIRONMENT", extra: dict = None):
        super().__init__(message, error_code, extra)


class RenderFailure(ExceptionNotifyError):
    def __init__(self, message: str, error_code: str = "RENDER_FAILURE", extra: dict = None):
        super().__init__(message, error_code, extra)


class DeliveryFailure(ExceptionNotifyError):
    def __init__(
        self,
        message: str,
        notifier: str = None,
        cause: BaseException = None,
        error_code: str = "DELIVERY_FAILURE",
        extra: dict = None,
    ):
        self.notifier = notifier
        self.cause = cause
        super().__init__(message, error_code, extra)
