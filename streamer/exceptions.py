"""
Exception hierarchy for the CDC streamer.

Parse failures never leave the classifier and readiness failures are
aggregated into a report; everything else propagates to the caller.
"""


class CDCStreamerException(Exception):
    """Base exception for CDC streamer operations"""
    pass


class CDCConnectionError(CDCStreamerException):
    """Raised when a source database or the broker cannot be reached"""
    pass


class DatabaseConnectionError(CDCConnectionError):
    """Raised when the source database connection fails"""
    pass


class BrokerConnectionError(CDCConnectionError):
    """Raised when the broker subscription cannot be established"""
    pass


class UnsupportedEngineError(CDCStreamerException):
    """Raised when no capability handler is registered for an engine type"""
    pass


class ProfileNotFound(CDCStreamerException):
    """Raised when a connection profile id has no persisted row"""
    pass


class ReadinessValidationError(CDCStreamerException):
    """
    Raised when a source is not ready for change-data-capture.

    Carries the complete ValidationReport so callers can show every step.
    """

    def __init__(self, report, engine_type=''):
        self.report = report
        self.engine_type = engine_type
        super().__init__(self._build_message())

    @property
    def failed_steps(self):
        return self.report.errors

    def _build_message(self):
        lines = []
        for step in self.failed_steps:
            line = f"{step.step}: {step.message}"
            if step.remediation:
                line += f"\n  {step.remediation}"
            lines.append(line)
        label = self.engine_type or 'Source database'
        return (
            f"{label} is not properly configured for CDC:\n\n" + "\n".join(lines) +
            "\n\nApply the suggested fixes and try again."
        )


class RegistrationError(CDCStreamerException):
    """
    Raised when the capture service rejects a create/update call.

    kind is one of CONNECTIVITY, CREDENTIALS or OTHER.
    """

    CONNECTIVITY = 'connectivity'
    CREDENTIALS = 'credentials'
    OTHER = 'other'

    def __init__(self, cause, kind=OTHER, raw_error=None, status_code=None):
        self.cause = cause
        self.kind = kind
        self.raw_error = raw_error
        self.status_code = status_code
        super().__init__(cause)


class ParseError(CDCStreamerException):
    """Raised inside the classifier for a malformed wire message"""
    pass


class StreamError(CDCStreamerException):
    """Raised to the reader when the broker subscription dies mid-session"""
    pass
