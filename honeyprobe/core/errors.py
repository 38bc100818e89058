"""Error hierarchy shared by the injector, decoder and execution backend."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes attached to every honeyprobe error."""

    PARSE_ERROR = "PARSE_ERROR"
    DECODE_ERROR = "DECODE_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    FORMAT_ERROR = "FORMAT_ERROR"
    FORGE_UNAVAILABLE = "FORGE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class HoneyprobeError(Exception):
    """Base class for all honeyprobe errors."""

    code: ErrorCode = ErrorCode.PARSE_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


class ParseError(HoneyprobeError):
    """Source cannot be parsed or has no identifiable entry contract."""

    code = ErrorCode.PARSE_ERROR


class FormatError(ParseError):
    """The external formatter rejected the source or could not run."""

    code = ErrorCode.FORMAT_ERROR


class DecodeError(HoneyprobeError):
    """Constructor argument bytes do not decode against the resolved signature."""

    code = ErrorCode.DECODE_ERROR


class ExecutionError(HoneyprobeError):
    """The forge run did not complete or produced an unusable result."""

    code = ErrorCode.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, code)
        self.returncode = returncode
        self.stderr = stderr
