from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Categories of spreadsheet decode failures"""
    UNSUPPORTED_FORMAT = "unsupported_format"
    CONTAINER_ERROR = "container_error"
    NOT_FOUND = "not_found"
    EMPTY_INPUT = "empty_input"
    MALFORMED_RECORD = "malformed_record"


class DecodeError(Exception):
    """
    Base class for every failure raised while decoding a spreadsheet.

    Carries a machine-readable ``kind`` plus the structured fields relevant to
    the failure (sheet name, byte offset, signature...) so callers can branch
    on the kind instead of parsing the message.

    Attributes:
        kind: The ErrorKind of the failure
        message: Human readable description
        fields: Structured context, e.g. {"offset": 1024}
    """
    kind: ErrorKind = ErrorKind.CONTAINER_ERROR

    def __init__(self, message: str, **fields: Any):
        super().__init__(message)
        self.message = message
        self.fields: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, fields={self.fields!r})"


class UnsupportedFormatError(DecodeError):
    kind = ErrorKind.UNSUPPORTED_FORMAT

    def __init__(self, message: str, signature: Optional[int] = None, extension: Optional[str] = None):
        super().__init__(message, signature=signature, extension=extension)
        self.signature = signature
        self.extension = extension


class ContainerError(DecodeError):
    """The ZIP container or one of its XML parts could not be opened or parsed"""
    kind = ErrorKind.CONTAINER_ERROR

    def __init__(self, message: str, part: Optional[str] = None):
        super().__init__(message, part=part)
        self.part = part


class NotFoundError(DecodeError):
    """A worksheet part or an embedded record stream is missing"""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, sheet_name: Optional[str] = None, offset: Optional[int] = None):
        super().__init__(message, sheet_name=sheet_name, offset=offset)
        self.sheet_name = sheet_name
        self.offset = offset


class EmptyInputError(DecodeError):
    kind = ErrorKind.EMPTY_INPUT

    def __init__(self, message: str, sheet_name: Optional[str] = None):
        super().__init__(message, sheet_name=sheet_name)
        self.sheet_name = sheet_name


class MalformedRecordError(DecodeError):
    """A legacy record whose declared size does not fit its payload or the buffer"""
    kind = ErrorKind.MALFORMED_RECORD

    def __init__(self, message: str, offset: int, record_type: Optional[int] = None, size: Optional[int] = None):
        super().__init__(message, offset=offset, record_type=record_type, size=size)
        self.offset = offset
        self.record_type = record_type
        self.size = size
