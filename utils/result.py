from typing import Generic, TypeVar, Optional, Any, Dict, Union
from http import HTTPStatus

from ingest.errors import DecodeError, ErrorKind

T = TypeVar('T')  # Generic type variable

# HTTP status reported for each decode failure kind
ERROR_STATUS = {
    ErrorKind.UNSUPPORTED_FORMAT: HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
    ErrorKind.NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrorKind.EMPTY_INPUT: HTTPStatus.UNPROCESSABLE_ENTITY,
    ErrorKind.CONTAINER_ERROR: HTTPStatus.BAD_REQUEST,
    ErrorKind.MALFORMED_RECORD: HTTPStatus.BAD_REQUEST,
}


class Result(Generic[T]):
    """
    A generic result class that represents the outcome of a spreadsheet read.

    Either carries the decoded data or an error message, the HTTP status the
    API should answer with and, for decode failures, the error kind and its
    structured fields.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        error (Optional[str]): Error message (only present when success is False)
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
        error_kind (Optional[ErrorKind]): Decode failure category, if the failure came from the decoder
        details (Dict[str, Any]): Structured error fields such as sheet name or byte offset
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None,
        error_kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.success = success
        self.data = data
        self.error = error
        self.error_kind = error_kind
        self.details = details or {}

        # Set default status code based on success/failure if not provided
        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def from_error(cls, error: DecodeError) -> "Result[T]":
        """
        Create a failed Result from a decode failure.

        The HTTP status follows the error kind (415 for unsupported formats,
        404 for missing sheets or streams, 422 for empty input, 400 otherwise).

        Args:
            error (DecodeError): The failure raised by the decoder

        Returns:
            Result[T]: A failed Result carrying the kind and structured fields
        """
        return cls(
            success=False,
            error=error.message,
            status_code=ERROR_STATUS.get(error.kind, HTTPStatus.BAD_REQUEST),
            error_kind=error.kind,
            details=error.fields,
        )

    @classmethod
    def not_found(cls, error: str = "Resource not found") -> "Result[T]":
        return cls(success=False, error=error, status_code=HTTPStatus.NOT_FOUND)

    @classmethod
    def column_not_found(cls, error: str = "Column not found in spreadsheet") -> "Result[T]":
        """
        Create a failed Result for required columns missing from the decoded table.

        Args:
            error (str, optional): The error message about missing columns.

        Returns:
            Result[T]: A failed Result with 404 status code
        """
        return cls(success=False, error=error, status_code=HTTPStatus.NOT_FOUND)

    @classmethod
    def server_error(cls, error: str = "Internal server error") -> "Result[T]":
        return cls(success=False, error=error, status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def __repr__(self) -> str:
        return (f"Result(success={self.success}, status_code={self.status_code!r}, "
                f"data={self.data!r}, error={self.error!r}, error_kind={self.error_kind!r})")
