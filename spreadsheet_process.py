import math
import os
import logging
import time
import uuid
from typing import Any, List, Optional
from pydantic import BaseModel
from http import HTTPStatus

from ingest import DecodeError, Table, read_spreadsheet
from utils.result import Result

# Configure logger with more structured format
logger = logging.getLogger(__name__)


class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.pop('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


# Response model for standardized API responses
class ProcessResponse(BaseModel):
    """
    Standardized response schema for spreadsheet reads.

    Attributes:
        success: Whether the operation was successful
        status_code: HTTP status code of the response
        status: HTTP status description
        headers: Column names of the decoded table
        rows: 2D array of typed row values
        total_rows: Number of data rows in the sheet (before any limit)
        sheet: Worksheet that was read
        format: Detected file family
        error: Error message if unsuccessful
        error_kind: Decode failure category if unsuccessful
    """
    success: bool
    status_code: Optional[int] = 200
    status: Optional[str] = "OK"
    headers: Optional[List[str]] = None
    rows: Optional[List[List[Any]]] = None
    total_rows: Optional[int] = None
    sheet: Optional[str] = None
    format: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


# Input validation schema
class ReadRequest(BaseModel):
    """
    Schema for a spreadsheet read request.

    Attributes:
        file_path: Full path to the spreadsheet, when reading from disk
        content: Raw file bytes, when reading an uploaded buffer
        filename: Name of the uploaded file, used for its extension
        sheet_name: Worksheet to read (first sheet if omitted)
        required_columns: Column names that must exist in the sheet
        limit: Maximum number of rows to return
    """
    file_path: Optional[str] = None
    content: Optional[bytes] = None
    filename: Optional[str] = None
    sheet_name: Optional[str] = None
    required_columns: Optional[List[str]] = None
    limit: Optional[int] = None


def _json_value(value: Any) -> Any:
    # NaN and infinity have no JSON representation
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class FileProcessor:
    """
    Reads spreadsheets for the API layer.

    This class contains methods to:
    - Decode a spreadsheet from disk or from an uploaded buffer
    - Verify required columns
    - Shape the decoded table into a ProcessResponse
    """

    @staticmethod
    def process_file(request: ReadRequest) -> Result[ProcessResponse]:
        """
        Read a spreadsheet according to the given request.

        Args:
            request: ReadRequest naming the file (or carrying its bytes) and the sheet

        Returns:
            Result[ProcessResponse]: Result object containing either a successful response or error
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "file_path": request.file_path or request.filename,
            "sheet_name": request.sheet_name,
        }

        logger.info("Processing spreadsheet", extra=log_context)

        try:
            with LogContext("spreadsheet decode", **log_context):
                table_result = FileProcessor._read_table(request)

            if not table_result.is_success():
                logger.warning(f"Spreadsheet decode failed: {table_result.error}", extra=log_context)
                return table_result

            table = table_result.data
            log_context["row_count"] = len(table)

            column_result = FileProcessor._validate_columns(table, request.required_columns)
            if not column_result.is_success():
                logger.warning(f"Column validation failed: {column_result.error}", extra=log_context)
                return column_result

            response = FileProcessor._build_response(table, request.limit)
            logger.info(f"Successfully read spreadsheet with {response.total_rows} rows", extra=log_context)
            return Result.ok(response)

        except Exception as e:
            logger.exception("Unexpected error during spreadsheet processing", extra={**log_context, "error": str(e)})
            return Result.server_error(f"Processing error: {str(e)}")

    @staticmethod
    def _read_table(request: ReadRequest) -> Result[Table]:
        """
        Decodes the requested spreadsheet, converting decode failures into a Result.

        Args:
            request: ReadRequest with either file_path or content

        Returns:
            Result containing either the decoded Table or the mapped error
        """
        if request.content is not None:
            source = request.content
            extension = os.path.splitext(request.filename)[1] if request.filename else None
        elif request.file_path is not None:
            source = request.file_path
            extension = None
        else:
            logger.error("Neither a file path nor file content was provided")
            return Result.not_found("No file path provided")

        try:
            return Result.ok(read_spreadsheet(source, sheet_name=request.sheet_name, extension=extension))
        except DecodeError as e:
            logger.error(
                "Failed to decode spreadsheet",
                extra={"file_path": request.file_path or request.filename, "error": e.message, "error_kind": e.kind.value, **e.fields}
            )
            return Result.from_error(e)

    @staticmethod
    def _validate_columns(table: Table, required_columns: Optional[List[str]]) -> Result[bool]:
        """
        Validates that all required columns exist in the decoded table.

        Args:
            table: Decoded table
            required_columns: List of column names that must exist

        Returns:
            Result indicating success or error with missing columns
        """
        valid_required_cols = [col for col in (required_columns or []) if col is not None]
        missing_cols = [col for col in valid_required_cols if col not in table.columns]

        log_context = {
            "available_columns": table.columns,
            "required_columns": valid_required_cols,
            "missing_columns": missing_cols
        }

        if missing_cols:
            logger.error("Column validation failed", extra=log_context)
            return Result.column_not_found(f"Missing required columns: {', '.join(missing_cols)} from spreadsheet")

        logger.debug("Column validation successful", extra=log_context)
        return Result.ok(True)

    @staticmethod
    def _build_response(table: Table, limit: Optional[int] = None) -> ProcessResponse:
        total_rows = len(table)
        if limit is not None:
            table = table.head(limit)

        return ProcessResponse(
            success=True,
            headers=table.columns,
            rows=[[_json_value(value) for value in row] for row in table.rows],
            total_rows=total_rows,
            sheet=table.sheet_name,
            format=table.source_format,
            status_code=HTTPStatus.OK.value,
            status=HTTPStatus.OK.phrase
        )


def failure_response(result: Result) -> ProcessResponse:
    """ProcessResponse body for a failed Result"""
    return ProcessResponse(
        success=False,
        status_code=result.status_code.value,
        status=result.status_code.phrase,
        error=result.error,
        error_kind=result.error_kind.value if result.error_kind is not None else None
    )
