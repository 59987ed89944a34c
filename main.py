from fastapi import FastAPI, Query, Request
import os
import logging
from datetime import datetime
from typing import List, Optional
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from spreadsheet_process import FileProcessor, ReadRequest, failure_response


# Create logs directory if it doesn't exist
log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
os.makedirs(log_dir, exist_ok=True)

# Define static folder path
STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static")
SAMPLE_FILE = os.path.join(STATIC_DIR, "excel", "sample.xlsx")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logger.addHandler(file_handler)


# Function to resolve file paths with static_path prefix
def resolve_file_path(file_path: str) -> str:
    """
    Convert static_path references to actual file paths

    Args:
        file_path: The file path which may contain 'static_path/' prefix

    Returns:
        Resolved absolute file path
    """
    if file_path and file_path.startswith("static_path/"):
        # Replace static_path with the actual static directory path
        relative_path = file_path.replace("static_path/", "", 1)
        return os.path.join(STATIC_DIR, relative_path)
    return file_path


# Initialize FastAPI app with metadata
app = FastAPI(
    title="Spreadsheet Ingestion API",
    description="API for decoding .xlsx and legacy .xls spreadsheets into normalized tables",
    version="2.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def respond(read_request: ReadRequest):
    """
    Run a read request and turn its Result into an HTTP response.

    Returns:
        dict on success, JSONResponse carrying the mapped status code on failure
    """
    result = FileProcessor.process_file(read_request)

    # Single exit point
    if not result.is_success():
        body = failure_response(result).model_dump()
        return JSONResponse(status_code=result.status_code.value, content=body)
    return result.data.model_dump()


# API Endpoints
@app.get(
    "/data/",
    tags=["Spreadsheet Reading"]
)
def get_spreadsheet_data(
    file_path: Optional[str] = None,
    sheet: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=0),
    required_columns: Optional[List[str]] = Query(default=None),
):
    """
    Read a spreadsheet from disk.

    Paths starting with 'static_path/' resolve under the static folder. Without
    a file_path the bundled sample.xlsx is read.

    Returns:
        dict: JSON response with:
            - headers: Column names of the sheet
            - rows: 2D array of typed values
            - total_rows: Number of data rows in the sheet
            - sheet / format: What was read
    """
    resolved_path = resolve_file_path(file_path) if file_path else SAMPLE_FILE
    logger.info(f"Serving spreadsheet data from {resolved_path}")

    return respond(ReadRequest(
        file_path=resolved_path,
        sheet_name=sheet,
        limit=limit,
        required_columns=required_columns,
    ))


@app.post(
    "/read/",
    tags=["Spreadsheet Reading"]
)
async def read_uploaded_spreadsheet(
    request: Request,
    filename: Optional[str] = None,
    sheet: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=0),
    required_columns: Optional[List[str]] = Query(default=None),
):
    """
    Decode the raw request body as a spreadsheet.

    The extension of ``filename`` selects the format; without one the body is
    sniffed from its leading bytes.
    """
    content = await request.body()
    logger.info(f"Decoding uploaded spreadsheet {filename or '<unnamed>'} ({len(content)} bytes)")

    # Decoding is synchronous; keep it off the event loop
    return await run_in_threadpool(respond, ReadRequest(
        content=content,
        filename=filename,
        sheet_name=sheet,
        limit=limit,
        required_columns=required_columns,
    ))


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Spreadsheet Ingestion API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
