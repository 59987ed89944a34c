"""
Spreadsheet Ingestion Application

This package provides an API and a library for decoding spreadsheet files.
It turns modern .xlsx containers and legacy .xls record streams (raw or
wrapped in a compound document) into one normalized table of typed values.

Key modules:
- main.py: FastAPI application with API endpoints
- spreadsheet_process.py: Request handling, column validation and response shaping
- ingest/: Format sniffing, OOXML and legacy decoders, value coercion, table building
- utils/result.py: Result pattern implementation for error handling
"""
