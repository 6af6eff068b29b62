"""
Candidate Upload Application

This package provides an API that validates a candidate's name, surname and
spreadsheet upload behind a client-IP allow-list.

Key modules:
- main.py: FastAPI application with API endpoints and error handlers
- access_filter.py: Client address resolution and allow-list middleware
- candidate_upload.py: Spreadsheet parsing and upload validation
- config.py: Settings loaded from environment variables and env files
- utils/result.py: Result pattern implementation for error handling
"""
