"""
Script to run the Economy Service API for local development.

This runs the FastAPI application with uvicorn and auto-reload.
"""

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "economy.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True
    )
