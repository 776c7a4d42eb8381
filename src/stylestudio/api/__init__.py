"""StyleStudio FastAPI REST API layer.

This package exposes the history store and the migration tooling over HTTP
for the frontend and for administration.

Modules
-------
main
    FastAPI application with all route handlers, the data-layer exception
    handlers and the ``main()`` server entry point.
models
    Pydantic models for API request and response validation.
"""
