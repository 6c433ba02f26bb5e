"""Reimagine - FastAPI REST API layer.

Modules
-------
main
    FastAPI application factory, route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
validation
    Translation of pydantic errors into per-field validation errors.
uploads
    Conversion of uploaded images into ``data:`` URLs.
"""
