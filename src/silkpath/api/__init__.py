"""SilkPath Studio — FastAPI dashboard layer.

This package contains the dashboard application and the Pydantic request
models its routes accept.

Modules
-------
main
    FastAPI application factory with all route handlers and the ``main()``
    CLI entry point.
models
    Pydantic models for API request validation.
"""
