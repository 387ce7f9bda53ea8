"""Shared Pydantic schemas for Healthy Meals."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "healthy-meals"


class ErrorResponse(BaseModel):
    error: str
    code: str = ""
    detail: str = ""
