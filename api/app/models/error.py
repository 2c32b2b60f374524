"""Error response schema for 404, 503 and handled 4xx errors. 422 uses FastAPI default."""

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Single top-level ``detail`` string, no extra keys."""

    detail: str
