from pydantic import BaseModel


class APIError(BaseModel):
    """Error body returned by every failing endpoint."""

    error: str
    error_description: str | None = None
