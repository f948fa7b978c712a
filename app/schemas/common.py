from typing import Any

from pydantic import BaseModel


class GenericApiResponse(BaseModel):
    success: bool
    message: str | None = None
    status_code: int | None = None
    data: Any = None
