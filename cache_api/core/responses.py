from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    message: str = ""
    errors: dict[str, str] | None = None


def send_error(
    error: str = "Error",
    message: str = "",
    status_code: int = status.HTTP_400_BAD_REQUEST,
    errors: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, errors=errors)
    return JSONResponse(
        content=body.model_dump(exclude_none=True), status_code=status_code
    )

