from fastapi import HTTPException, status

from ..domain.errors import ReservationError

_STATUS_BY_KIND = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: ReservationError) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        message = "unexpected server error"
    else:
        message = str(exc)
    return HTTPException(status_code=status_code, detail={"code": exc.kind, "message": message})
