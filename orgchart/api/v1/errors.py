from __future__ import annotations

from fastapi import HTTPException, status

from orgchart.services.exceptions import (
    CircularReferenceError,
    DirectoryUnavailableError,
    DuplicateIdError,
    HasChildrenError,
    InvalidParentError,
    NotFoundError,
    OperationDisabledError,
    OrgChartError,
    StorageUnavailableError,
)

_STATUS_BY_ERROR: list[tuple[type[OrgChartError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidParentError, status.HTTP_400_BAD_REQUEST),
    (DuplicateIdError, status.HTTP_409_CONFLICT),
    (CircularReferenceError, status.HTTP_409_CONFLICT),
    (HasChildrenError, status.HTTP_409_CONFLICT),
    (OperationDisabledError, status.HTTP_403_FORBIDDEN),
    (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (DirectoryUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(err: OrgChartError) -> HTTPException:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(err, error_type):
            status_code = code
            break

    detail: dict[str, object] = {"error": type(err).__name__, "message": str(err)}
    if isinstance(err, HasChildrenError):
        detail["childIds"] = err.child_ids
    return HTTPException(status_code=status_code, detail=detail)
