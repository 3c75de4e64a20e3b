from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException

from servicelog.services.errors import FieldEngineError, ValidationFailure


@contextmanager
def engine_errors_as_http() -> Iterator[None]:
    """Re-raise field engine errors as ``HTTPException`` with the matching status."""
    try:
        yield
    except ValidationFailure as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": exc.message, **exc.result.to_dict()},
        ) from exc
    except FieldEngineError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
