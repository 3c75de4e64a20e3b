from __future__ import annotations

from typing import Any


class FieldEngineError(Exception):
    code = "FIELD_ENGINE_ERROR"
    status_code = 500

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context


class ResolutionFailure(FieldEngineError):
    """Field listing was unreachable; callers degrade to an empty field set."""

    code = "RESOLUTION_FAILURE"
    status_code = 503


class SchemaMismatchError(FieldEngineError):
    """A value's shape disagrees with the declared type of its field."""

    code = "SCHEMA_MISMATCH"
    status_code = 400


class SnapshotCorrupt(FieldEngineError):
    code = "SNAPSHOT_CORRUPT"
    status_code = 400


class ValidationFailure(FieldEngineError):
    code = "VALIDATION_FAILURE"
    status_code = 422

    def __init__(self, result, message: str = "Please complete required fields"):
        super().__init__(message)
        self.result = result


class PersistenceFailure(FieldEngineError):
    """Saving or deleting field values failed; nothing was committed."""

    code = "PERSISTENCE_FAILURE"
    status_code = 503


class FieldDefinitionNotFound(FieldEngineError):
    code = "FIELD_NOT_FOUND"
    status_code = 404


class FieldDefinitionConflict(FieldEngineError):
    code = "FIELD_CONFLICT"
    status_code = 400


class FieldTypeLocked(FieldEngineError):
    """The field already has recorded values, so its type can no longer change."""

    code = "FIELD_TYPE_LOCKED"
    status_code = 409


class FieldInUse(FieldEngineError):
    code = "FIELD_IN_USE"
    status_code = 409
