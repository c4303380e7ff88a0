from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures a caller is allowed to see."""

    status_code = 400

    def __init__(self, message: str, *, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.fields = fields or []


class NotFoundError(LedgerError, LookupError):
    status_code = 404

    def __init__(self, entity: str, entity_id: object | None = None) -> None:
        super().__init__(f'{entity} not found')
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(LedgerError):
    status_code = 403

    def __init__(self, message: str = 'Forbidden') -> None:
        super().__init__(message)


class ValidationError(LedgerError, ValueError):
    status_code = 400


class MissingReferenceError(ValidationError):
    """A payload references rows that do not exist; nothing was written."""

    def __init__(self, entity: str, missing_ids: list[int]) -> None:
        ids = ', '.join(str(i) for i in missing_ids)
        super().__init__(f'Unknown {entity} id(s): {ids}', fields=['item_id'])
        self.entity = entity
        self.missing_ids = missing_ids


class InvalidTransitionError(ValidationError):
    status_code = 409
