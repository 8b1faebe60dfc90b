"""Domain errors raised by the lifecycle, upsert and catalogue functions.

Routers let these propagate; ``masapos.main`` renders them as
``{"detail": message}`` with the status code of the error class.
"""


class PosError(Exception):
    """Base class for errors reported back to the caller."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(PosError):
    """Missing or malformed required field."""

    status_code = 400


class NotFound(PosError):
    """Referenced region, table, session or product does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        else:
            message = f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class InvalidState(PosError):
    """Operation not legal for the current state (e.g. paying a closed session)."""

    status_code = 409
