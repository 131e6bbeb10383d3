# invoice_ledger/errors.py


class LedgerError(Exception):
    """Base class for every condition the ledger reports to its callers."""


class PreconditionFailed(LedgerError):
    pass


class NotFound(LedgerError):
    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id!r} not found")


class ValidationFailed(LedgerError, ValueError):
    pass


class PersistenceUnavailable(LedgerError):
    """
    The durable store could not be read or written.

    When raised by a store mutation, the in-memory change has already been
    applied and `result` holds what the operation would have returned.
    """

    def __init__(self, key: str, message: str, result=None):
        self.key = key
        self.result = result
        super().__init__(f"{key}: {message}")
