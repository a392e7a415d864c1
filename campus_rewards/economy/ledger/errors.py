class LedgerError(Exception):
    pass


class LedgerUserNotFoundError(LedgerError):
    pass


class InsufficientBalanceError(LedgerError):
    def __init__(self, *, required: int, available: int) -> None:
        super().__init__(f"balance {available} is below required {required}")
        self.required = required
        self.available = available


class LedgerReferenceConflictError(LedgerError):
    """The reference was already used for a different posting."""
