# app/domain/errors.py


class NotFoundError(LookupError):
    pass


class CouponRejected(ValueError):
    """Walidator odrzucil kupon; koszyk zostaje bez zmian."""

    def __init__(self, error, message: str | None = None):
        self.error = error
        self.message = message or str(getattr(error, "value", error))
        super().__init__(self.message)


class InvalidStatusTransition(ValueError):
    pass


class MaterializationError(RuntimeError):
    """
    Terminalny blad tworzenia zamowienia z sesji platnosci
    (brak sesji, nieoplacona sesja, zle pozycje). Bez automatycznych retry.
    """


class PaymentSessionNotFound(MaterializationError):
    pass


class PaymentProviderUnavailable(RuntimeError):
    pass
