"""Custom exceptions for the invoice ledger."""


class LedgerError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        return rv


class BusinessLogicError(LedgerError):
    """Exception raised for invalid requests (bad quantity, tax rate, type...)."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(LedgerError):
    """Exception raised when an invoice, product or company is missing."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available, message=None):
        self.product_name = product_name
        self.required = required
        self.available = available
        if message is None:
            message = (
                f"Not enough stock for {product_name}: "
                f"required {required}, available {available}"
            )
        payload = {'product': product_name, 'required': required, 'available': available}
        super().__init__(message, status_code=409, payload=payload)


class InvalidAmountError(LedgerError):
    """Raised when a monetary amount breaks an invariant (negative tax or total)."""
    def __init__(self, message="Amount cannot be negative"):
        super().__init__(message, 500)


class InvalidStateError(LedgerError):
    """Raised for corrupted data or a forbidden state transition."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)
