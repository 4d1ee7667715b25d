# ============================================
# inventory_service/errors.py — Domain Errors
# ============================================
# Raised by the storage and repository layers, converted to JSON
# envelopes by the handlers registered in main.py.


class InventoryError(Exception):
    """Base class for every error the service reports to clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StorageError(InventoryError):
    """The data file could not be read, parsed or written."""

    status_code = 500


class NotFoundError(InventoryError):
    status_code = 404

    def __init__(self, message: str = "Product not found"):
        super().__init__(message)
