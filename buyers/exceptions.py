class BuyerError(Exception):
    """Base class for buyer operation failures that map to an HTTP status"""

    status_code = 400
    message = "Buyer operation failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class BuyerNotFound(BuyerError):
    status_code = 404
    message = "Buyer not found"


class BuyerPermissionDenied(BuyerError):
    status_code = 403
    message = "Forbidden: You can only modify your own leads"


class StaleBuyerRecord(BuyerError):
    status_code = 409
    message = "Record has been modified by another user. Please refresh and try again."


class CsvImportRejected(BuyerError):
    """The uploaded file was refused as a whole; no row was imported"""

    message = "CSV import rejected"

    def __init__(self, message: str = None, details=None):
        super().__init__(message)
        self.details = details or []
