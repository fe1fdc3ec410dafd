class VoucherError(Exception):
    """
    Base error for voucher operations. Scoped to a single request; the API
    layer renders it as ``{"detail": message}`` with ``status_code``.
    """

    status_code = 400

    def __init__(self, message: str = "Voucher operation failed"):
        self.message = message
        super().__init__(self.message)


class VoucherInputError(VoucherError):
    status_code = 400


class VoucherNotFoundError(VoucherError):
    status_code = 404


class VoucherStateError(VoucherError):
    status_code = 400


class VoucherStackingError(VoucherError):
    status_code = 400


class VoucherAuthorizationError(VoucherError):
    status_code = 403


class VoucherConsistencyError(VoucherError):
    """The transaction could not commit. Callers retry the whole operation."""

    status_code = 409

    def __init__(self, message: str = "Voucher operation could not be completed, please retry"):
        super().__init__(message)
