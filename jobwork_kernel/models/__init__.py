"""ORM models.  Importing this package registers every table on Base.metadata."""

from jobwork_kernel.models.voucher import TOTAL_COLUMNS, VoucherRecord

__all__ = ["TOTAL_COLUMNS", "VoucherRecord"]
