"""Imperative shell: voucher ledger writes, numbering and the transaction scope."""

from jobwork_kernel.services.voucher_ledger_service import (
    VoucherLedgerService,
    prepare_append,
)
from jobwork_kernel.services.voucher_number_service import (
    SqlVoucherNumberSource,
    VoucherNumberService,
    VoucherNumberSource,
)
from jobwork_kernel.services.voucher_transaction import voucher_transaction

__all__ = [
    "SqlVoucherNumberSource",
    "VoucherLedgerService",
    "VoucherNumberService",
    "VoucherNumberSource",
    "prepare_append",
    "voucher_transaction",
]
