"""Read-only query selectors."""

from jobwork_kernel.selectors.voucher_selector import VoucherSelector

__all__ = ["VoucherSelector"]
