"""Sales window bookkeeping on the persisted product counters."""

from storefront.errors import ValidationError


def sales_this_window(product) -> int:
    """Units sold since the last price recomputation, including manual adjustment."""
    return (product.sales_count + product.manual_sales_adjustment) - product.sales_count_at_last_update


def mark_window_consumed(product) -> None:
    """Start a new window at the current real counter.

    The baseline moves to ``sales_count`` (not zero), so a manual adjustment
    is spent once while the real counter keeps its history.
    """
    product.sales_count_at_last_update = product.sales_count


def record_sale(product, quantity: int) -> None:
    """Increment the monotonic sales counter for an order."""
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")
    product.sales_count += quantity


def set_total_sales(product, total_sales: int) -> None:
    """Store an admin-entered total as an adjustment over the real counter."""
    if total_sales < 0:
        raise ValidationError("Sales count cannot be negative")
    product.manual_sales_adjustment = total_sales - product.sales_count
