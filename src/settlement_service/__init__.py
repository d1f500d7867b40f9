"""Settlement service: escrow, service fees, receipts and rating aggregates for a task marketplace."""

__version__ = "0.1.0"
