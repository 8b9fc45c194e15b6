"""Read-only query selectors returning DTOs."""

from repair_kernel.selectors.quote_selector import QuoteSelector
from repair_kernel.selectors.technician_selector import SqlTechnicianDirectory

__all__ = ["QuoteSelector", "SqlTechnicianDirectory"]
