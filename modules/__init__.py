"""Helper modules for the PayToPrint kiosk backend."""

__all__ = [
    "file_storage",
    "page_counter",
    "pricing",
]
