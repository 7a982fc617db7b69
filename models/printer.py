"""
Printer resource models.

Both classes are frozen snapshots read out of the ledger database; the
ledger is the only writer of the underlying rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Any, Mapping


@dataclass(frozen=True)
class Printer:
    """Consumable levels of one printer at a point in time."""

    printer_id: str
    paper_count: int
    black_ink_level: float
    color_ink_level: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "printer_id": self.printer_id,
            "paper": self.paper_count,
            "black_ink": round(self.black_ink_level, 1),
            "color_ink": round(self.color_ink_level, 1),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Printer":
        return cls(
            printer_id=row["printer_id"],
            paper_count=int(row["paper"]),
            black_ink_level=float(row["black_ink"]),
            color_ink_level=float(row["color_ink"]),
        )


@dataclass(frozen=True)
class PrintJobRecord:
    """
    One row of the append-only print log.

    Written in the same transaction as the deduction it describes.
    """

    sequence: int
    session_ref: str
    printer_id: str
    pages_printed: int
    ink_type: str
    amount_charged: float
    timestamp: str
    phone: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.sequence,
            "token": self.session_ref,
            "phone": self.phone,
            "printer_id": self.printer_id,
            "pages": self.pages_printed,
            "print_type": self.ink_type,
            "amount": self.amount_charged,
            "time": self.timestamp,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PrintJobRecord":
        return cls(
            sequence=int(row["id"]),
            session_ref=row["token"] or "",
            phone=row["phone"] or "",
            printer_id=row["printer_id"],
            pages_printed=int(row["pages"]),
            ink_type=row["print_type"],
            amount_charged=float(row["amount"] or 0.0),
            timestamp=row["time"],
        )
