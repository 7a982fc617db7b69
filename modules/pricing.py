"""Price quotes for print sessions."""

from __future__ import annotations

from models.session import ColorMode


class PriceQuoter:
    """Per-page pricing: pages x copies x rate for the chosen ink."""

    def __init__(self, price_per_page_bw: float, price_per_page_color: float) -> None:
        self.rates = {
            ColorMode.MONOCHROME: float(price_per_page_bw),
            ColorMode.COLOR: float(price_per_page_color),
        }

    @classmethod
    def from_config(cls, config) -> "PriceQuoter":
        return cls(config["PRICE_PER_PAGE_BW"], config["PRICE_PER_PAGE_COLOR"])

    def quote(self, pages: int, copies: int = 1, color_mode: ColorMode = ColorMode.MONOCHROME) -> float:
        copies = max(1, int(copies or 1))
        return round(max(0, int(pages)) * copies * self.rates[ColorMode.parse(color_mode)], 2)
