import io
import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from . import config
from .schemas import Bill

NAME_WIDTH = 40
ROW_HEIGHT = 10  # mm
TABLE_LEFT, TABLE_RIGHT = 20, 190  # mm
COLUMN_X = {"item": 25, "qty": 105, "price": 125, "total": 160}  # mm, text anchors
COLUMN_RULES = (100, 120, 150)  # mm, vertical separators
PAGE_BOTTOM = 260  # mm from the top; rows past this go to a new page


@dataclass(frozen=True)
class StoreInfo:
    name: str = config.STORE_NAME
    address: str = config.STORE_ADDRESS
    phone: str = config.STORE_PHONE


def format_money(amount: Decimal, prefix: str = config.CURRENCY_PREFIX) -> str:
    return f"{prefix}{amount:.2f}"


def format_date(value: datetime.datetime) -> str:
    return value.strftime("%b %d, %Y, %I:%M %p")


def truncate_name(name: str, width: int = NAME_WIDTH) -> str:
    return name[:width]


def receipt_filename(bill: Bill) -> str:
    return f"Bill_{bill.id}.pdf"


def render_receipt(bill: Bill, store: Optional[StoreInfo] = None,
                   currency: str = config.CURRENCY_PREFIX) -> bytes:
    """Lays out ``bill`` as a one-column A4 receipt and returns the PDF bytes."""
    store = store or StoreInfo()
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Bill #{bill.id}")
    _, height = A4

    def at(top_mm: float) -> float:
        # Layout is measured in mm from the top edge; reportlab counts points from the bottom
        return height - top_mm * mm

    # ================= STORE HEADER =================
    c.setFont("Helvetica-Bold", 20)
    c.drawCentredString(105 * mm, at(20), store.name)
    c.setFont("Helvetica", 10)
    c.drawCentredString(105 * mm, at(30), store.address)
    c.drawCentredString(105 * mm, at(35), store.phone)

    c.setFont("Helvetica", 12)
    c.drawString(20 * mm, at(50), f"Bill #{bill.id}")
    c.drawString(20 * mm, at(60), f"Date: {format_date(bill.date)}")

    def table_header(top: float) -> float:
        c.setFillColorRGB(240 / 255, 240 / 255, 240 / 255)
        c.rect(TABLE_LEFT * mm, at(top + ROW_HEIGHT), (TABLE_RIGHT - TABLE_LEFT) * mm, ROW_HEIGHT * mm, stroke=1, fill=1)
        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold", 12)
        for label, key in (("Item", "item"), ("Qty", "qty"), ("Price", "price"), ("Total", "total")):
            c.drawString(COLUMN_X[key] * mm, at(top + 7), label)
        column_rules(top)
        c.setFont("Helvetica", 12)
        return top + ROW_HEIGHT

    def column_rules(top: float) -> None:
        for x in COLUMN_RULES:
            c.line(x * mm, at(top), x * mm, at(top + ROW_HEIGHT))

    # ================= ITEMS =================
    c.setLineWidth(0.3)
    y = table_header(70)
    for i, line in enumerate(bill.lines):
        if y + ROW_HEIGHT > PAGE_BOTTOM:
            c.showPage()
            y = table_header(20)
        shade = 250 / 255 if i % 2 == 0 else 1
        c.setFillColorRGB(shade, shade, shade)
        c.rect(TABLE_LEFT * mm, at(y + ROW_HEIGHT), (TABLE_RIGHT - TABLE_LEFT) * mm, ROW_HEIGHT * mm, stroke=1, fill=1)
        c.setFillColorRGB(0, 0, 0)
        c.drawString(COLUMN_X["item"] * mm, at(y + 7), truncate_name(line.name))
        c.drawString(COLUMN_X["qty"] * mm, at(y + 7), str(line.quantity))
        c.drawString(COLUMN_X["price"] * mm, at(y + 7), format_money(line.unit_price, currency))
        c.drawString(COLUMN_X["total"] * mm, at(y + 7), format_money(line.line_total, currency))
        column_rules(y)
        y += ROW_HEIGHT

    # ================= TOTAL =================
    if y + 50 > 297:
        c.showPage()
        y = 20
    c.setFillColorRGB(240 / 255, 240 / 255, 240 / 255)
    c.rect(120 * mm, at(y + 20), 70 * mm, 10 * mm, stroke=0, fill=1)
    c.setFillColorRGB(0, 0, 0)
    c.setFont("Helvetica-Bold", 12)
    c.drawString(125 * mm, at(y + 17), "Total:")
    c.drawString(160 * mm, at(y + 17), format_money(bill.total, currency))

    c.setFont("Helvetica", 10)
    c.drawCentredString(105 * mm, at(y + 40), "Thank you for your business!")

    c.showPage()
    c.save()
    return buffer.getvalue()
