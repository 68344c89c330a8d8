from datetime import datetime, timezone
from decimal import Decimal
from unittest import TestCase

from billing_counter import receipt
from billing_counter.schemas import Bill, BillLine


def _bill(line_count: int = 2, name: str = "Widget") -> Bill:
    lines = [
        BillLine(product_id=i, name=f"{name} {i}", unit_price=Decimal("2.50"), quantity=2)
        for i in range(1, line_count + 1)
    ]
    return Bill(
        id=42,
        date=datetime(2024, 3, 5, 14, 7, tzinfo=timezone.utc),
        lines=lines,
        total=sum((line.line_total for line in lines), Decimal("0")),
    )


class TestReceiptFormatting(TestCase):
    def test_format_money(self) -> None:
        self.assertEqual(receipt.format_money(Decimal("5"), prefix="inr"), "inr5.00")
        self.assertEqual(receipt.format_money(Decimal("49.95"), prefix="$"), "$49.95")

    def test_format_date(self) -> None:
        self.assertEqual(receipt.format_date(datetime(2024, 3, 5, 14, 7)), "Mar 05, 2024, 02:07 PM")

    def test_truncate_name(self) -> None:
        self.assertEqual(receipt.truncate_name("x" * 60), "x" * receipt.NAME_WIDTH)
        self.assertEqual(receipt.truncate_name("short"), "short")

    def test_receipt_filename(self) -> None:
        self.assertEqual(receipt.receipt_filename(_bill()), "Bill_42.pdf")


class TestRenderReceipt(TestCase):
    def test_renders_a_pdf(self) -> None:
        pdf = receipt.render_receipt(_bill())
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertIn(b"%%EOF", pdf[-32:])

    def test_long_names_and_custom_store(self) -> None:
        store = receipt.StoreInfo(name="Corner Shop", address="1 Main St", phone="555-0100")
        pdf = receipt.render_receipt(_bill(name="A very long product name " * 4), store=store, currency="$")
        self.assertTrue(pdf.startswith(b"%PDF"))

    def test_many_lines_spill_onto_more_pages(self) -> None:
        short = receipt.render_receipt(_bill(line_count=3))
        long = receipt.render_receipt(_bill(line_count=60))
        self.assertGreater(long.count(b"/Type /Page"), short.count(b"/Type /Page"))
