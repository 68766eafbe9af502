# utils.py
import datetime
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from models import InventoryLedger, Medicine, Sale, ValidationError, validate_medicine_fields
from reports import inventory_frame

PHARMACY_NAME = "PharmaFlow"


def export_inventory_csv(medicines, file_path: str):
    """Dump inventory to CSV."""
    inventory_frame(medicines).to_csv(file_path, index=False)
    return file_path


def export_inventory_excel(medicines, file_path: str):
    """Export inventory to Excel format."""
    inventory_frame(medicines).to_excel(file_path, index=False, sheet_name='Inventory')
    return file_path


def _upsert_rows(ledger: InventoryLedger, df):
    pending = []
    for line_no, row in enumerate(df.to_dict('records'), start=2):
        fields = {k: (None if pd.isna(v) else v) for k, v in row.items()}
        try:
            name, price, quantity, expiry = validate_medicine_fields(
                fields.get('name'), fields.get('price'),
                fields.get('quantity'), fields.get('expiry_date'))
        except ValidationError as e:
            raise ValidationError(f"Row {line_no}: {e}")
        pending.append((fields.get('id'), name, price, quantity, expiry,
                        fields.get('category') or None))

    # Only written once every row has passed validation
    for medicine_id, name, price, quantity, expiry, category in pending:
        existing = ledger.get(str(medicine_id)) if medicine_id else None
        if existing:
            ledger.update(Medicine(existing.id, name, price, quantity, expiry, category))
        else:
            ledger.add(name, price, quantity, expiry, category)
    return len(pending)


def import_inventory_csv(ledger: InventoryLedger, file_path: str):
    """
    Read CSV with columns name,price,quantity,expiry_date (id and
    category optional). Rows whose id is already stocked replace that
    medicine; the rest are added.
    """
    df = pd.read_csv(file_path, dtype=str)
    return _upsert_rows(ledger, df)


def import_inventory_excel(ledger: InventoryLedger, file_path: str):
    """Same as import_inventory_csv for an Excel sheet."""
    df = pd.read_excel(file_path, dtype=str)
    return _upsert_rows(ledger, df)


def _format_sale_date(timestamp: str):
    try:
        return datetime.datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return timestamp


def generate_txt_receipt(sale: Sale, file_path: str, currency="$"):
    """Write a simple text invoice."""
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(f"{PHARMACY_NAME}\n")
        f.write(f"Invoice: {sale.id}\n")
        f.write(f"Date: {_format_sale_date(sale.date)}\n")
        f.write(f"Customer: {sale.customer_name}\n")
        f.write("-" * 40 + "\n")
        f.write("Item               QTY    Price     Total\n")
        for item in sale.items:
            f.write(f"{item.name[:15]:15} {item.quantity:5}  {currency}{item.price:7.2f} "
                    f"{currency}{item.total:8.2f}\n")
        f.write("-" * 40 + "\n")
        f.write(f"Total:        {currency}{sale.total_amount:8.2f}\n")
        f.write("-" * 40 + "\n")
        f.write("Get well soon!\n")
    return file_path


def generate_pdf_receipt(sale: Sale, file_path: str, currency="$"):
    """Generate a PDF invoice using ReportLab."""
    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='RightAlign',
        parent=styles['Normal'],
        alignment=2,  # 2 is right alignment
    ))
    normal_style = styles['Normal']

    elements.append(Paragraph(f"{PHARMACY_NAME} Invoice", styles['Heading1']))
    elements.append(Paragraph(f"Invoice No: {sale.id}", normal_style))
    elements.append(Paragraph(f"Date: {_format_sale_date(sale.date)}", normal_style))
    elements.append(Paragraph(f"Customer: {escape(sale.customer_name)}", normal_style))
    elements.append(Spacer(1, 0.2 * inch))

    data = [["Item", "Quantity", "Price", "Total"]]
    for item in sale.items:
        data.append([item.name, str(item.quantity),
                     f"{currency}{item.price:.2f}", f"{currency}{item.total:.2f}"])
    data.append(["" for _ in range(4)])
    data.append(["Total:", "", "", f"{currency}{sale.total_amount:.2f}"])

    table = Table(data, colWidths=[2.5*inch, 1*inch, 1*inch, 1*inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (3, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (3, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (3, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (3, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (3, 0), 12),
        ('BOTTOMPADDING', (0, 0), (3, 0), 12),
        ('BACKGROUND', (0, 1), (3, -1), colors.white),
        ('GRID', (0, 0), (-1, -3), 1, colors.black),
        ('ALIGN', (1, 1), (3, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (3, -1), 'Helvetica-Bold'),
    ]))

    elements.append(table)
    elements.append(Spacer(1, 0.5 * inch))
    elements.append(Paragraph("Get well soon!", styles['RightAlign']))

    doc.build(elements)

    return file_path
