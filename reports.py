# reports.py
from datetime import datetime, time, timedelta, timezone

import pandas as pd
from dateutil.relativedelta import relativedelta

INVENTORY_COLUMNS = ["id", "name", "price", "quantity", "expiry_date", "category"]
SALES_COLUMNS = ["id", "date", "customer_name", "num_items", "total_amount"]


def _today(today=None):
    if today is None:
        return datetime.now(timezone.utc).date()
    if isinstance(today, datetime):
        return today.date()
    return today


def low_stock(medicines, threshold: int = 10):
    """Medicines with quantity at or below threshold."""
    return [m for m in medicines if m.quantity <= threshold]


def add_months(moment, months: int):
    """
    Calendar month shift where a day past the end of the target month
    rolls over into the next one (Jan 31 + 3 months is May 1).
    """
    first = moment.replace(day=1) + relativedelta(months=months)
    return first + timedelta(days=moment.day - 1)


def expiring_soon(medicines, horizon_months: int = 3, today=None):
    """
    Medicines whose expiry (midnight of the expiry date) falls before
    now + horizon_months. Already expired items are included.

    today may be a datetime, or a date standing for any moment after
    midnight on that day, which makes the cutoff day itself inclusive.
    """
    now = datetime.now(timezone.utc) if today is None else today
    cutoff = add_months(now, horizon_months)
    if isinstance(cutoff, datetime):
        return [m for m in medicines
                if datetime.combine(m.expiry_date, time(), cutoff.tzinfo) < cutoff]
    return [m for m in medicines if m.expiry_date <= cutoff]


def expired(medicines, today=None):
    today = _today(today)
    return [m for m in medicines if m.expiry_date < today]


def today_revenue(sales, today=None):
    """Sum of sales whose ISO timestamp starts with today's date."""
    prefix = _today(today).isoformat()
    return round(sum(s.total_amount for s in sales if s.date.startswith(prefix)), 2)


def total_revenue(sales):
    return round(sum(s.total_amount for s in sales), 2)


def sales_history(sales):
    """All sales, most recent first."""
    # ISO timestamps sort chronologically; stable sort keeps insertion order on ties
    return sorted(reversed(list(sales)), key=lambda s: s.date, reverse=True)


def dashboard_summary(medicines, sales, today=None, low_stock_threshold=10, horizon_months=3):
    """Figures shown on the dashboard cards."""
    return {
        "total_items": len(medicines),
        "today_revenue": today_revenue(sales, today),
        "low_stock_count": len(low_stock(medicines, low_stock_threshold)),
        "expiring_count": len(expiring_soon(medicines, horizon_months, today)),
        "total_revenue": total_revenue(sales),
        "num_transactions": len(sales),
    }


def inventory_frame(medicines):
    """Medicines as a DataFrame with flat snake_case columns."""
    rows = [{
        "id": m.id,
        "name": m.name,
        "price": m.price,
        "quantity": m.quantity,
        "expiry_date": m.expiry_date.isoformat(),
        "category": m.category or "",
    } for m in medicines]
    return pd.DataFrame(rows, columns=INVENTORY_COLUMNS)


def sales_frame(sales):
    rows = [{
        "id": s.id,
        "date": s.date,
        "customer_name": s.customer_name,
        "num_items": sum(i.quantity for i in s.items),
        "total_amount": s.total_amount,
    } for s in sales_history(sales)]
    return pd.DataFrame(rows, columns=SALES_COLUMNS)


def _export(df, file_path, format, sheet_name):
    if format.lower() == 'excel':
        df.to_excel(file_path, index=False, sheet_name=sheet_name)
    else:  # Default to CSV
        df.to_csv(file_path, index=False)


def generate_sales_report(sales, file_path=None, format='csv'):
    """Sales table plus summary, optionally written to CSV or Excel."""
    if not sales:
        return None, "No sales data found."

    df = sales_frame(sales)
    days = df['date'].str[:10]

    summary = {
        'total_sales': round(float(df['total_amount'].sum()), 2),
        'average_sale': round(float(df['total_amount'].mean()), 2),
        'num_transactions': len(df),
        'start_date': days.min(),
        'end_date': days.max(),
    }

    if file_path:
        _export(df, file_path, format, 'Sales')

    return df, summary


def generate_inventory_report(medicines, file_path=None, format='csv', low_stock_threshold=10):
    """Inventory table plus summary, highlighting low stock items."""
    if not medicines:
        return None, "No inventory data found."

    df = inventory_frame(medicines)
    low = df[df['quantity'] <= low_stock_threshold]

    summary = {
        'total_items': len(df),
        'total_value': round(float((df['price'] * df['quantity']).sum()), 2),
        'low_stock_count': len(low),
        'low_stock_items': low.to_dict('records') if not low.empty else [],
    }

    if file_path:
        _export(df, file_path, format, 'Inventory')

    return df, summary
