import io
from typing import List, Optional

import qrcode

from schemas import Table, TableLink


def generate_table_menu_url(restaurant_slug: str, table_number: str, base_url: str) -> str:
    # slug and number are trusted to be URL-safe
    return f"{base_url}/r/{restaurant_slug}/table/{table_number}"


def generate_table_link(table: Table, restaurant_slug: str, base_url: str) -> TableLink:
    return TableLink(
        table_id=table.id,
        table_number=table.table_number,
        display_name=table.display_name,
        menu_url=generate_table_menu_url(restaurant_slug, table.table_number, base_url),
    )


def generate_table_links(tables: List[Table], restaurant_slug: str, base_url: str) -> List[TableLink]:
    return [generate_table_link(t, restaurant_slug, base_url) for t in tables]


def table_qr_png(url: str, box_size: int = 10, border: int = 4, version: Optional[int] = None) -> bytes:
    """PNG bytes of a QR code pointing at ``url``."""
    qr = qrcode.QRCode(version=version, box_size=box_size, border=border)
    qr.add_data(url)
    qr.make(fit=True)

    buf = io.BytesIO()
    qr.make_image().save(buf, format="PNG")
    return buf.getvalue()
