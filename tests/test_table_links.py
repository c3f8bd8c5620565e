from schemas import Table
from table_links import generate_table_link, generate_table_links, generate_table_menu_url, table_qr_png


def test_menu_url():
    assert (
        generate_table_menu_url("la-maison", "7", "https://example.com")
        == "https://example.com/r/la-maison/table/7"
    )


def test_links_for_tables():
    tables = [
        Table(id="t1", restaurant_id="r", table_number="1", display_name="Window"),
        Table(id="t2", restaurant_id="r", table_number="2"),
    ]
    links = generate_table_links(tables, "cafe", "http://localhost:5000")
    assert [l.menu_url for l in links] == [
        "http://localhost:5000/r/cafe/table/1",
        "http://localhost:5000/r/cafe/table/2",
    ]
    assert links[0].display_name == "Window"
    assert links[0].to_json()["tableId"] == "t1"


def test_qr_png():
    link = generate_table_link(Table(restaurant_id="r", table_number="4"), "cafe", "https://example.com")
    png = table_qr_png(link.menu_url)
    assert png.startswith(b"\x89PNG")
