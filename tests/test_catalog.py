from ecoquote.logic.catalog import ALL, DEFAULT_PRICE_CEILING, CatalogView, filter_catalog, price_ceiling

from conftest import make_product


def _catalog():
    return [
        make_product(id="a", brand="Daikin", type="Aire Acondicionado", pricing=[{"id": "o", "price": 900}]),
        make_product(id="b", brand="Mitsubishi", type="Aerotermia", pricing=[{"id": "o", "price": 4200}]),
        make_product(id="c", brand="Daikin", type="Aerotermia", pricing=[{"id": "o", "price": 2500}]),
    ]


def test_filter_is_idempotent():
    products = _catalog()
    once = filter_catalog(products, "Aerotermia", ALL, 3000)
    twice = filter_catalog(once, "Aerotermia", ALL, 3000)
    assert [p.id for p in once] == [p.id for p in twice] == ["c"]


def test_filter_keeps_input_order():
    assert [p.id for p in filter_catalog(_catalog(), ALL, "Daikin")] == ["a", "c"]


def test_ceiling_rounds_up_and_adds_buffer():
    assert price_ceiling(_catalog()) == 4200 + 500


def test_empty_catalog_ceiling():
    assert price_ceiling([]) == DEFAULT_PRICE_CEILING


def test_view_derives_brands_and_types():
    view = CatalogView.load(_catalog())
    assert view.brands == ["Daikin", "Mitsubishi"]
    assert view.types == ["Aire Acondicionado", "Aerotermia"]
    assert len(view.filter()) == 3
    assert [p.id for p in view.filter(ceiling=1000)] == ["a"]
