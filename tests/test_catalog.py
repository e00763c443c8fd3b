"""
Тесты постраничных запросов, витрины и кэша запросов.
"""

import pytest
from sqlalchemy.exc import OperationalError

from storefront.db.models import Request
from storefront.schemas.pagination import clamp_page, compute_total_pages
from storefront.services import catalog_service
from storefront.services.query_cache import VIEW_DEPENDENCIES, QueryCache
from storefront.services.storefront_service import StorefrontState, build_storefront_view, products_page


@pytest.fixture
def catalog(make_category, make_product):
    """25 товаров в керамике и 3 в стекле."""
    ceramics = make_category("Керамика", "keramika")
    glass = make_category("Стекло", "steklo")
    for i in range(25):
        make_product(f"Тарелка {i}", category_id=ceramics.id, price=10 + i)
    for i in range(3):
        make_product(f"Бокал {i}", category_id=glass.id)
    return ceramics, glass


class TestPagination:
    @pytest.mark.parametrize("total, size, pages", [(0, 20, 1), (1, 20, 1), (20, 20, 1), (21, 20, 2), (25, 8, 4)])
    def test_total_pages(self, total, size, pages):
        assert compute_total_pages(total, size) == pages

    def test_clamp_page(self):
        assert clamp_page(0, 3) == 1
        assert clamp_page(5, 3) == 3
        assert clamp_page(2, 0) == 1

    def test_clamp_paging(self):
        assert catalog_service.clamp_paging(0, 0) == (1, 1)
        assert catalog_service.clamp_paging(2.7, 20.9) == (2, 20)


class TestProductsPage:
    def test_filter_by_slug(self, db, catalog):
        page = catalog_service.fetch_products_page(db, page=1, page_size=20, category_slug="keramika")
        assert page.total == 25
        assert page.total_pages == 2
        assert len(page.items) == 20

    def test_newest_first(self, db, catalog):
        page = catalog_service.fetch_products_page(db, page=1, page_size=5, category_slug="steklo")
        assert [p.name for p in page.items] == ["Бокал 2", "Бокал 1", "Бокал 0"]

    def test_unknown_slug_gives_empty_page(self, db, catalog):
        page = catalog_service.fetch_products_page(db, page=3, page_size=20, category_slug="missing")
        assert page.items == []
        assert page.total == 0
        assert page.total_pages == 1

    def test_page_beyond_end_is_clamped(self, db, catalog):
        def fetch(page):
            return catalog_service.fetch_products_page(db, page=page, page_size=20, category_slug="keramika")

        page = catalog_service.fetch_clamped(fetch, 3)
        assert page.page == 2
        assert len(page.items) == 5

    def test_empty_table(self, db):
        page = catalog_service.fetch_products_page(db)
        assert page.total == 0
        assert page.total_pages == 1

    def test_categories_with_products(self, db, catalog, make_category):
        empty = make_category("Пусто", "pusto")
        categories = catalog_service.list_categories(db)
        presence = catalog_service.categories_with_products(db, categories)
        assert presence[empty.id] is False
        assert presence[catalog[0].id] is True


class TestRequestsPage:
    def test_products_map_contains_linked_products(self, db, make_product):
        product = make_product("Ваза", price=120)
        db.add_all(
            [
                Request(client_phone="+7999", product_id=product.id),
                Request(client_phone="+7888"),
            ]
        )
        db.commit()

        page = catalog_service.fetch_requests_page(db, page=1, page_size=10)
        assert page.total == 2
        assert set(page.products_map) == {product.id}
        assert page.products_map[product.id].name == "Ваза"

    def test_sort_ascending(self, db):
        db.add_all([Request(client_phone=f"+7{i}0000") for i in range(3)])
        db.commit()
        page = catalog_service.fetch_requests_page(db, sort="asc")
        assert [r.id for r in page.items] == sorted(r.id for r in page.items)


class TestStorefront:
    def test_preview_and_catalog_are_independent(self, db, cache, catalog):
        view = build_storefront_view(db, cache, category_slug="keramika", catalog_page=2)
        assert view.preview.page == 1
        assert len(view.preview.items) == 8
        assert view.catalog.page == 2
        assert len(view.catalog.items) == 5

    def test_all_means_no_filter(self, db, cache, catalog):
        view = build_storefront_view(db, cache, category_slug="all")
        assert view.category is None
        assert view.catalog.total == 28

    def test_catalog_page_is_clamped(self, db, cache, catalog):
        view = build_storefront_view(db, cache, category_slug="keramika", catalog_page=9)
        assert view.catalog.page == 2

    def test_changing_filter_resets_page(self):
        state = StorefrontState(category="keramika", catalog_page=3)
        assert state.select_category("keramika").catalog_page == 3
        assert state.select_category("steklo").catalog_page == 1
        assert state.go_to_page(0).catalog_page == 1


class TestQueryCache:
    def test_hit_within_ttl(self):
        cache = QueryCache(ttl=10)
        calls = []
        loader = lambda: calls.append(1) or len(calls)
        assert cache.fetch(("products", 1, 20), loader) == 1
        assert cache.fetch(("products", 1, 20), loader) == 1
        assert cache.fetch(("products", 2, 20), loader) == 2

    def test_expired_entry_is_reloaded(self):
        now = [0.0]
        cache = QueryCache(ttl=10, clock=lambda: now[0])
        cache.fetch(("categories",), lambda: "old")
        now[0] = 11.0
        assert cache.fetch(("categories",), lambda: "new") == "new"

    def test_failure_is_recorded_not_cached(self):
        now = [5.0]
        cache = QueryCache(ttl=10, clock=lambda: now[0])

        def failing():
            raise OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(OperationalError):
            cache.fetch(("admin_products", 1), failing)
        state = cache.state(("admin_products", 1))
        assert state.error_updated_at == 5.0
        assert not state.has_data
        assert cache.fetch(("admin_products", 1), lambda: "ok") == "ok"
        assert cache.state(("admin_products", 1)).error is None

    def test_invalidate_entity_drops_dependent_views_only(self):
        cache = QueryCache(ttl=10)
        cache.fetch(("products", 1, 20), lambda: "p")
        cache.fetch(("admin_requests", 1, 20, "desc"), lambda: "r")
        cache.fetch(("categories",), lambda: "c")

        views = cache.invalidate_entity("request")
        assert views == VIEW_DEPENDENCIES["request"]
        assert cache.peek(("admin_requests", 1, 20, "desc")) is None
        assert cache.peek(("products", 1, 20)) == "p"

        cache.invalidate_entity("category")
        assert cache.peek(("products", 1, 20)) is None
        assert cache.peek(("categories",)) is None

    def test_cached_lists_view_results(self):
        cache = QueryCache(ttl=10)
        cache.fetch(("admin_products", 1), lambda: "a")
        cache.fetch(("admin_products", 2), lambda: "b")
        cache.fetch(("products", 1), lambda: "c")
        assert sorted(data for _, data in cache.cached("admin_products")) == ["a", "b"]

    def test_result_loaded_before_invalidation_is_not_cached(self, db, make_product):
        """Товар добавлен, пока читалась страница: старая страница не остается в кэше."""
        cache = QueryCache(ttl=300)
        make_product("Old")
        key = ("products", 1, 20)

        def loader_racing_with_save():
            page = catalog_service.fetch_products_page(db, page=1, page_size=20)
            make_product("New")
            cache.invalidate_entity("product")
            return page

        before = cache.fetch(key, loader_racing_with_save)
        assert [p.name for p in before.items] == ["Old"]
        assert cache.peek(key) is None

        after = cache.fetch(key, lambda: catalog_service.fetch_products_page(db, page=1, page_size=20))
        assert after.total == 2

    def test_clear_during_load_skips_store(self):
        cache = QueryCache(ttl=10)

        def loader():
            cache.clear()
            return "stale"

        assert cache.fetch(("categories",), loader) == "stale"
        assert cache.peek(("categories",)) is None

    def test_expired_entries_are_pruned_on_write(self):
        now = [0.0]
        cache = QueryCache(ttl=10, clock=lambda: now[0])
        cache.fetch(("products", 1, 20), lambda: "old")
        now[0] = 11.0
        cache.fetch(("categories",), lambda: "c")
        assert cache.state(("products", 1, 20)) is None
        assert len(cache) == 1

    def test_least_recently_read_key_is_evicted(self):
        cache = QueryCache(ttl=10, max_entries=2)
        cache.fetch(("products", 1, 20), lambda: "a")
        cache.fetch(("products", 2, 20), lambda: "b")
        cache.fetch(("products", 1, 20), lambda: "unused")
        cache.fetch(("products", 3, 20), lambda: "c")

        assert cache.peek(("products", 1, 20)) == "a"
        assert cache.peek(("products", 2, 20)) is None
        assert len(cache) == 2

    def test_unknown_slugs_stay_within_limit(self, db):
        cache = QueryCache(ttl=300, max_entries=50)
        for i in range(500):
            products_page(db, cache, f"nope-{i}", 1, 20)
        assert len(cache) == 50
