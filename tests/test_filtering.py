"""
Filter & search, plus the trailing-edge search debouncer.
"""

import threading

from agentcanvas.services.filtering import (
    SearchDebouncer,
    apply_view,
    filter_items,
    search_items,
)

ITEMS = [
    {"name": "Lead Scorer", "objective": "Rank leads", "tools": ["rag"],
     "phase": "Discover", "tags": {"status": "active", "department": "sales"}},
    {"name": "Invoice Bot", "description": "Chases unpaid invoices", "tools": ["email"],
     "phase": "Build", "tags": {"status": "draft", "department": "finance"}},
    {"name": "Helper", "objective": "Answers tickets", "tools": ["web-search", "rag"],
     "phase": "Build", "tags": {}},
]


class TestFilterItems:
    def test_single_dimension(self):
        result = filter_items([{"tags": {"status": "active"}}, {"tags": {"status": "draft"}}],
                              {"status": ["active"]})
        assert result == [{"tags": {"status": "active"}}]

    def test_empty_filters_return_everything(self):
        assert filter_items(ITEMS, {}) == ITEMS
        assert filter_items(ITEMS, {"status": []}) == ITEMS

    def test_dimensions_are_conjunctive(self):
        result = filter_items(ITEMS, {"status": ["active", "draft"], "department": ["finance"]})
        assert [i["name"] for i in result] == ["Invoice Bot"]

    def test_item_without_value_is_excluded(self):
        result = filter_items(ITEMS, {"status": ["active", "draft", "unassigned"]})
        assert "Helper" not in [i["name"] for i in result]

    def test_list_dimension_matches_any_element(self):
        result = filter_items(ITEMS, {"tool": ["rag"]})
        assert [i["name"] for i in result] == ["Lead Scorer", "Helper"]

    def test_adding_a_filter_never_grows_the_result(self):
        wide = filter_items(ITEMS, {"phase": ["Build"]})
        narrow = filter_items(ITEMS, {"phase": ["Build"], "tool": ["email"]})
        assert len(narrow) <= len(wide)
        assert all(i in wide for i in narrow)

    def test_input_not_mutated(self):
        before = [dict(i) for i in ITEMS]
        filter_items(ITEMS, {"status": ["active"]})
        assert ITEMS == before


class TestSearchItems:
    def test_case_insensitive_over_text_fields(self):
        assert [i["name"] for i in search_items(ITEMS, "UNPAID")] == ["Invoice Bot"]

    def test_matches_tools(self):
        assert [i["name"] for i in search_items(ITEMS, "web-search")] == ["Helper"]

    def test_blank_query_is_identity(self):
        assert search_items(ITEMS, "   ") == ITEMS

    def test_apply_view_composes(self):
        result = apply_view(ITEMS, {"phase": ["Build"]}, "tickets")
        assert [i["name"] for i in result] == ["Helper"]


class TestSearchDebouncer:
    def test_flush_delivers_only_last_query(self):
        seen = []
        debouncer = SearchDebouncer(seen.append, delay=60)
        debouncer.submit("s")
        debouncer.submit("sa")
        debouncer.submit("sales")
        assert debouncer.pending == "sales"
        assert debouncer.flush() is True
        assert seen == ["sales"]
        assert debouncer.flush() is False

    def test_cancel_drops_pending(self):
        seen = []
        debouncer = SearchDebouncer(seen.append, delay=60)
        debouncer.submit("sales")
        debouncer.cancel()
        assert debouncer.pending is None
        assert debouncer.flush() is False
        assert seen == []

    def test_timer_fires_last_query(self):
        seen = []
        fired = threading.Event()

        def callback(query):
            seen.append(query)
            fired.set()

        debouncer = SearchDebouncer(callback, delay=0.2)
        debouncer.submit("a")
        debouncer.submit("ab")
        assert fired.wait(timeout=2)
        assert seen == ["ab"]
