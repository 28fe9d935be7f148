"""
Identifier allocator — slugs, group ids and sequence numbers.
"""

from agentcanvas.services.identifiers import (
    assign_sequence_number,
    derive_id,
    ensure_group_id,
    existing_group_ids,
    slugify,
    unique_slug,
)


class TestSlugify:
    def test_collapses_punctuation_and_case(self):
        assert slugify("  New Section!! ") == "new-section"

    def test_none_is_empty(self):
        assert slugify(None) == ""

    def test_only_symbols_is_empty(self):
        assert slugify("!!!") == ""


class TestDeriveId:
    def test_first_id_is_plain_slug(self):
        assert derive_id("New Section!!", set()) == "new-section"

    def test_collision_gets_numeric_suffix(self):
        assert derive_id("New Section!!", {"new-section"}) == "new-section-2"

    def test_suffix_skips_taken_numbers(self):
        taken = {"ops", "ops-2", "ops-3"}
        assert derive_id("Ops", taken) == "ops-4"

    def test_existing_id_is_kept_and_trimmed(self):
        assert derive_id("Anything", {"keep-me"}, current_id="  keep-me ") == "keep-me"

    def test_blank_existing_id_is_rederived(self):
        assert derive_id("Ops", set(), current_id="   ") == "ops"

    def test_empty_name_uses_position(self):
        assert derive_id("", {"a", "b"}) == "section-3"
        assert derive_id(None, set(), sibling_count=4) == "section-5"

    def test_result_not_in_existing_ids(self):
        taken = set()
        for _ in range(5):
            new_id = derive_id("Discover", taken)
            assert new_id not in taken
            taken.add(new_id)
        assert taken == {"discover", "discover-2", "discover-3", "discover-4", "discover-5"}


class TestGroupIds:
    def test_existing_group_ids_skips_own_slot(self):
        groups = [{"groupId": "a"}, {"groupId": " b "}, {"groupName": "c"}]
        assert existing_group_ids(groups) == {"a", "b"}
        assert existing_group_ids(groups, exclude_index=0) == {"b"}

    def test_ensure_group_id_for_new_group(self):
        groups = [{"groupId": "ops", "groupName": "Ops"}]
        group = {"groupName": "Ops"}
        assert ensure_group_id(group, groups) == "ops-2"
        assert group["groupId"] == "ops-2"

    def test_ensure_group_id_for_edited_group_keeps_own_id_free(self):
        groups = [{"groupName": "Ops"}, {"groupId": "build"}]
        group = dict(groups[0])
        assert ensure_group_id(group, groups, index=0) == "ops"


class TestAssignSequenceNumber:
    def test_valid_current_is_kept(self):
        assert assign_sequence_number(7, is_new=True, collection_size=2) == 7

    def test_new_agent_is_one_past_end(self):
        assert assign_sequence_number(None, is_new=True, collection_size=3) == 4

    def test_new_group_counts_from_zero(self):
        assert assign_sequence_number(None, is_new=True, collection_size=3, start=0) == 3

    def test_edit_restores_prior_number(self):
        assert assign_sequence_number(
            None, is_new=False, collection_size=5, prior=2, position=4) == 2

    def test_edit_without_prior_uses_position(self):
        assert assign_sequence_number(
            None, is_new=False, collection_size=5, prior=None, position=4) == 5

    def test_invalid_current_is_replaced(self):
        assert assign_sequence_number(0, is_new=True, collection_size=0) == 1
        assert assign_sequence_number(True, is_new=True, collection_size=1) == 2
        assert assign_sequence_number("3", is_new=True, collection_size=1) == 2


class TestUniqueSlug:
    def test_slug_from_title(self):
        assert unique_slug("Sales Automation", set()) == "sales-automation"

    def test_collision_in_org(self):
        assert unique_slug("Sales", {"sales", "sales-2"}) == "sales-3"

    def test_fallback_for_symbol_title(self):
        assert unique_slug("???", set()) == "canvas"

    def test_truncated_to_max_length(self):
        slug = unique_slug("a" * 150, set(), max_length=100)
        assert len(slug) == 100
