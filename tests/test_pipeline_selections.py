"""Tests for adversary and item selection."""

from dagger_gen.pipeline import (
    AdversaryFilters,
    ContentState,
    ItemFilters,
    clear_adversaries,
    confirm_adversary,
    confirm_all_adversaries,
    confirm_all_items,
    confirm_item,
    deselect_adversary,
    deselect_item,
    filtered_adversaries,
    filtered_items,
    select_adversary,
    select_item,
    set_adversary_filters,
    set_available_adversaries,
    set_available_items,
    set_item_filters,
    update_adversary_quantity,
    update_item_quantity,
)

from factories import adversary, item


# ---------------------------------------------------------------------------
# Adversaries
# ---------------------------------------------------------------------------

class TestAdversaries:
    def test_select(self) -> None:
        c = select_adversary(ContentState(), adversary(), 2)
        assert len(c.selected_adversaries) == 1
        assert c.selected_adversaries[0].quantity == 2

    def test_select_again_adds_quantity(self) -> None:
        c = select_adversary(select_adversary(ContentState(), adversary(), 2), adversary(), 3)
        assert len(c.selected_adversaries) == 1
        assert c.selected_adversaries[0].quantity == 5

    def test_quantity_clamped(self) -> None:
        c = select_adversary(ContentState(), adversary(), 8)
        c = select_adversary(c, adversary(), 8)
        assert c.selected_adversaries[0].quantity == 10
        assert update_adversary_quantity(c, "Bramble Wolf", 0).selected_adversaries[0].quantity == 1
        assert update_adversary_quantity(c, "Bramble Wolf", 99).selected_adversaries[0].quantity == 10

    def test_confirm_requires_selection(self) -> None:
        c = ContentState()
        assert confirm_adversary(c, "Bramble Wolf") is c

    def test_deselect_unconfirms(self) -> None:
        c = confirm_adversary(select_adversary(ContentState(), adversary()), "Bramble Wolf")
        assert "Bramble Wolf" in c.confirmed_adversary_ids
        c = deselect_adversary(c, "Bramble Wolf")
        assert c.selected_adversaries == []
        assert "Bramble Wolf" not in c.confirmed_adversary_ids

    def test_confirm_all(self) -> None:
        c = select_adversary(select_adversary(ContentState(), adversary("A")), adversary("B"))
        c = confirm_all_adversaries(c)
        assert list(c.confirmed_adversary_ids) == ["A", "B"]

    def test_clear(self) -> None:
        c = confirm_all_adversaries(select_adversary(ContentState(), adversary()))
        c = clear_adversaries(c)
        assert c.selected_adversaries == []
        assert not c.confirmed_adversary_ids

    def test_filters(self) -> None:
        c = set_available_adversaries(ContentState(), [
            adversary("Bramble Wolf", 1, "Bruiser"),
            adversary("Thorn Witch", 2, "Leader"),
            adversary("Wolf Pack", 2, "Horde"),
        ])
        c = set_adversary_filters(c, AdversaryFilters(search="wolf"))
        assert [a.name for a in filtered_adversaries(c)] == ["Bramble Wolf", "Wolf Pack"]
        c = set_adversary_filters(c, AdversaryFilters(tier=2, search="wolf"))
        assert [a.name for a in filtered_adversaries(c)] == ["Wolf Pack"]
        c = set_adversary_filters(c, AdversaryFilters(type="Leader"))
        assert [a.name for a in filtered_adversaries(c)] == ["Thorn Witch"]


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

class TestItems:
    def test_same_name_different_category_are_distinct(self) -> None:
        c = select_item(ContentState(), item("Dagger", "weapon"))
        c = select_item(c, item("Dagger", "item"))
        assert len(c.selected_items) == 2
        c = confirm_item(c, "weapon", "Dagger")
        assert list(c.confirmed_item_ids) == ["weapon:Dagger"]

    def test_select_again_adds_quantity(self) -> None:
        c = select_item(select_item(ContentState(), item(), 4), item(), 9)
        assert c.selected_items[0].quantity == 10

    def test_update_quantity(self) -> None:
        c = update_item_quantity(select_item(ContentState(), item()), "item", "Rope", 3)
        assert c.selected_items[0].quantity == 3

    def test_deselect_unconfirms(self) -> None:
        c = confirm_all_items(select_item(ContentState(), item()))
        c = deselect_item(c, "item", "Rope")
        assert c.selected_items == []
        assert not c.confirmed_item_ids

    def test_confirm_unknown_is_noop(self) -> None:
        c = select_item(ContentState(), item())
        assert confirm_item(c, "armor", "Rope") is c

    def test_filters(self) -> None:
        c = set_available_items(ContentState(), [
            item("Rope", "item", 1),
            item("Longsword", "weapon", 1),
            item("Greatsword", "weapon", 2),
        ])
        c = set_item_filters(c, ItemFilters(category="weapon"))
        assert [i.data.name for i in filtered_items(c)] == ["Longsword", "Greatsword"]
        c = set_item_filters(c, ItemFilters(category="weapon", tier=2))
        assert [i.data.name for i in filtered_items(c)] == ["Greatsword"]
        c = set_item_filters(c, ItemFilters(search="ROPE"))
        assert [i.data.name for i in filtered_items(c)] == ["Rope"]
