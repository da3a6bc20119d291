"""Tests for edit-mode reconciliation (autolist/editor/reconcile.py).

Pure-function tests: build the lists directly, call ``reconcile`` and check
the proposed values.
"""

import pytest

from autolist.editor.generations import GenerationIndex
from autolist.editor.reconcile import LoadedLists, reconcile
from autolist.models.contracts import (
    BodyType,
    Brand,
    CarModel,
    City,
    Color,
    Generation,
    ListingDraft,
    PersistedListing,
)


def _full_lists(generations) -> LoadedLists:
    return LoadedLists(
        brands=[Brand(id=7, name="Toyota"), Brand(id=8, name="Honda")],
        models=[CarModel(id=42, name="Camry")],
        years=[2018, 2019],
        body_types=[BodyType(id=3, name="Sedan")],
        generations=GenerationIndex(generations),
        cities=[City(id=1, name="Ashgabat")],
        colors=[Color(id=5, name="White")],
    )


def _apply(draft: ListingDraft, values: dict) -> ListingDraft:
    return draft.model_copy(update=values)


def _settle(persisted, lists, draft, dirty=()):
    """Re-run until nothing changes, like the editor does."""
    for _ in range(20):
        result = reconcile(persisted, lists, draft, dirty)
        if not result.changed:
            return draft, result
        draft = _apply(draft, result.values)
    raise AssertionError("reconcile did not settle")


class TestXV70Scenario:
    def test_name_then_structure_resolves_generation_and_modification(self, persisted, generations):
        draft = ListingDraft.for_edit(persisted)
        draft, _ = _settle(persisted, _full_lists(generations), draft)

        assert draft.generation_id == 102
        assert draft.modification_id == 10
        assert draft.generation_name == "XV70"

    def test_all_other_fields_restored(self, persisted, generations):
        draft, _ = _settle(persisted, _full_lists(generations), ListingDraft.for_edit(persisted))
        assert draft.brand_id == 7
        assert draft.model_id == 42
        assert draft.wheel is True
        assert draft.year == 2019
        assert draft.body_type_id == 3
        assert draft.city_id == 1
        assert draft.color_id == 5


class TestResolutionOrder:
    def test_bare_id_present_in_list(self, persisted):
        result = reconcile(persisted, LoadedLists(brands=[Brand(id=7, name="x")]), ListingDraft())
        assert result.values == {"brand_id": 7}

    def test_stale_id_falls_back_to_name(self):
        persisted = PersistedListing.model_validate(
            {"id": 1, "brand": {"id": 99, "name": "Toyota"}}
        )
        lists = LoadedLists(brands=[Brand(id=7, name="Toyota")])
        result = reconcile(persisted, lists, ListingDraft())
        assert result.values == {"brand_id": 7}

    def test_no_match_leaves_field_unset(self):
        persisted = PersistedListing.model_validate({"id": 1, "brand": "Lada"})
        lists = LoadedLists(brands=[Brand(id=7, name="Toyota")])
        result = reconcile(persisted, lists, ListingDraft())
        assert result.values == {}
        assert result.ambiguous == set()

    def test_duplicate_names_are_ambiguous(self):
        persisted = PersistedListing.model_validate({"id": 1, "color": "White"})
        colors = [Color(id=5, name="White"), Color(id=6, name="White")]
        result = reconcile(persisted, LoadedLists(colors=colors), ListingDraft())
        assert result.values == {}
        assert result.ambiguous == {"color_id"}

    def test_unloaded_lists_are_skipped(self, persisted):
        result = reconcile(persisted, LoadedLists(), ListingDraft.for_edit(persisted))
        assert result.values == {}

    def test_year_must_be_in_list(self, persisted):
        draft = ListingDraft.for_edit(persisted)
        assert reconcile(persisted, LoadedLists(years=[2020]), draft).values == {}
        assert reconcile(persisted, LoadedLists(years=[2019]), draft).values == {"year": 2019}

    def test_steering_defaults_to_left_hand_once_model_known(self):
        persisted = PersistedListing.model_validate({"id": 1, "model": 42})
        draft = ListingDraft(wheel=None)
        result = reconcile(persisted, LoadedLists(models=[CarModel(id=42, name="Camry")]), draft)
        assert result.values == {"model_id": 42, "wheel": True}

    def test_right_hand_steering_restored(self):
        persisted = PersistedListing.model_validate({"id": 1, "model": 42, "wheel": False})
        draft = ListingDraft(wheel=None)
        result = reconcile(persisted, LoadedLists(models=[CarModel(id=42, name="Camry")]), draft)
        assert result.values["wheel"] is False


class TestGenerationAndModification:
    def test_generation_by_id_sets_id_and_name(self, generations):
        persisted = PersistedListing.model_validate({"id": 1, "generation": 101})
        lists = LoadedLists(generations=GenerationIndex(generations))
        result = reconcile(persisted, lists, ListingDraft())
        assert result.values == {"generation_id": 101, "generation_name": "XV70"}

    def test_single_member_group_by_name_sets_id(self):
        gens = [Generation.model_validate({"id": 100, "name": "XV50"})]
        persisted = PersistedListing.model_validate({"id": 1, "generation": "XV50"})
        lists = LoadedLists(generations=GenerationIndex(gens))
        result = reconcile(persisted, lists, ListingDraft())
        assert result.values == {"generation_id": 100, "generation_name": "XV50"}

    def test_modification_by_id_recovers_group_and_generation(self, generations):
        persisted = PersistedListing.model_validate({"id": 1, "modification": 9})
        lists = LoadedLists(generations=GenerationIndex(generations))
        result = reconcile(persisted, lists, ListingDraft())
        assert result.values == {
            "modification_id": 9,
            "generation_id": 101,
            "generation_name": "XV70",
        }

    def test_structural_match_needs_engine(self, generations):
        persisted = PersistedListing.model_validate(
            {"id": 1, "generation": "XV70", "modification": {"fuel_type": "Petrol"}}
        )
        lists = LoadedLists(generations=GenerationIndex(generations))
        result = reconcile(persisted, lists, ListingDraft())
        assert "modification_id" not in result.values

    def test_structural_ambiguity_is_not_guessed(self):
        mod = {
            "engine": "2.0L",
            "fuel_type": "Petrol",
            "transmission": "Automatic",
            "drivetrain": "FWD",
        }
        gens = [
            Generation.model_validate({"id": gen_id, "name": "XV70", "modifications": [m]})
            for gen_id, m in ((1, {"id": 9, **mod}), (2, {"id": 10, **mod}))
        ]
        persisted = PersistedListing.model_validate(
            {"id": 1, "generation": "XV70", "modification": dict(mod)}
        )
        lists = LoadedLists(generations=GenerationIndex(gens))
        result = reconcile(persisted, lists, ListingDraft())
        assert "modification_id" not in result.values
        assert "generation_id" not in result.values
        assert result.ambiguous == {"modification_id"}

    @pytest.mark.parametrize("drivetrain, expected", [("AWD", 10), ("FWD", 9)])
    def test_shared_name_resolved_by_structure(self, drivetrain, expected):
        base = {"name": "2.0", "engine": "2.0L", "fuel_type": "Petrol", "transmission": "Automatic"}
        gen = Generation.model_validate(
            {
                "id": 1,
                "name": "XV70",
                "modifications": [
                    {"id": 9, **base, "drivetrain": "FWD"},
                    {"id": 10, **base, "drivetrain": "AWD"},
                ],
            }
        )
        persisted = PersistedListing.model_validate(
            {"id": 1, "generation": "XV70", "modification": {**base, "drivetrain": drivetrain}}
        )
        lists = LoadedLists(generations=GenerationIndex([gen]))
        draft, result = _settle(persisted, lists, ListingDraft())
        assert draft.modification_id == expected
        assert result.ambiguous == set()

    def test_shared_name_without_shape_stays_ambiguous(self):
        gen = Generation.model_validate(
            {
                "id": 1,
                "name": "XV70",
                "modifications": [{"id": 9, "name": "2.0"}, {"id": 10, "name": "2.0"}],
            }
        )
        persisted = PersistedListing.model_validate(
            {"id": 1, "generation": "XV70", "modification": {"name": "2.0"}}
        )
        lists = LoadedLists(generations=GenerationIndex([gen]))
        result = reconcile(persisted, lists, ListingDraft())
        assert "modification_id" not in result.values
        assert result.ambiguous == {"modification_id"}

    def test_dirty_generation_scopes_modification_search(self, generations):
        persisted = PersistedListing.model_validate({"id": 1, "modification": 9})
        draft = ListingDraft(generation_name="XV70")
        lists = LoadedLists(generations=GenerationIndex(generations))
        result = reconcile(persisted, lists, draft, dirty={"generation_id"})
        assert result.values == {"modification_id": 9}


class TestProperties:
    def test_idempotent(self, persisted, generations):
        lists = _full_lists(generations)
        draft, _ = _settle(persisted, lists, ListingDraft.for_edit(persisted))
        assert reconcile(persisted, lists, draft).values == {}

    @pytest.mark.parametrize(
        "field, value",
        [("brand_id", 8), ("color_id", None), ("year", 2018), ("modification_id", None)],
    )
    def test_dirty_fields_never_overwritten(self, persisted, generations, field, value):
        draft = ListingDraft.for_edit(persisted).model_copy(update={field: value})
        settled, _ = _settle(persisted, _full_lists(generations), draft, dirty={field})
        assert getattr(settled, field) == value

    def test_set_fields_never_cleared(self, persisted):
        """Lists that no longer contain the value do not unset it."""
        draft = ListingDraft(brand_id=7, model_id=42, year=2019)
        lists = LoadedLists(brands=[], models=[], years=[])
        assert reconcile(persisted, lists, draft).values == {}

    def test_arrival_order_does_not_matter(self, persisted, generations):
        full = _full_lists(generations)
        forward = ListingDraft.for_edit(persisted)
        backward = ListingDraft.for_edit(persisted)
        steps = ["colors", "cities", "generations", "body_types", "years", "models", "brands"]

        loaded = LoadedLists()
        for name in reversed(steps):
            setattr(loaded, name, getattr(full, name))
            forward, _ = _settle(persisted, loaded, forward)

        loaded = LoadedLists()
        for name in steps:
            setattr(loaded, name, getattr(full, name))
            backward, _ = _settle(persisted, loaded, backward)

        assert forward.model_dump() == backward.model_dump()
        assert backward.modification_id == 10
