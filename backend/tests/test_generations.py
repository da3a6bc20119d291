"""Tests for generation grouping and modification resolution."""

import pytest

from autolist.editor.generations import (
    GenerationIndex,
    find_collisions,
    group_generations,
    shape_of,
)
from autolist.models.contracts import Generation


def _gen(gen_id, name, *mods):
    return Generation.model_validate({"id": gen_id, "name": name, "modifications": list(mods)})


def _mod(mod_id, engine="2.0L", fuel="Petrol", transmission="Automatic", drivetrain="FWD"):
    return {
        "id": mod_id,
        "engine": engine,
        "fuel_type": fuel,
        "transmission": transmission,
        "drivetrain": drivetrain,
    }


class TestGroupGenerations:
    def test_same_name_records_merge_into_one_group(self, generations):
        groups = group_generations(generations)
        assert len(groups) == 1
        group = groups[0]
        assert group.display_name == "XV70"
        assert group.member_ids == {101, 102}

    def test_modifications_carry_source_generation(self, generations):
        group = group_generations(generations)[0]
        sources = {m.id: m.source_generation_id for m in group.modifications}
        assert sources == {9: 101, 10: 102}

    def test_first_seen_order(self):
        groups = group_generations(
            [_gen(1, "XV50"), _gen(2, "XV70"), _gen(3, "XV50")]
        )
        assert [g.display_name for g in groups] == ["XV50", "XV70"]
        assert groups[0].member_ids == {1, 3}

    def test_record_without_id_falls_back_to_modification_back_reference(self):
        gen = Generation.model_validate(
            {"name": "XV40", "modifications": [{"id": 5, "generation_id": 77}]}
        )
        group = group_generations([gen])[0]
        assert group.member_ids == set()
        assert group.modifications[0].source_generation_id == 77

    def test_image_taken_from_first_member_with_one(self):
        gens = [
            Generation.model_validate({"id": 1, "name": "A"}),
            Generation.model_validate({"id": 2, "name": "A", "image": "/images/a.png"}),
        ]
        assert group_generations(gens)[0].image == "/images/a.png"


class TestSelectModification:
    def test_picks_concrete_generation_from_modification(self, generations):
        index = GenerationIndex(generations)
        selection = index.select_modification(10, "XV70")
        assert selection.modification_id == 10
        assert selection.generation_id == 102

    @pytest.mark.parametrize("mod_id", [9, 10])
    def test_round_trip_back_to_display_name(self, generations, mod_id):
        """The resolved generation id belongs to the group the user saw."""
        index = GenerationIndex(generations)
        group = index.group("XV70")
        selection = index.select_modification(mod_id, "XV70")
        assert selection.generation_id in group.member_ids
        assert index.group_for_generation(selection.generation_id).display_name == "XV70"

    def test_deferred_without_generation_data(self):
        assert GenerationIndex([]).select_modification(10) is None

    def test_deferred_for_unknown_group(self, generations):
        assert GenerationIndex(generations).select_modification(10, "XV80") is None

    def test_unknown_modification_raises(self, generations):
        with pytest.raises(ValueError):
            GenerationIndex(generations).select_modification(999, "XV70")

    def test_missing_source_generation_keeps_selection(self):
        gen = Generation.model_validate({"name": "XV40", "modifications": [{"id": 5}]})
        selection = GenerationIndex([gen]).select_modification(5, "XV40")
        assert selection.modification_id == 5
        assert selection.generation_id is None


class TestCollisions:
    def test_distinct_shapes_do_not_collide(self, generations):
        assert GenerationIndex(generations).collisions == []

    def test_identical_shapes_across_records_are_flagged(self):
        groups = group_generations([_gen(1, "XV70", _mod(9)), _gen(2, "XV70", _mod(10))])
        collisions = find_collisions(groups)
        assert len(collisions) == 1
        assert collisions[0].generation_ids == {1, 2}
        assert collisions[0].modification_ids == (9, 10)

    def test_collisions_are_not_merged(self):
        index = GenerationIndex([_gen(1, "XV70", _mod(9)), _gen(2, "XV70", _mod(10))])
        assert [m.id for m in index.modifications("XV70")] == [9, 10]
        assert index.select_modification(10, "XV70").generation_id == 2

    def test_shape_comparison_ignores_case_and_whitespace(self):
        index = GenerationIndex([_gen(1, "A", _mod(1, engine=" 2.0l "))])
        assert shape_of(index.modifications()[0]) == ("2.0l", "petrol", "automatic", "fwd")
