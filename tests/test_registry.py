"""
Unit tests for the animal registry.
"""

import pytest

from bicho_rp.lottery.errors import RegistryInvariantViolation, UnknownAnimal
from bicho_rp.lottery.models import Animal
from bicho_rp.lottery.registry import ANIMALS, AnimalRegistry, validate_registry


class TestAnimalTable:
    """The built-in table of 25 animals."""

    def test_has_25_animals(self):
        assert len(ANIMALS) == 25
        assert [a.id for a in ANIMALS] == list(range(1, 26))

    def test_numbers_partition_1_to_100(self):
        numbers = [n for animal in ANIMALS for n in animal.numbers]
        assert len(numbers) == 100
        assert set(numbers) == set(range(1, 101))

    def test_known_blocks(self):
        registry = AnimalRegistry()
        assert registry.get(9).name == "Cobra"
        assert registry.get(9).numbers == (33, 34, 35, 36)
        assert registry.get(13).name == "Galo"
        assert 50 in registry.get(13).numbers
        assert registry.get(25).numbers == (97, 98, 99, 100)

    def test_every_multiplier_is_18(self):
        assert {a.multiplier for a in ANIMALS} == {18}


class TestLookups:

    def test_for_number(self, registry):
        assert registry.for_number(1).name == "Avestruz"
        assert registry.for_number(34).id == 9
        assert registry.for_number(100).name == "Vaca"

    def test_for_number_out_of_range(self, registry):
        with pytest.raises(UnknownAnimal):
            registry.for_number(101)

    def test_get_unknown(self, registry):
        assert registry.find(99) is None
        with pytest.raises(UnknownAnimal):
            registry.get(99)


class TestValidateRegistry:

    def _animal(self, animal_id, numbers, multiplier=18):
        return Animal(id=animal_id, name=f"A{animal_id}", numbers=tuple(numbers), multiplier=multiplier, icon="?")

    def test_accepts_builtin_table(self):
        validate_registry(ANIMALS)

    def test_rejects_gap(self):
        animals = list(ANIMALS[:-1])
        with pytest.raises(RegistryInvariantViolation):
            validate_registry(animals)

    def test_rejects_overlap(self):
        animals = list(ANIMALS[:-1]) + [self._animal(25, [96, 98, 99, 100])]
        with pytest.raises(RegistryInvariantViolation):
            validate_registry(animals)

    def test_rejects_duplicate_id(self):
        animals = list(ANIMALS[:-1]) + [self._animal(24, [97, 98, 99, 100])]
        with pytest.raises(RegistryInvariantViolation):
            validate_registry(animals)

    def test_rejects_wrong_block_size(self):
        animals = list(ANIMALS[:-1]) + [self._animal(25, [97, 98, 99])]
        with pytest.raises(RegistryInvariantViolation):
            validate_registry(animals)

    def test_rejects_non_positive_multiplier(self):
        animals = list(ANIMALS[:-1]) + [self._animal(25, [97, 98, 99, 100], multiplier=0)]
        with pytest.raises(RegistryInvariantViolation):
            validate_registry(animals)

    def test_registry_constructor_fails_fast(self):
        with pytest.raises(RegistryInvariantViolation):
            AnimalRegistry(ANIMALS[:10])
