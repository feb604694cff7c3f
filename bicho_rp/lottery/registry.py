"""
Animal Registry - the fixed table of 25 animals and their number blocks
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence, Tuple

from bicho_rp.lottery.errors import RegistryInvariantViolation, UnknownAnimal
from bicho_rp.lottery.models import Animal

MIN_NUMBER = 1
MAX_NUMBER = 100
NUMBERS_PER_ANIMAL = 4
DEFAULT_MULTIPLIER = 18

_ANIMAL_TABLE: Tuple[Tuple[str, str], ...] = (
    ("Avestruz", "https://images.unsplash.com/photo-1575550959106-5a7defe28b56?auto=format&fit=crop&q=80&w=200"),
    ("Águia", "🦅"),
    ("Burro", "https://images.unsplash.com/photo-1534445331316-01582e0e56e4?auto=format&fit=crop&q=80&w=200"),
    ("Borboleta", "🦋"),
    ("Cachorro", "🐕"),
    ("Cabra", "🐐"),
    ("Carneiro", "🐑"),
    ("Camelo", "🐪"),
    ("Cobra", "🐍"),
    ("Coelho", "🐇"),
    ("Cavalo", "🐎"),
    ("Elefante", "🐘"),
    ("Galo", "🐓"),
    ("Gato", "🐈"),
    ("Jacaré", "🐊"),
    ("Leão", "🦁"),
    ("Macaco", "🐒"),
    ("Porco", "🐷"),
    ("Pavão", "🦚"),
    ("Peru", "🦃"),
    ("Touro", "🐂"),
    ("Tigre", "🐅"),
    ("Urso", "🐻"),
    ("Veado", "🦌"),
    ("Vaca", "🐄"),
)

# Animal n owns the consecutive block 4n-3 .. 4n
ANIMALS: Tuple[Animal, ...] = tuple(
    Animal(
        id=index,
        name=name,
        numbers=tuple(range((index - 1) * NUMBERS_PER_ANIMAL + 1, index * NUMBERS_PER_ANIMAL + 1)),
        multiplier=DEFAULT_MULTIPLIER,
        icon=icon,
    )
    for index, (name, icon) in enumerate(_ANIMAL_TABLE, start=1)
)


def validate_registry(animals: Sequence[Animal]) -> None:
    """Raise RegistryInvariantViolation unless the animals partition 1..100 exactly."""
    ids = [animal.id for animal in animals]
    if len(ids) != len(set(ids)):
        raise RegistryInvariantViolation("Animal ids must be unique")

    seen: Dict[int, int] = {}
    for animal in animals:
        if len(animal.numbers) != NUMBERS_PER_ANIMAL:
            raise RegistryInvariantViolation(
                f"Animal {animal.id} ({animal.name}) must own exactly {NUMBERS_PER_ANIMAL} numbers"
            )
        if animal.multiplier <= 0:
            raise RegistryInvariantViolation(f"Animal {animal.id} ({animal.name}) has a non-positive multiplier")
        for number in animal.numbers:
            if not MIN_NUMBER <= number <= MAX_NUMBER:
                raise RegistryInvariantViolation(f"Number {number} of animal {animal.id} is out of range")
            if number in seen:
                raise RegistryInvariantViolation(
                    f"Number {number} is owned by both animal {seen[number]} and animal {animal.id}"
                )
            seen[number] = animal.id

    missing = sorted(set(range(MIN_NUMBER, MAX_NUMBER + 1)) - set(seen))
    if missing:
        raise RegistryInvariantViolation(f"Numbers not owned by any animal: {missing}")


class AnimalRegistry:
    """Read-only lookup over a validated animal table."""

    def __init__(self, animals: Iterable[Animal] = ANIMALS) -> None:
        self._animals: Tuple[Animal, ...] = tuple(animals)
        validate_registry(self._animals)
        self._by_id: Dict[int, Animal] = {animal.id: animal for animal in self._animals}
        self._by_number: Dict[int, Animal] = {
            number: animal for animal in self._animals for number in animal.numbers
        }

    def __iter__(self):
        return iter(self._animals)

    def __len__(self) -> int:
        return len(self._animals)

    @property
    def animals(self) -> Tuple[Animal, ...]:
        return self._animals

    def find(self, animal_id: int) -> Optional[Animal]:
        return self._by_id.get(animal_id)

    def get(self, animal_id: int) -> Animal:
        animal = self._by_id.get(animal_id)
        if animal is None:
            raise UnknownAnimal(f"Animal {animal_id} não existe.")
        return animal

    def for_number(self, number: int) -> Animal:
        """Return the animal owning ``number``.

        A miss means the table itself is broken, never a player mistake.
        """
        animal = self._by_number.get(number)
        if animal is None:
            raise UnknownAnimal(f"Number {number} maps to no animal")
        return animal

    def to_list(self) -> list:
        return [animal.to_dict() for animal in self._animals]
