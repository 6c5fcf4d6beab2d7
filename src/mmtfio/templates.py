from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .errors import ChargeParseError, IndexOutOfBoundsError, MissingFieldError
from .molecule_data import Atom

_CHARGE_RE = re.compile(r"[+-]?\d+")


def parse_charge(charge: str) -> int:
    """Parse a signed integer charge string such as '+2', '-1' or '0'."""
    text = charge.strip()
    if not _CHARGE_RE.fullmatch(text):
        raise ChargeParseError(f"Invalid charge string {charge!r}")
    return int(text)


def format_charge(formal_charge: int) -> str:
    """Positive charges get a leading '+', matching the PDB convention."""
    return f"+{formal_charge}" if formal_charge > 0 else str(formal_charge)


TemplateKey = tuple[str, tuple[str, ...]]


@dataclass(frozen=True)
class GroupTemplate:
    """Residue-type blueprint shared by every group with the same name and atom names."""

    name: str
    atom_names: tuple[str, ...]
    elements: tuple[str, ...]
    formal_charges: tuple[int, ...]
    bond_atoms: tuple[int, ...] = ()
    bond_orders: tuple[int, ...] = ()
    single_letter_code: str = ""
    chem_comp_type: str = ""

    def __post_init__(self):
        n = len(self.atom_names)
        if len(self.elements) != n or len(self.formal_charges) != n:
            raise ValueError(
                f"Group template {self.name}: {n} atom names, {len(self.elements)} elements, "
                f"{len(self.formal_charges)} formal charges"
            )

    @property
    def key(self) -> TemplateKey:
        return (self.name, self.atom_names)

    def __len__(self) -> int:
        return len(self.atom_names)

    @classmethod
    def from_atoms(cls, name: str, atoms: Sequence[Atom]) -> GroupTemplate:
        return cls(
            name=name,
            atom_names=tuple(a.name for a in atoms),
            elements=tuple(a.element for a in atoms),
            formal_charges=tuple(parse_charge(a.charge) for a in atoms),
        )

    @classmethod
    def from_record(cls, rec: dict[str, Any], index: int = 0) -> GroupTemplate:
        try:
            return cls(
                name=rec["groupName"],
                atom_names=tuple(rec["atomNameList"]),
                elements=tuple(rec["elementList"]),
                formal_charges=tuple(int(c) for c in rec["formalChargeList"]),
                bond_atoms=tuple(int(i) for i in rec.get("bondAtomList", ())),
                bond_orders=tuple(int(i) for i in rec.get("bondOrderList", ())),
                single_letter_code=rec.get("singleLetterCode", ""),
                chem_comp_type=rec.get("chemCompType", ""),
            )
        except KeyError as e:
            raise MissingFieldError(f"groupList[{index}].{e.args[0]}") from None
        except ValueError as e:
            raise MissingFieldError(f"groupList[{index}]", str(e)) from e

    def to_record(self) -> dict[str, Any]:
        return {
            "groupName": self.name,
            "atomNameList": list(self.atom_names),
            "elementList": list(self.elements),
            "formalChargeList": list(self.formal_charges),
            "bondAtomList": list(self.bond_atoms),
            "bondOrderList": list(self.bond_orders),
            "singleLetterCode": self.single_letter_code,
            "chemCompType": self.chem_comp_type,
        }


@dataclass
class GroupTemplateTable:
    """
    Deduplicated group templates, addressed by 0-based position.

    Lookup by (name, atom names) goes through a hash index, so resolving a
    residue is O(1) regardless of how many templates exist.
    """

    templates: list[GroupTemplate] = field(default_factory=list)
    _index: dict[TemplateKey, int] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for i, t in enumerate(self.templates):
            self._index.setdefault(t.key, i)

    def __len__(self) -> int:
        return len(self.templates)

    def __iter__(self) -> Iterator[GroupTemplate]:
        return iter(self.templates)

    def __getitem__(self, index: int) -> GroupTemplate:
        if not 0 <= index < len(self.templates):
            raise IndexOutOfBoundsError(
                f"group type index {index} outside group list of length {len(self.templates)}"
            )
        return self.templates[index]

    def find(self, name: str, atom_names: Sequence[str]) -> int:
        """Index of the template with this name and atom-name sequence, or -1."""
        return self._index.get((name, tuple(atom_names)), -1)

    def add(self, template: GroupTemplate) -> int:
        self.templates.append(template)
        index = len(self.templates) - 1
        self._index.setdefault(template.key, index)
        return index

    def resolve(self, name: str, atoms: Sequence[Atom]) -> int:
        """Index of the template matching these atoms, created if it does not exist yet."""
        index = self.find(name, [a.name for a in atoms])
        if index >= 0:
            return index
        return self.add(GroupTemplate.from_atoms(name, atoms))

    @classmethod
    def from_records(cls, records: Sequence[dict[str, Any]]) -> GroupTemplateTable:
        return cls([GroupTemplate.from_record(r, i) for i, r in enumerate(records)])

    def to_records(self) -> list[dict[str, Any]]:
        return [t.to_record() for t in self.templates]
