from __future__ import annotations

import gzip
import io
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import mdtraj as md
import numpy as np
from openmm import Vec3, unit
from openmm.app import Topology, element

FileLike = Union[str, Path, io.BytesIO, io.StringIO]

logger = logging.getLogger(__name__)

# --- Data containers ---------------------------------------------------------


@dataclass(frozen=True)
class AtomRecord:
    """
    Flat description of one atom, the unit in which atoms enter the hierarchy.

    Readers (MMTF decoder, PDB reader) produce these; the builder turns them into
    Model/Chain/Residue/Atom objects.
    """

    het_atom: bool
    serial: int
    atom_name: str
    alt_loc_id: str  # " " when absent
    res_name: str
    chain_id: str
    res_number: int
    ins_code: str  # " " when absent
    coords: tuple[float, float, float]
    occupancy: float
    temp_factor: float
    element: str
    charge: str  # "0", "+2", "-1"


@dataclass(frozen=True)
class Atom:
    serial: int
    name: str  # e.g. "CA"
    alt_loc_id: str  # " " when the atom has a single location
    x: float
    y: float
    z: float
    occupancy: float
    temp_factor: float
    element: str
    charge: str
    resname: str
    chain: str
    resnum: int
    ins_code: str
    het: bool

    @classmethod
    def from_record(cls, rec: AtomRecord) -> Atom:
        x, y, z = rec.coords
        return cls(
            serial=int(rec.serial),
            name=rec.atom_name,
            alt_loc_id=rec.alt_loc_id,
            x=float(x),
            y=float(y),
            z=float(z),
            occupancy=float(rec.occupancy),
            temp_factor=float(rec.temp_factor),
            element=rec.element,
            charge=rec.charge,
            resname=rec.res_name,
            chain=rec.chain_id,
            resnum=int(rec.res_number),
            ins_code=rec.ins_code,
            het=bool(rec.het_atom),
        )

    @property
    def coords(self) -> np.ndarray:
        return np.array((self.x, self.y, self.z), dtype=float)

    def __repr__(self) -> str:
        alt = self.alt_loc_id.strip()
        tag = f"{self.name}:{alt}" if alt else self.name
        return f"<atom {self.serial} {tag} {self.resname} {self.resnum} {self.chain}>"


@dataclass
class DisorderedAtom:
    """Alternate-location copies of one atom, keyed by alt-location code."""

    alt_locs: dict[str, Atom] = field(default_factory=dict)
    default_alt_loc: str = ""

    def add(self, atom: Atom) -> None:
        self.alt_locs[atom.alt_loc_id] = atom
        current = self.alt_locs.get(self.default_alt_loc)
        # highest occupancy wins, ties keep the earlier copy
        if current is None or atom.occupancy > current.occupancy:
            self.default_alt_loc = atom.alt_loc_id

    @property
    def default(self) -> Atom:
        return self.alt_locs[self.default_alt_loc]

    @property
    def name(self) -> str:
        return self.default.name

    @property
    def serial(self) -> int:
        return self.default.serial

    def atoms(self) -> list[Atom]:
        """Copies in the order they were added."""
        return list(self.alt_locs.values())

    def __repr__(self) -> str:
        return f"<disordered atom {self.name} altlocs {''.join(sorted(self.alt_locs))}>"


AnyAtom = Union[Atom, DisorderedAtom]


@dataclass
class Residue:
    name: str
    number: int
    ins_code: str = " "
    het: bool = False
    atoms: dict[str, AnyAtom] = field(default_factory=dict)  # atom name -> atom

    def __getitem__(self, atom_name: str) -> AnyAtom:
        return self.atoms[atom_name]

    def __len__(self) -> int:
        return len(self.atoms)

    def __repr__(self) -> str:
        return f"<residue {self.resid} {self.name} ({len(self.atoms)} atoms)>"

    @property
    def resid(self) -> str:
        """Residue id as used in PDB-style listings, e.g. '10', '10A', 'H_301'."""
        rid = f"{self.number}{self.ins_code.strip()}"
        return f"H_{rid}" if self.het else rid

    def atom_names(self) -> list[str]:
        return list(self.atoms)

    def one_letter_code(self) -> str:
        return _THREE_TO_ONE.get(self.name.upper(), "X")

    def _add_atom(self, atom: Atom, *, check: bool = False) -> None:
        existing = self.atoms.get(atom.name)
        if existing is None:
            self.atoms[atom.name] = atom
            return
        if isinstance(existing, DisorderedAtom):
            if check and atom.alt_loc_id in existing.alt_locs:
                raise ValueError(f"Duplicate atom {atom.name}:{atom.alt_loc_id!r} in {self!r}")
            existing.add(atom)
            return
        if existing.alt_loc_id == atom.alt_loc_id:
            if check:
                raise ValueError(f"Duplicate atom {atom.name}:{atom.alt_loc_id!r} in {self!r}")
            self.atoms[atom.name] = atom
            return
        dis = DisorderedAtom()
        dis.add(existing)
        dis.add(atom)
        self.atoms[atom.name] = dis

    def _sort_atoms(self) -> None:
        self.atoms = dict(sorted(self.atoms.items(), key=lambda kv: kv[1].serial))


@dataclass
class DisorderedResidue:
    """Residues with different names sharing one position in a chain."""

    names: dict[str, Residue] = field(default_factory=dict)
    default_name: str = ""

    def add(self, res: Residue) -> None:
        self.names[res.name] = res
        if not self.default_name:
            self.default_name = res.name

    @property
    def default(self) -> Residue:
        return self.names[self.default_name]

    @property
    def name(self) -> str:
        return self.default_name

    @property
    def number(self) -> int:
        return self.default.number

    @property
    def ins_code(self) -> str:
        return self.default.ins_code

    @property
    def het(self) -> bool:
        return self.default.het

    def one_letter_code(self) -> str:
        return self.default.one_letter_code()

    def __repr__(self) -> str:
        return f"<disordered residue {self.default.resid} {'/'.join(self.names)}>"


AnyResidue = Union[Residue, DisorderedResidue]
ResidueKey = tuple[bool, int, str]  # (het, number, ins_code)


@dataclass
class Chain:
    chain_id: str
    residues: dict[ResidueKey, AnyResidue] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.residues)

    def __iter__(self) -> Iterator[AnyResidue]:
        return iter(self.residues.values())

    def __repr__(self) -> str:
        return f"<chain {self.chain_id} ({len(self.residues)} residues)>"

    def residue(self, number: int, ins_code: str = " ", het: bool = False) -> AnyResidue:
        return self.residues[(het, number, ins_code)]


@dataclass
class Model:
    model_id: int
    chain: dict[str, Chain] = field(default_factory=dict)  # chain id -> Chain
    residues: list[AnyResidue] = field(default_factory=list)
    atoms: list[Atom] = field(default_factory=list)  # default copies, in chain order

    def __getitem__(self, chain_id: str) -> Chain:
        return self.chain[chain_id]

    def chains(self) -> Iterator[Chain]:
        return iter(self.chain.values())

    def iter_residues(self) -> Iterator[AnyResidue]:
        for c in self.chain.values():
            yield from c.residues.values()

    def iter_atoms(self) -> Iterator[Atom]:
        return iter(self.atoms)

    def __repr__(self) -> str:
        return f"<{self.nchains()} chains, {self.nresidues()} residues, {self.natoms()} atoms>"

    __str__ = __repr__

    def nchains(self):
        return len(self.chain)

    def nresidues(self):
        return sum(len(c.residues) for c in self.chain.values())

    def natoms(self):
        return len(self.atoms)

    def _fixlists(self, remove_disorder: bool = False) -> None:
        """Restore ordering and flattened caches after unchecked insertion."""
        for ch in self.chain.values():
            if remove_disorder:
                ch.residues = {k: _collapse_residue(r) for k, r in ch.residues.items()}
            for entry in ch.residues.values():
                copies = entry.names.values() if isinstance(entry, DisorderedResidue) else [entry]
                for res in copies:
                    res._sort_atoms()
            ch.residues = dict(
                sorted(ch.residues.items(), key=lambda kv: (kv[0][1], kv[0][2], kv[0][0]))
            )
        self.residues = list(self.iter_residues())
        self.atoms = [a for r in self.residues for a in collect_atoms(r, expand_disordered=False)]

    # ---- OpenMM / MDTraj export ----

    def positions(self):
        """
        Return positions as an OpenMM Quantity[list[Vec3]] in nm.
        Atom coordinates are stored in Å.
        """
        vecs = [Vec3(a.x, a.y, a.z) for a in self.atoms]
        return unit.Quantity(vecs, unit.angstrom).in_units_of(unit.nanometer)

    def topology(self):
        top = Topology()
        for c in self.chains():
            chain = top.addChain(c.chain_id)
            for r in collect_residues(c, expand_disordered=False):
                res = top.addResidue(
                    r.name, chain, id=str(r.number), insertionCode=r.ins_code.strip()
                )
                for a in collect_atoms(r, expand_disordered=False):
                    top.addAtom(a.name, _openmm_element(a.element), res, id=str(a.serial))
        return top

    def mdtraj_trajectory(self):
        top = md.Topology.from_openmm(self.topology())
        if not self.atoms:
            return md.Trajectory(xyz=np.zeros((1, 0, 3), dtype=float), topology=top)
        coords_nm = [(a.x / 10.0, a.y / 10.0, a.z / 10.0) for a in self.atoms]
        xyz = np.array([coords_nm], dtype=np.float32)  # (1, natoms, 3) nm
        return md.Trajectory(xyz=xyz, topology=top)


@dataclass
class Structure:
    name: str = ""
    models: dict[int, Model] = field(default_factory=dict)  # model id -> Model

    def __getitem__(self, model_id: int) -> Model:
        return self.models[model_id]

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[Model]:
        return iter(self.models.values())

    def __repr__(self) -> str:
        return f"<Structure {self.name or '(unnamed)'} with {len(self.models)} models>"

    @property
    def model(self) -> Model:
        """Return the first model (common for single-model files)."""
        if not self.models:
            raise ValueError("Structure has no models")
        return self.models[min(self.models)]

    def nchains(self) -> int:
        return self.model.nchains()

    def nresidues(self) -> int:
        return self.model.nresidues()

    def natoms(self) -> int:
        return self.model.natoms()

    @classmethod
    def from_records(
        cls,
        records: Iterable[AtomRecord],
        *,
        name: str = "",
        model_id: int = 1,
        remove_disorder: bool = False,
    ) -> Structure:
        """
        Build a single-model Structure from atom records, rejecting duplicates.

        Raises ValueError when two records share model, chain, residue position,
        residue name, atom name and alt-location code.
        """
        builder = _StructureBuilder(name)
        for rec in records:
            builder.add_record(model_id, rec, check=True)
        return builder.finalize(remove_disorder=remove_disorder)


StructuralElement = Union[Structure, Model, Chain, AnyResidue]


class _StructureBuilder:
    """
    Two-phase construction: records are appended without ordering or duplicate
    checks, then ``finalize`` restores the invariants of the hierarchy.
    """

    def __init__(self, name: str = ""):
        self.structure = Structure(name=name)

    def add_model(self, model_id: int) -> Model:
        models = self.structure.models
        model = models.get(model_id)
        if model is None:
            model = models[model_id] = Model(model_id=model_id)
        return model

    def add_record(self, model_id: int, rec: AtomRecord, *, check: bool = False) -> None:
        model = self.add_model(model_id)
        chain = model.chain.get(rec.chain_id)
        if chain is None:
            chain = model.chain[rec.chain_id] = Chain(chain_id=rec.chain_id)

        key = (bool(rec.het_atom), int(rec.res_number), rec.ins_code)
        entry = chain.residues.get(key)
        if entry is None:
            res = chain.residues[key] = _new_residue(rec)
        elif isinstance(entry, DisorderedResidue):
            res = entry.names.get(rec.res_name)
            if res is None:
                res = _new_residue(rec)
                entry.add(res)
        elif entry.name != rec.res_name:
            res = _new_residue(rec)
            dis = DisorderedResidue()
            dis.add(entry)
            dis.add(res)
            chain.residues[key] = dis
        else:
            res = entry
        res._add_atom(Atom.from_record(rec), check=check)

    def finalize(self, *, remove_disorder: bool = False) -> Structure:
        s = self.structure
        s.models = dict(sorted(s.models.items()))
        for m in s.models.values():
            m._fixlists(remove_disorder)
        return s


def _new_residue(rec: AtomRecord) -> Residue:
    return Residue(
        name=rec.res_name, number=int(rec.res_number), ins_code=rec.ins_code, het=rec.het_atom
    )


def _collapse_residue(entry: AnyResidue) -> Residue:
    res = entry.default if isinstance(entry, DisorderedResidue) else entry
    res.atoms = {
        k: (a.default if isinstance(a, DisorderedAtom) else a) for k, a in res.atoms.items()
    }
    return res


def _openmm_element(symbol: str):
    sym = (symbol or "").strip().upper()
    try:
        return element.Element.getBySymbol(sym)
    except KeyError:
        return None


# --- Collectors ----------------------------------------------------------------

AtomSelectorFn = Callable[[Atom], bool]


def collect_models(el: Union[StructuralElement, Iterable[Model]]) -> list[Model]:
    if isinstance(el, Structure):
        return list(el.models.values())
    if isinstance(el, Model):
        return [el]
    if isinstance(el, (Chain, Residue, DisorderedResidue)):
        raise TypeError(f"Cannot collect models from {el!r}")
    return list(el)


def count_models(el: Union[StructuralElement, Iterable[Model]]) -> int:
    return len(collect_models(el))


def collect_residues(el: StructuralElement, expand_disordered: bool = False) -> list[Residue]:
    """
    Residues of a structural element in hierarchy order.

    With ``expand_disordered`` every copy of a disordered residue is returned,
    otherwise only its default copy.
    """
    if isinstance(el, Residue):
        return [el]
    if isinstance(el, DisorderedResidue):
        return list(el.names.values()) if expand_disordered else [el.default]
    if isinstance(el, Chain):
        out: list[Residue] = []
        for entry in el.residues.values():
            out.extend(collect_residues(entry, expand_disordered))
        return out
    out = []
    for m in collect_models(el):
        for ch in m.chains():
            out.extend(collect_residues(ch, expand_disordered))
    return out


def collect_atoms(
    el: StructuralElement,
    *selectors: AtomSelectorFn,
    expand_disordered: bool = False,
) -> list[Atom]:
    """Atoms of ``el`` that return True from every selector, in hierarchy order."""
    out: list[Atom] = []
    for res in collect_residues(el, expand_disordered):
        for entry in res.atoms.values():
            if isinstance(entry, DisorderedAtom):
                copies = entry.atoms() if expand_disordered else [entry.default]
            else:
                copies = [entry]
            out.extend(a for a in copies if all(sel(a) for sel in selectors))
    return out


# --- Selectors -------------------------------------------------------------------

_BACKBONE_ATOM_NAMES: set[str] = {"N", "CA", "C"}

_WATER_RESNAMES: set[str] = {"HOH", "TIP3", "WAT", "SPC", "DOD"}

# Three-letter residue names to one-letter amino acid codes.
_THREE_TO_ONE: dict[str, str] = {
    "ALA": "A",
    "ARG": "R",
    "ASN": "N",
    "ASP": "D",
    "CYS": "C",
    "GLN": "Q",
    "GLU": "E",
    "GLY": "G",
    "HIS": "H",
    "HSD": "H",
    "HSE": "H",
    "HSP": "H",
    "ILE": "I",
    "LEU": "L",
    "LYS": "K",
    "MET": "M",
    "MSE": "M",
    "PHE": "F",
    "PRO": "P",
    "PYL": "O",
    "SEC": "U",
    "SER": "S",
    "THR": "T",
    "TRP": "W",
    "TYR": "Y",
    "VAL": "V",
}


def standard_selector(atom: Atom) -> bool:
    return not atom.het


def hetero_selector(atom: Atom) -> bool:
    return atom.het


def calpha_selector(atom: Atom) -> bool:
    return not atom.het and atom.name == "CA"


def backbone_selector(atom: Atom) -> bool:
    return not atom.het and atom.name in _BACKBONE_ATOM_NAMES


def hydrogen_selector(atom: Atom) -> bool:
    """Element H, or atom names H*, 1H*, ... when no element is set."""
    el = (atom.element or "").strip().upper()
    if el:
        return el in ("H", "D")
    name = atom.name.strip().upper()
    return bool(re.match(r"^\d*H", name))


def heavy_atom_selector(atom: Atom) -> bool:
    return not hydrogen_selector(atom)


def water_selector(atom: Atom) -> bool:
    return atom.resname.upper() in _WATER_RESNAMES


def disorder_selector(atom: Atom) -> bool:
    return atom.alt_loc_id.strip() != ""


# --- PDB reader -------------------------------------------------------------------


class PDBReader:
    """
    Minimal, fast PDB reader
    - Supports MODEL/ENDMDL (multiple models).
    - Parses ATOM and HETATM into AtomRecords and builds the hierarchy through the
      same two-phase builder the MMTF decoder uses.

    ``PDBReader(file)`` returns a Structure directly; ``PDBReader()`` returns a
    reader whose ``read``/``from_string`` can be called repeatedly.
    """

    def __new__(cls, file: Optional[FileLike] = None, **options):
        self = super().__new__(cls)
        if file is None:
            return self
        self.__init__(**options)
        return self.read(file)

    def __init__(
        self,
        file: Optional[FileLike] = None,
        *,
        structure_name: str = "",
        remove_disorder: bool = False,
        read_std_atoms: bool = True,
        read_het_atoms: bool = True,
    ):
        self.structure_name = structure_name
        self.remove_disorder = remove_disorder
        self.read_std_atoms = read_std_atoms
        self.read_het_atoms = read_het_atoms

    def read(self, file: FileLike) -> Structure:
        return self._parse(self._open_text(file))

    def from_string(self, pdb_text: str) -> Structure:
        return self._parse(pdb_text.splitlines())

    # -- internals --
    @staticmethod
    def _open_text(file: FileLike) -> Iterable[str]:
        """
        Yield text lines from a PDB(-like) source.

        - For StringIO/BytesIO, read from the in-memory buffer.
        - For filesystem paths, stream line-by-line; ``.gz`` files are decompressed.
        """
        if isinstance(file, io.StringIO):
            yield from file.getvalue().splitlines()
            return

        if isinstance(file, io.BytesIO):
            yield from file.getvalue().decode("utf-8").splitlines()
            return

        p = Path(file)
        opener = gzip.open if p.suffix == ".gz" else open
        with opener(p, "rt", encoding="utf-8", newline="") as fh:
            for line in fh:
                yield line.rstrip("\r\n")

    def _parse(self, lines: Iterable[str]) -> Structure:
        builder = _StructureBuilder(self.structure_name)
        model_id: Optional[int] = None
        n_models = 0

        for raw in lines:
            if not raw:
                continue
            rec = raw[0:6].strip().upper()

            if rec == "MODEL":
                n_models += 1
                model_id = _safe_int(raw[10:14], default=n_models) or n_models
                continue

            if rec == "ENDMDL":
                model_id = None
                continue

            if rec in ("ATOM", "HETATM"):
                het = rec == "HETATM"
                if (het and not self.read_het_atoms) or (not het and not self.read_std_atoms):
                    continue
                if model_id is None:
                    n_models = max(n_models, 1)
                    model_id = 1
                builder.add_record(model_id, _parse_atom_line(raw, het))

        s = builder.finalize(remove_disorder=self.remove_disorder)
        logger.debug("Read %d models from PDB text", len(s))
        return s


# --- parsing utilities -------------------------------------------------------


def _deduce_element(atomname: str, element_hint: str = "") -> str:
    """
    Element symbol for a PDB atom.
    Priority:
      1) PDB element column if present (letters only, upper-cased).
      2) First letter of the atom name after stripping leading digits.
    """
    hint = re.sub(r"[^A-Za-z]", "", element_hint or "").upper()
    if hint:
        return hint
    stripped = re.sub(r"^\d+", "", atomname.strip())
    return stripped[:1].upper() if stripped else "X"


def _normalise_charge(raw: str) -> str:
    """PDB charge column ('2+', '1-', blank) to signed form ('+2', '-1', '0')."""
    text = raw.strip()
    if not text:
        return "0"
    m = re.fullmatch(r"(\d+)([+-])", text)
    if m:
        num, sign = m.groups()
        return "0" if int(num) == 0 else f"{sign}{int(num)}"
    return text


def _parse_atom_line(line: str, het: bool) -> AtomRecord:
    # PDB v3.3 column mapping
    line = line.ljust(80)
    raw_serial = line[6:11].strip()
    serial = 0 if raw_serial and set(raw_serial) == {"*"} else _safe_int(raw_serial, required=True)
    name = line[12:16].strip()
    alt = line[16] if line[16].strip() else " "
    resname = line[17:20].strip()
    chain = line[21]
    resnum = _safe_int(line[22:26], required=True)
    ins = line[26] if line[26].strip() else " "
    x = _safe_float(line[30:38], required=True)
    y = _safe_float(line[38:46], required=True)
    z = _safe_float(line[46:54], required=True)
    return AtomRecord(
        het_atom=het,
        serial=serial,
        atom_name=name,
        alt_loc_id=alt,
        res_name=resname,
        chain_id=chain,
        res_number=resnum,
        ins_code=ins,
        coords=(x, y, z),
        occupancy=_safe_float(line[54:60], default=1.0),
        temp_factor=_safe_float(line[60:66], default=0.0),
        element=_deduce_element(name, line[76:78]),
        charge=_normalise_charge(line[78:80]),
    )


def _safe_int(s: str, default: Optional[int] = None, required: bool = False) -> Optional[int]:
    try:
        return int(s.strip())
    except ValueError:
        if required:
            raise ValueError(f"Expected integer in field '{s}'")
        return default


def _safe_float(s: str, default: Optional[float] = None, required: bool = False) -> Optional[float]:
    try:
        return float(s.strip())
    except ValueError:
        if required:
            raise ValueError(f"Expected float in field '{s}'")
        return default
