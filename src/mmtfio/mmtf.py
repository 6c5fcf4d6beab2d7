from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from .__version__ import __version__
from .codec import Destination, Source, encode_dictionary_to_bytes
from .errors import ArrayLengthMismatchError, IndexOutOfBoundsError, MissingFieldError
from .mmtf_dict import MMTFDict
from .molecule_data import (
    AtomRecord,
    AtomSelectorFn,
    Model,
    Structure,
    _StructureBuilder,
    collect_atoms,
    collect_models,
    collect_residues,
)
from .splitter import EntityChainSplitter
from .templates import GroupTemplateTable, format_charge

logger = logging.getLogger(__name__)

MMTF_VERSION = "1.0.0"
MMTF_PRODUCER = f"mmtfio {__version__}"
NULL_CHAR = "\0"


# --- cursor state --------------------------------------------------------------


@dataclass
class _Cursor:
    """
    Running positions into the per-model, per-chain, per-group and per-atom
    arrays. All four only move forward, one step at a time, through ``advance``.
    """

    model: int = 0
    chain: int = 0
    group: int = 0
    atom: int = 0

    def advance(self, level: str, limit: Optional[int] = None) -> int:
        """Return the current position at ``level`` and step past it."""
        i = getattr(self, level)
        if limit is not None and i >= limit:
            raise IndexOutOfBoundsError(
                f"{level} cursor {i} runs past the {limit} {level} entries"
            )
        setattr(self, level, i + 1)
        return i


@dataclass
class _Columns:
    """Arrays of an MMTF dictionary the decoder walks, read once through typed accessors."""

    chains_per_model: np.ndarray
    groups_per_chain: np.ndarray
    chain_ids: list[str]
    chain_names: list[str]
    group_types: np.ndarray
    group_ids: np.ndarray
    ins_codes: list[str]
    atom_ids: np.ndarray
    alt_locs: list[str]
    b_factors: np.ndarray
    occupancies: np.ndarray
    x: np.ndarray
    y: np.ndarray
    z: np.ndarray

    @classmethod
    def from_dict(cls, d: MMTFDict) -> _Columns:
        return cls(
            chains_per_model=d.get_int_array("chainsPerModel"),
            groups_per_chain=d.get_int_array("groupsPerChain"),
            chain_ids=d.get_string_array("chainIdList"),
            chain_names=d.get_string_array("chainNameList"),
            group_types=d.get_int_array("groupTypeList"),
            group_ids=d.get_int_array("groupIdList"),
            ins_codes=d.get_char_array("insCodeList"),
            atom_ids=d.get_int_array("atomIdList"),
            alt_locs=d.get_char_array("altLocList"),
            b_factors=d.get_float_array("bFactorList"),
            occupancies=d.get_float_array("occupancyList"),
            x=d.get_float_array("xCoordList"),
            y=d.get_float_array("yCoordList"),
            z=d.get_float_array("zCoordList"),
        )

    def n_chains(self) -> int:
        return min(len(self.groups_per_chain), len(self.chain_ids), len(self.chain_names))

    def n_groups(self) -> int:
        return min(len(self.group_types), len(self.group_ids), len(self.ins_codes))

    def n_atoms(self) -> int:
        return min(
            len(self.atom_ids),
            len(self.alt_locs),
            len(self.b_factors),
            len(self.occupancies),
            len(self.x),
            len(self.y),
            len(self.z),
        )


def _hetero_flags(entities: list[dict[str, Any]], n_chains: int) -> list[bool]:
    """Every chain is hetero unless a polymer entity lists it."""
    hets = [True] * n_chains
    for ei, entity in enumerate(entities):
        try:
            etype = entity["type"]
        except KeyError:
            raise MissingFieldError(f"entityList[{ei}].type") from None
        if etype != "polymer":
            continue
        try:
            chain_indices = entity["chainIndexList"]
        except KeyError:
            raise MissingFieldError(f"entityList[{ei}].chainIndexList") from None
        for ci in chain_indices:
            # chain indices are 0-based
            if not 0 <= int(ci) < n_chains:
                raise IndexOutOfBoundsError(
                    f"entityList[{ei}] refers to chain {ci}; there are {n_chains} chains"
                )
            hets[int(ci)] = False
    return hets


def _blank_if_null(c: str) -> str:
    return " " if c == NULL_CHAR else c


def _null_if_blank(c: str) -> str:
    return NULL_CHAR if c in (" ", "") else c


# --- decode ----------------------------------------------------------------------


def decode(
    d: Union[MMTFDict, Mapping[str, Any]],
    *,
    structure_name: str = "",
    remove_disorder: bool = False,
    read_std_atoms: bool = True,
    read_het_atoms: bool = True,
    validate: bool = True,
) -> Structure:
    """
    Build a Structure from an MMTF dictionary.

    Parameters
    ----------
    d
        The dictionary, as produced by the codec or by ``encode``.
    structure_name
        Name of the returned Structure; defaults to the ``structureId`` field.
    remove_disorder
        Keep only the default copy of disordered atoms and residues.
    read_std_atoms, read_het_atoms
        Whether to keep atoms of polymer chains and of hetero chains.
    validate
        Check that parallel arrays agree in length before and after the walk.

    Raises
    ------
    MissingFieldError, IndexOutOfBoundsError, ArrayLengthMismatchError
        The dictionary is incomplete or inconsistent. No partial Structure is returned.
    """
    if not isinstance(d, MMTFDict):
        d = MMTFDict(dict(d))
    d.check_required()
    cols = _Columns.from_dict(d)
    if validate:
        d.check_lengths()
    templates = GroupTemplateTable.from_records(d.get_records("groupList"))
    hets = _hetero_flags(d.get_records("entityList"), len(cols.chain_ids))

    name = structure_name or d.get("structureId") or ""
    builder = _StructureBuilder(name)
    n_chains, n_groups, n_atoms = cols.n_chains(), cols.n_groups(), cols.n_atoms()
    cur = _Cursor()

    for model_chain_count in cols.chains_per_model.tolist():
        model_id = cur.advance("model") + 1
        builder.add_model(model_id)
        for _ in range(model_chain_count):
            ci = cur.advance("chain", n_chains)
            het = hets[ci]
            keep = read_het_atoms if het else read_std_atoms
            chain_name = cols.chain_names[ci]
            for _ in range(int(cols.groups_per_chain[ci])):
                gi = cur.advance("group", n_groups)
                group = templates[int(cols.group_types[gi])]
                res_number = int(cols.group_ids[gi])
                ins_code = _blank_if_null(cols.ins_codes[gi])
                for k, atom_name in enumerate(group.atom_names):
                    ai = cur.advance("atom", n_atoms)
                    if not keep:
                        continue
                    builder.add_record(
                        model_id,
                        AtomRecord(
                            het_atom=het,
                            serial=int(cols.atom_ids[ai]),
                            atom_name=atom_name,
                            alt_loc_id=_blank_if_null(cols.alt_locs[ai]),
                            res_name=group.name,
                            chain_id=chain_name,
                            res_number=res_number,
                            ins_code=ins_code,
                            coords=(float(cols.x[ai]), float(cols.y[ai]), float(cols.z[ai])),
                            occupancy=float(cols.occupancies[ai]),
                            temp_factor=float(cols.b_factors[ai]),
                            element=group.elements[k],
                            charge=format_charge(group.formal_charges[k]),
                        ),
                    )

    if validate:
        for level, total in (("group", n_groups), ("atom", n_atoms)):
            walked = getattr(cur, level)
            if walked != total:
                raise ArrayLengthMismatchError(
                    f"walked {walked} {level} entries but the {level} arrays hold {total}"
                )

    s = builder.finalize(remove_disorder=remove_disorder)
    logger.debug(
        "Decoded %s: %d models, %d chains, %d groups, %d atoms",
        name or "(unnamed)",
        cur.model,
        cur.chain,
        cur.group,
        cur.atom,
    )
    return s


# --- encode ----------------------------------------------------------------------


def encode(
    el: Union[Structure, Model, Iterable[Model]],
    *selectors: AtomSelectorFn,
    expand_disordered: bool = True,
) -> MMTFDict:
    """
    Flatten a Structure (or Model, or list of Models) into an MMTF dictionary.

    Only atoms that return True from every selector are written; residues left
    with no atoms are skipped. With ``expand_disordered`` every alternate copy of
    disordered residues and atoms is written, otherwise only the default copies.
    """
    d = MMTFDict()
    table = GroupTemplateTable()
    splitter = EntityChainSplitter(d)
    cur = _Cursor()

    models = collect_models(el)
    for model in models:
        cur.advance("model")
        for ch in model.chains():
            splitter.start_chain()
            for res in collect_residues(ch, expand_disordered):
                atoms = collect_atoms(res, *selectors, expand_disordered=expand_disordered)
                if selectors and not atoms:
                    continue
                cur.advance("group")
                seq_index = splitter.add_residue(res, ch.chain_id)
                d["groupIdList"].append(res.number)
                d["groupTypeList"].append(table.resolve(res.name, atoms))
                d["insCodeList"].append(_null_if_blank(res.ins_code))
                d["secStructList"].append(-1)
                d["sequenceIndexList"].append(seq_index)
                for a in atoms:
                    cur.advance("atom")
                    d["altLocList"].append(_null_if_blank(a.alt_loc_id))
                    d["atomIdList"].append(a.serial)
                    d["bFactorList"].append(a.temp_factor)
                    d["occupancyList"].append(a.occupancy)
                    d["xCoordList"].append(a.x)
                    d["yCoordList"].append(a.y)
                    d["zCoordList"].append(a.z)
        splitter.end_model()

    d["groupList"] = table.to_records()
    d["numModels"] = len(models)
    d["numChains"] = len(d["chainIdList"])
    d["numGroups"] = cur.group
    d["numAtoms"] = cur.atom
    d["structureId"] = el.name if isinstance(el, Structure) else ""
    d["mmtfVersion"] = MMTF_VERSION
    d["mmtfProducer"] = MMTF_PRODUCER
    logger.debug(
        "Encoded %d models, %d chains, %d groups (%d templates), %d atoms",
        d["numModels"],
        d["numChains"],
        d["numGroups"],
        len(table),
        d["numAtoms"],
    )
    return d


# --- files -------------------------------------------------------------------------


def read_mmtf(source: Source, *, gzip: bool = False, **options) -> Structure:
    """
    Read an MMTF file, bytes or binary stream into a Structure.

    Keyword options are passed to ``decode``.
    """
    return decode(MMTFDict.from_file(source, gzip=gzip), **options)


def write_mmtf(
    output: Destination,
    el: Union[Structure, Model, MMTFDict, Iterable[Model]],
    *selectors: AtomSelectorFn,
    expand_disordered: bool = True,
    gzip: bool = False,
) -> None:
    """
    Write a Structure, Model or MMTFDict to an MMTF file or binary stream.

    Atom selector functions can be given as additional arguments - only atoms
    that return True from all of them are written.
    """
    if isinstance(el, MMTFDict):
        if selectors:
            raise ValueError("Atom selectors cannot be applied to an MMTF dictionary")
        encode_dictionary_to_bytes(el.dict, output, gzip=gzip)
        return
    d = encode(el, *selectors, expand_disordered=expand_disordered)
    encode_dictionary_to_bytes(d.dict, output, gzip=gzip)
