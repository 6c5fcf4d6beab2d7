from __future__ import annotations

import pytest

from mmtfio.molecule_data import AtomRecord, Structure


def rec(
    serial: int,
    name: str,
    resname: str,
    resnum: int,
    chain: str = "A",
    *,
    het: bool = False,
    alt: str = " ",
    ins: str = " ",
    coords: tuple[float, float, float] = (0.0, 0.0, 0.0),
    occupancy: float = 1.0,
    temp_factor: float = 10.0,
    element: str = "",
    charge: str = "0",
) -> AtomRecord:
    return AtomRecord(
        het_atom=het,
        serial=serial,
        atom_name=name,
        alt_loc_id=alt,
        res_name=resname,
        chain_id=chain,
        res_number=resnum,
        ins_code=ins,
        coords=coords,
        occupancy=occupancy,
        temp_factor=temp_factor,
        element=element or name[0],
        charge=charge,
    )


def _backbone(first_serial, resname, resnum, chain="A", names=("N", "CA", "C", "O")):
    out = []
    for k, name in enumerate(names):
        serial = first_serial + k
        out.append(
            rec(
                serial,
                name,
                resname,
                resnum,
                chain,
                coords=(1.0 * serial, 0.5 * serial, -0.25 * serial),
                temp_factor=5.0 + serial,
            )
        )
    return out


def small_records() -> list[AtomRecord]:
    """
    Chain A: ALA 1, GLY 2, ALA 3, HOH 101, HOH 102, SO4 201, MG 301.
    Chain B: LYS 1, ALA 2 (only N and CA).
    """
    records = []
    records += _backbone(1, "ALA", 1)
    records += _backbone(5, "GLY", 2)
    records += _backbone(9, "ALA", 3)
    records.append(rec(13, "O", "HOH", 101, het=True, coords=(3.1, 2.2, 1.3), occupancy=0.5))
    records.append(rec(14, "O", "HOH", 102, het=True, coords=(4.1, 2.2, 1.3)))
    records.append(rec(15, "S", "SO4", 201, het=True, coords=(7.0, 7.0, 7.0)))
    records.append(
        rec(16, "O1", "SO4", 201, het=True, coords=(7.5, 7.0, 7.0), element="O", charge="-1")
    )
    records.append(
        rec(17, "MG", "MG", 301, het=True, coords=(9.0, 9.0, 9.0), element="MG", charge="+2")
    )
    records += _backbone(18, "LYS", 1, chain="B", names=("N", "CA"))
    records += _backbone(20, "ALA", 2, chain="B", names=("N", "CA"))
    return records


@pytest.fixture
def small_structure() -> Structure:
    return Structure.from_records(small_records(), name="1ABC")


@pytest.fixture
def disordered_structure() -> Structure:
    records = [
        rec(1, "N", "SER", 1, coords=(0.0, 0.0, 0.0)),
        rec(2, "CA", "SER", 1, alt="A", occupancy=0.6, coords=(1.0, 0.0, 0.0)),
        rec(3, "CA", "SER", 1, alt="B", occupancy=0.4, coords=(1.1, 0.1, 0.0)),
        rec(4, "N", "VAL", 2, alt="A", occupancy=0.7, coords=(2.0, 0.0, 0.0)),
        rec(5, "N", "THR", 2, alt="B", occupancy=0.3, coords=(2.1, 0.0, 0.0)),
    ]
    return Structure.from_records(records, name="DIS1")
