import numpy as np
import pytest
from openmm import unit

from conftest import rec
from mmtfio import Structure


def test_openmm_topology(small_structure):
    top = small_structure.model.topology()
    assert top.getNumChains() == 2
    assert top.getNumResidues() == 9
    assert top.getNumAtoms() == 21

    residues = list(top.residues())
    assert [r.name for r in residues[:3]] == ["ALA", "GLY", "ALA"]
    assert residues[3].id == "101"
    atoms = list(top.atoms())
    assert atoms[0].element.symbol == "N"
    assert atoms[16].element.symbol == "Mg"
    assert atoms[0].id == "1"


def test_unknown_element_is_none():
    s = Structure.from_records([rec(1, "XX", "UNK", 1, het=True, element="QQ")])
    atom = next(s.model.topology().atoms())
    assert atom.element is None


def test_openmm_positions_in_nm(small_structure):
    pos = small_structure.model.positions()
    assert len(pos) == 21
    nm = pos.value_in_unit(unit.nanometer)
    assert nm[0][0] == pytest.approx(0.1)
    assert nm[0][2] == pytest.approx(-0.025)


def test_mdtraj_trajectory(small_structure):
    traj = small_structure.model.mdtraj_trajectory()
    assert traj.n_atoms == 21
    assert traj.n_residues == 9
    assert traj.xyz.shape == (1, 21, 3)
    np.testing.assert_allclose(traj.xyz[0, 12], [0.31, 0.22, 0.13], atol=1e-6)
