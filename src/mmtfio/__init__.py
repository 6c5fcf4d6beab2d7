from .__version__ import __version__
from .codec import decode_bytes_to_dictionary, encode_dictionary_to_bytes
from .errors import (
    ArrayLengthMismatchError,
    ChargeParseError,
    CodecError,
    IndexOutOfBoundsError,
    MissingFieldError,
    MMTFError,
)
from .mmtf import decode, encode, read_mmtf, write_mmtf
from .mmtf_dict import MMTFDict
from .molecule_data import (
    Atom,
    AtomRecord,
    Chain,
    DisorderedAtom,
    DisorderedResidue,
    Model,
    PDBReader,
    Residue,
    Structure,
    backbone_selector,
    calpha_selector,
    collect_atoms,
    collect_models,
    collect_residues,
    count_models,
    disorder_selector,
    heavy_atom_selector,
    hetero_selector,
    hydrogen_selector,
    standard_selector,
    water_selector,
)
from .splitter import EntityChainSplitter, SequenceBuilder, generate_chain_id
from .templates import GroupTemplate, GroupTemplateTable, format_charge, parse_charge

__all__ = [
    "__version__",
    "ArrayLengthMismatchError",
    "Atom",
    "AtomRecord",
    "Chain",
    "ChargeParseError",
    "CodecError",
    "DisorderedAtom",
    "DisorderedResidue",
    "EntityChainSplitter",
    "GroupTemplate",
    "GroupTemplateTable",
    "IndexOutOfBoundsError",
    "MissingFieldError",
    "MMTFDict",
    "MMTFError",
    "Model",
    "PDBReader",
    "Residue",
    "SequenceBuilder",
    "Structure",
    "backbone_selector",
    "calpha_selector",
    "collect_atoms",
    "collect_models",
    "collect_residues",
    "count_models",
    "decode",
    "decode_bytes_to_dictionary",
    "disorder_selector",
    "encode",
    "encode_dictionary_to_bytes",
    "format_charge",
    "generate_chain_id",
    "heavy_atom_selector",
    "hetero_selector",
    "hydrogen_selector",
    "parse_charge",
    "read_mmtf",
    "standard_selector",
    "water_selector",
    "write_mmtf",
]
