from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .__version__ import __version__
from .mmtf import read_mmtf, write_mmtf
from .molecule_data import PDBReader, Structure

_PDB_SUFFIXES = {".pdb", ".ent"}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mmtfio", description="MMTF structure reader/writer")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    sp = p.add_subparsers(dest="cmd")

    sp_info = sp.add_parser("info", help="Summarize a structure file")
    sp_info.add_argument("file", help="MMTF or PDB file")
    sp_info.add_argument("--gzip", action="store_true", help="Input is gzipped MMTF")
    sp_info.add_argument("--remove-disorder", action="store_true")
    sp_info.set_defaults(func=_cmd_info)

    sp_conv = sp.add_parser("convert", help="Convert a PDB or MMTF file to MMTF")
    sp_conv.add_argument("input", help="MMTF or PDB file")
    sp_conv.add_argument("output", help="MMTF file to write")
    sp_conv.add_argument("--gzip", action="store_true", help="Gzip the output")
    sp_conv.add_argument("--remove-disorder", action="store_true")
    sp_conv.add_argument(
        "--no-expand-disordered",
        dest="expand_disordered",
        action="store_false",
        help="Write only the default copy of disordered atoms and residues",
    )
    sp_conv.set_defaults(func=_cmd_convert)
    return p


def _is_pdb(path: Path) -> bool:
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    return bool(suffixes) and suffixes[-1] in _PDB_SUFFIXES


def _load(path: str, *, gzip: bool = False, remove_disorder: bool = False) -> Structure:
    p = Path(path)
    if _is_pdb(p):
        return PDBReader(p, structure_name=p.name.split(".")[0], remove_disorder=remove_disorder)
    return read_mmtf(p, gzip=gzip, remove_disorder=remove_disorder)


def _cmd_info(args: argparse.Namespace) -> None:
    s = _load(args.file, gzip=args.gzip, remove_disorder=args.remove_disorder)
    summary = {
        "structure": s.name,
        "models": len(s),
        "chains": s.nchains() if len(s) else 0,
        "residues": s.nresidues() if len(s) else 0,
        "atoms": s.natoms() if len(s) else 0,
    }
    print(json.dumps(summary, indent=2))


def _cmd_convert(args: argparse.Namespace) -> None:
    s = _load(args.input, remove_disorder=args.remove_disorder)
    write_mmtf(args.output, s, expand_disordered=args.expand_disordered, gzip=args.gzip)
    logging.getLogger(__name__).info("Wrote %s", args.output)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
