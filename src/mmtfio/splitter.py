from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .mmtf_dict import MMTFDict
from .molecule_data import Residue

logger = logging.getLogger(__name__)

NOT_IN_SEQUENCE = -1


def generate_chain_id(i: int) -> str:
    """
    Chain id for the 1-based running chain index ``i``: 1 -> 'A', 2 -> 'B', ...

    Only 1..26 map to letters. Larger indices continue past 'Z' through the
    character table ('[', '\\', ...), as the format has no rule for them.
    """
    if i < 1:
        raise ValueError(f"chain index must be >= 1, got {i}")
    if i > 26:
        logger.warning("Chain index %d has no letter id; using %r", i, chr(64 + i))
    return chr(64 + i)


class SequenceBuilder:
    """Accumulates one-letter codes of consecutive polymer residues."""

    def __init__(self):
        self._codes: list[str] = []

    def __len__(self) -> int:
        return len(self._codes)

    def append(self, code: str) -> int:
        """Append a residue code and return its 0-based position in the sequence."""
        self._codes.append(code)
        return len(self._codes) - 1

    def build(self) -> str:
        return "".join(self._codes)


@dataclass
class _OpenRecord:
    entity: dict[str, Any]
    het: bool
    last_resname: str
    group_count: int = 0
    sequence: SequenceBuilder = field(default_factory=SequenceBuilder)


class EntityChainSplitter:
    """
    Decides where chain and entity records start while residues are streamed in.

    States: no open record (``record is None``) or one open record holding its
    entity, accumulated group count and sequence. A residue opens a new record
    when there is no open record, when its hetero flag differs from the
    previous residue's, or when the previous residue was hetero and had a
    different name. Closing a record appends its group count to
    ``groupsPerChain`` and writes its sequence into its entity.
    """

    def __init__(self, d: MMTFDict):
        self.d = d
        self.record: Optional[_OpenRecord] = None
        self.model_chain_count = 0

    def is_boundary(self, het: bool, resname: str) -> bool:
        rec = self.record
        if rec is None:
            return True
        return het != rec.het or (rec.het and resname != rec.last_resname)

    def start_chain(self) -> None:
        """A new hierarchy chain always starts a new record."""
        self.close()

    def add_residue(self, res: Residue, chain_name: str) -> int:
        """
        Account for one residue; return its sequence index, or -1 for hetero residues.
        """
        if self.is_boundary(res.het, res.name):
            self.close()
            self._open(res.het, res.name, chain_name)
        rec = self.record
        rec.group_count += 1
        rec.het = res.het
        rec.last_resname = res.name
        if res.het:
            return NOT_IN_SEQUENCE
        return rec.sequence.append(res.one_letter_code())

    def close(self) -> None:
        rec = self.record
        if rec is None:
            return
        self.d["groupsPerChain"].append(rec.group_count)
        rec.entity["sequence"] = rec.sequence.build()
        self.record = None

    def end_model(self) -> int:
        """Close the open record and push this model's chain count; return it."""
        self.close()
        n = self.model_chain_count
        self.d["chainsPerModel"].append(n)
        self.model_chain_count = 0
        return n

    def _open(self, het: bool, resname: str, chain_name: str) -> None:
        self.model_chain_count += 1
        chain_ids = self.d["chainIdList"]
        chain_ids.append(generate_chain_id(self.model_chain_count))
        self.d["chainNameList"].append(chain_name)
        # each record becomes its own entity; identical entities are not merged
        entity = {
            "chainIndexList": [len(chain_ids) - 1],
            "description": "",
            "sequence": "",
            "type": "non-polymer" if het else "polymer",
        }
        self.d["entityList"].append(entity)
        self.record = _OpenRecord(entity=entity, het=het, last_resname=resname)
