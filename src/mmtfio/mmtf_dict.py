from __future__ import annotations

import enum
import io
from collections.abc import Iterator, KeysView, ValuesView
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np

from .errors import ArrayLengthMismatchError, MissingFieldError

FileLike = Union[str, Path, io.IOBase]


class FieldKind(enum.Enum):
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    INT_ARRAY = "int array"
    FLOAT_ARRAY = "float array"
    CHAR_ARRAY = "char array"
    STRING_ARRAY = "string array"
    RECORDS = "records"
    ANY = "any"


# Kind of every field this package reads or writes, with the value an empty
# file holds. Encoding and decoding MMTFDict() gives an identical dictionary.
FIELDS: dict[str, tuple[FieldKind, Any]] = {
    "altLocList": (FieldKind.CHAR_ARRAY, list),
    "atomIdList": (FieldKind.INT_ARRAY, list),
    "bFactorList": (FieldKind.FLOAT_ARRAY, list),
    "bioAssemblyList": (FieldKind.RECORDS, list),
    "bondAtomList": (FieldKind.INT_ARRAY, list),
    "bondOrderList": (FieldKind.INT_ARRAY, list),
    "chainIdList": (FieldKind.STRING_ARRAY, list),
    "chainNameList": (FieldKind.STRING_ARRAY, list),
    "chainsPerModel": (FieldKind.INT_ARRAY, list),
    "depositionDate": (FieldKind.STRING, ""),
    "entityList": (FieldKind.RECORDS, list),
    "experimentalMethods": (FieldKind.STRING_ARRAY, list),
    "groupIdList": (FieldKind.INT_ARRAY, list),
    "groupList": (FieldKind.RECORDS, list),
    "groupsPerChain": (FieldKind.INT_ARRAY, list),
    "groupTypeList": (FieldKind.INT_ARRAY, list),
    "insCodeList": (FieldKind.CHAR_ARRAY, list),
    "mmtfProducer": (FieldKind.STRING, ""),
    "mmtfVersion": (FieldKind.STRING, ""),
    "ncsOperatorList": (FieldKind.ANY, list),
    "numAtoms": (FieldKind.INT, 0),
    "numBonds": (FieldKind.INT, 0),
    "numChains": (FieldKind.INT, 0),
    "numGroups": (FieldKind.INT, 0),
    "numModels": (FieldKind.INT, 0),
    "occupancyList": (FieldKind.FLOAT_ARRAY, list),
    "releaseDate": (FieldKind.STRING, ""),
    "resolution": (FieldKind.FLOAT, 0.0),
    "rFree": (FieldKind.ANY, ""),
    "rWork": (FieldKind.ANY, ""),
    "secStructList": (FieldKind.INT_ARRAY, list),
    "sequenceIndexList": (FieldKind.INT_ARRAY, list),
    "spaceGroup": (FieldKind.STRING, ""),
    "structureId": (FieldKind.STRING, ""),
    "title": (FieldKind.STRING, ""),
    "unitCell": (FieldKind.ANY, list),
    "xCoordList": (FieldKind.FLOAT_ARRAY, list),
    "yCoordList": (FieldKind.FLOAT_ARRAY, list),
    "zCoordList": (FieldKind.FLOAT_ARRAY, list),
}

# Fields the decoder cannot do without.
REQUIRED_FIELDS: tuple[str, ...] = (
    "chainsPerModel",
    "groupsPerChain",
    "groupTypeList",
    "groupList",
    "groupIdList",
    "insCodeList",
    "sequenceIndexList",
    "chainIdList",
    "chainNameList",
    "entityList",
    "atomIdList",
    "altLocList",
    "bFactorList",
    "occupancyList",
    "xCoordList",
    "yCoordList",
    "zCoordList",
)

PER_ATOM_FIELDS: tuple[str, ...] = (
    "atomIdList",
    "altLocList",
    "bFactorList",
    "occupancyList",
    "xCoordList",
    "yCoordList",
    "zCoordList",
)
PER_GROUP_FIELDS: tuple[str, ...] = (
    "groupIdList",
    "groupTypeList",
    "insCodeList",
    "secStructList",
    "sequenceIndexList",
)
PER_CHAIN_FIELDS: tuple[str, ...] = ("chainIdList", "chainNameList")

_ARRAY_TYPES = (list, tuple, np.ndarray)


class MMTFDict:
    """
    A Macromolecular Transmission Format (MMTF) dictionary.

    Behaves like a mapping from field name to value. Values are scalars, arrays
    (lists or numpy arrays) or lists of nested records (dicts). ``MMTFDict()``
    holds the fields of an empty file; ``MMTFDict(mapping)`` wraps an existing
    dictionary, e.g. one produced by the codec. The underlying dict is
    available as ``.dict``.

    Typed accessors (``get_int_array`` etc.) check the kind of a field and raise
    MissingFieldError when it is absent or malformed.
    """

    def __init__(self, data: Optional[dict[str, Any]] = None):
        if data is None:
            data = {k: _empty(default) for k, (_, default) in FIELDS.items()}
        self.dict: dict[str, Any] = data

    # ---- mapping protocol ----

    def __getitem__(self, key: str) -> Any:
        return self.dict[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.dict[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.dict

    def __iter__(self) -> Iterator[str]:
        return iter(self.dict)

    def __len__(self) -> int:
        return len(self.dict)

    def __repr__(self) -> str:
        return f"MMTF dictionary with {len(self.dict)} fields"

    def keys(self) -> KeysView[str]:
        return self.dict.keys()

    def values(self) -> ValuesView[Any]:
        return self.dict.values()

    def get(self, key: str, default: Any = None) -> Any:
        return self.dict.get(key, default)

    # ---- file I/O ----

    @classmethod
    def from_file(cls, source: Union[FileLike, bytes], gzip: bool = False) -> MMTFDict:
        from .codec import decode_bytes_to_dictionary

        return cls(decode_bytes_to_dictionary(source, gzip=gzip))

    def write(self, destination: FileLike, gzip: bool = False) -> None:
        from .codec import encode_dictionary_to_bytes

        encode_dictionary_to_bytes(self.dict, destination, gzip=gzip)

    # ---- typed accessors ----

    def _require(self, key: str) -> Any:
        try:
            return self.dict[key]
        except KeyError:
            raise MissingFieldError(key) from None

    def get_int(self, key: str) -> int:
        v = self._require(key)
        if isinstance(v, bool) or not isinstance(v, (int, np.integer)):
            raise MissingFieldError(key, f"expected int, got {type(v).__name__}")
        return int(v)

    def get_string(self, key: str) -> str:
        v = self._require(key)
        if not isinstance(v, str):
            raise MissingFieldError(key, f"expected string, got {type(v).__name__}")
        return v

    def _get_array(self, key: str) -> Any:
        v = self._require(key)
        if not isinstance(v, _ARRAY_TYPES):
            raise MissingFieldError(key, f"expected array, got {type(v).__name__}")
        return v

    def get_int_array(self, key: str) -> np.ndarray:
        v = self._get_array(key)
        try:
            arr = np.asarray(v)
        except ValueError as e:
            raise MissingFieldError(key, "ragged array") from e
        if arr.size == 0:
            return np.zeros(0, dtype=np.int64)
        if arr.ndim != 1 or arr.dtype.kind not in "iu":
            raise MissingFieldError(key, f"expected int array, got dtype {arr.dtype}")
        return arr.astype(np.int64, copy=False)

    def get_float_array(self, key: str) -> np.ndarray:
        v = self._get_array(key)
        try:
            arr = np.asarray(v)
        except ValueError as e:
            raise MissingFieldError(key, "ragged array") from e
        if arr.size == 0:
            return np.zeros(0, dtype=np.float64)
        if arr.ndim != 1 or arr.dtype.kind not in "iuf":
            raise MissingFieldError(key, f"expected float array, got dtype {arr.dtype}")
        return arr

    def get_string_array(self, key: str) -> list[str]:
        v = self._get_array(key)
        out = list(v)
        if not all(isinstance(s, str) for s in out):
            raise MissingFieldError(key, "expected string array")
        return out

    def get_char_array(self, key: str) -> list[str]:
        out = self.get_string_array(key)
        if not all(len(c) == 1 for c in out):
            raise MissingFieldError(key, "expected single-character array")
        return out

    def get_records(self, key: str) -> list[dict[str, Any]]:
        v = self._get_array(key)
        out = list(v)
        if not all(isinstance(r, dict) for r in out):
            raise MissingFieldError(key, "expected array of records")
        return out

    def get_typed(self, key: str) -> Any:
        """Read ``key`` through the accessor its schema kind calls for."""
        kind = FIELDS[key][0] if key in FIELDS else FieldKind.ANY
        if kind is FieldKind.FLOAT:
            v = self._require(key)
            if not isinstance(v, (int, float, np.integer, np.floating)) or isinstance(v, bool):
                raise MissingFieldError(key, f"expected float, got {type(v).__name__}")
            return float(v)
        getter = {
            FieldKind.INT: self.get_int,
            FieldKind.STRING: self.get_string,
            FieldKind.INT_ARRAY: self.get_int_array,
            FieldKind.FLOAT_ARRAY: self.get_float_array,
            FieldKind.CHAR_ARRAY: self.get_char_array,
            FieldKind.STRING_ARRAY: self.get_string_array,
            FieldKind.RECORDS: self.get_records,
        }.get(kind, self._require)
        return getter(key)

    # ---- validation ----

    def check_required(self) -> None:
        for key in REQUIRED_FIELDS:
            self._require(key)

    def check_lengths(self) -> None:
        """
        Compare parallel arrays with the lengths implied by the count arrays.

        The chain count is the sum of ``chainsPerModel``, the group count the sum
        of ``groupsPerChain``. The atom count is not checked here since it
        depends on the group templates; the decoder checks it during its walk.
        """
        n_chains = int(self.get_int_array("chainsPerModel").sum())
        groups_per_chain = self.get_int_array("groupsPerChain")
        if len(groups_per_chain) != n_chains:
            raise ArrayLengthMismatchError(
                f"len(groupsPerChain)={len(groups_per_chain)} but chainsPerModel sums to {n_chains}"
            )
        n_groups = int(groups_per_chain.sum())
        for key in PER_CHAIN_FIELDS:
            _check_len(key, len(self._get_array(key)), n_chains, "numChains")
        for key in PER_GROUP_FIELDS:
            if key not in self.dict:
                continue
            n = len(self._get_array(key))
            if key == "secStructList" and n == 0:
                continue
            _check_len(key, n, n_groups, "numGroups")
        atom_lengths = {key: len(self._get_array(key)) for key in PER_ATOM_FIELDS}
        if len(set(atom_lengths.values())) > 1:
            raise ArrayLengthMismatchError(f"per-atom arrays differ in length: {atom_lengths}")


def _check_len(key: str, got: int, expected: int, what: str) -> None:
    if got != expected:
        raise ArrayLengthMismatchError(f"len({key})={got} but {what}={expected}")


def _empty(default: Any) -> Any:
    return default() if callable(default) else default
