"""
MessagePack framing and binary array strategies of the MMTF format.

Each strategy is a pipeline of steps. Decoding runs the steps first to last
over the bytes following the 12-byte header (codec, length, parameter);
encoding runs them in reverse.
"""

from __future__ import annotations

import gzip as gzip_module
import io
import logging
import struct
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Union

import msgpack
import numpy as np

from .errors import CodecError

logger = logging.getLogger(__name__)

MMTF_ENDIAN = ">"  # big-endian
MMTF_FORMAT_VERSION = (1, 0)
_GZIP_MAGIC = b"\x1f\x8b"

Source = Union[str, Path, bytes, bytearray, io.IOBase]
Destination = Union[str, Path, io.IOBase]


# --- pipeline steps -------------------------------------------------------------


class _NumbersBuffer:
    def __init__(self, basetype: str):
        self.enctype = np.dtype(MMTF_ENDIAN + basetype)
        self.dectype = np.dtype(basetype.replace("i1", "i4").replace("i2", "i4"))

    def decode(self, in_bytes: bytes) -> np.ndarray:
        if not len(in_bytes):
            return np.zeros(0, dtype=self.dectype)
        if len(in_bytes) % self.enctype.itemsize:
            raise CodecError(
                f"buffer of {len(in_bytes)} bytes is not a multiple of {self.enctype}"
            )
        return np.frombuffer(in_bytes, self.enctype).astype(self.dectype)

    def encode(self, values) -> bytes:
        return np.asarray(values).astype(self.enctype).tobytes()


class _StringsBuffer:
    def __init__(self, nbytes: int):
        self.nbytes = nbytes

    def decode(self, in_bytes: bytes) -> list[str]:
        n = self.nbytes
        return [
            bytes(in_bytes[i : i + n]).rstrip(b"\0").decode("utf-8")
            for i in range(0, len(in_bytes), n)
        ]

    def encode(self, strings: Sequence[str]) -> bytes:
        n = self.nbytes
        return b"".join(s.encode("utf-8")[:n].ljust(n, b"\0") for s in strings)


class _RunLength:
    @staticmethod
    def decode(arr: np.ndarray) -> np.ndarray:
        if len(arr) % 2:
            raise CodecError("run-length array has odd length")
        return np.repeat(arr[0::2], arr[1::2])

    @staticmethod
    def encode(arr) -> np.ndarray:
        arr = np.asarray(arr)
        if arr.size == 0:
            return np.zeros(0, dtype=np.int32)
        starts = np.flatnonzero(np.concatenate(([True], arr[1:] != arr[:-1])))
        counts = np.diff(np.append(starts, arr.size))
        out = np.empty(2 * starts.size, dtype=np.int64)
        out[0::2] = arr[starts]
        out[1::2] = counts
        return out


class _Delta:
    @staticmethod
    def decode(arr: np.ndarray) -> np.ndarray:
        return np.cumsum(arr, dtype=np.int64).astype(np.int32)

    @staticmethod
    def encode(arr) -> np.ndarray:
        arr = np.asarray(arr, dtype=np.int64)
        return np.diff(arr, prepend=0)


class _RecursiveIndex:
    def __init__(self, nbytes: int):
        m = 1 << (nbytes * 8 - 1)
        self.min, self.max = -m, m - 1

    def decode(self, arr: np.ndarray) -> np.ndarray:
        arr = np.asarray(arr, dtype=np.int64)
        terminal = (arr != self.max) & (arr != self.min)
        sums = np.cumsum(arr)[terminal]
        return np.diff(sums, prepend=0).astype(np.int32)

    def encode(self, arr) -> np.ndarray:
        out: list[int] = []
        lo, hi = self.min, self.max
        for curr in np.asarray(arr, dtype=np.int64).tolist():
            while curr >= hi:
                out.append(hi)
                curr -= hi
            while curr <= lo:
                out.append(lo)
                curr -= lo
            out.append(curr)
        return np.asarray(out, dtype=np.int64)


class _IntegerFloats:
    def __init__(self, factor: int):
        if factor == 0:
            raise CodecError("integer-float divisor must not be zero")
        self.factor = factor

    def decode(self, arr: np.ndarray) -> np.ndarray:
        return (np.asarray(arr, dtype=np.float64) / self.factor).astype(np.float32)

    def encode(self, values) -> np.ndarray:
        return np.rint(np.asarray(values, dtype=np.float64) * self.factor).astype(np.int64)


class _IntegerChars:
    @staticmethod
    def decode(arr: np.ndarray) -> list[str]:
        return [chr(x) for x in np.asarray(arr).tolist()]

    @staticmethod
    def encode(chars: Sequence[str]) -> np.ndarray:
        return np.asarray([ord(c) if c else 0 for c in chars], dtype=np.int64)


def _strategy(codec: int, param: int) -> list:
    if codec == 1:
        return [_NumbersBuffer("f4")]
    if codec == 2:
        return [_NumbersBuffer("i1")]
    if codec == 3:
        return [_NumbersBuffer("i2")]
    if codec == 4:
        return [_NumbersBuffer("i4")]
    if codec == 5:
        if param <= 0:
            raise CodecError(f"string length parameter must be positive, got {param}")
        return [_StringsBuffer(param)]
    if codec == 6:
        return [_NumbersBuffer("i4"), _RunLength, _IntegerChars]
    if codec == 7:
        return [_NumbersBuffer("i4"), _RunLength]
    if codec == 8:
        return [_NumbersBuffer("i4"), _RunLength, _Delta]
    if codec == 9:
        return [_NumbersBuffer("i4"), _RunLength, _IntegerFloats(param)]
    if codec == 10:
        return [_NumbersBuffer("i2"), _RecursiveIndex(2), _Delta, _IntegerFloats(param)]
    if codec == 11:
        return [_NumbersBuffer("i2"), _IntegerFloats(param)]
    if codec == 12:
        return [_NumbersBuffer("i2"), _RecursiveIndex(2), _IntegerFloats(param)]
    if codec == 13:
        return [_NumbersBuffer("i1"), _RecursiveIndex(1), _IntegerFloats(param)]
    if codec == 14:
        return [_NumbersBuffer("i2"), _RecursiveIndex(2)]
    if codec == 15:
        return [_NumbersBuffer("i1"), _RecursiveIndex(1)]
    raise CodecError(f"Unknown MMTF encoding strategy {codec}")


# --- array encode/decode -----------------------------------------------------------

# field -> (strategy, parameter) used on write
ENCODING_RULES: dict[str, tuple[int, int]] = {
    "altLocList": (6, 0),
    "atomIdList": (8, 0),
    "bFactorList": (10, 100),
    "bondAtomList": (4, 0),
    "bondOrderList": (2, 0),
    "chainIdList": (5, 4),
    "chainNameList": (5, 4),
    "groupIdList": (8, 0),
    "groupTypeList": (4, 0),
    "insCodeList": (6, 0),
    "occupancyList": (9, 100),
    "secStructList": (2, 0),
    "sequenceIndexList": (8, 0),
    "xCoordList": (10, 1000),
    "yCoordList": (10, 1000),
    "zCoordList": (10, 1000),
}


def decode_array(value: bytes) -> Union[np.ndarray, list[str]]:
    if len(value) < 12:
        raise CodecError(f"encoded array of {len(value)} bytes is shorter than its header")
    codec, length, param = struct.unpack(MMTF_ENDIAN + "iii", value[:12])
    out: Any = memoryview(value)[12:]
    try:
        for step in _strategy(codec, param):
            out = step.decode(out)
    except CodecError:
        raise
    except (ValueError, TypeError, OverflowError) as e:
        raise CodecError(f"strategy {codec}: {e}") from e
    if len(out) != length:
        raise CodecError(f"strategy {codec} decoded {len(out)} values, header says {length}")
    return out


def encode_array(values, codec: int, param: int = 0) -> bytes:
    out = values
    for step in reversed(_strategy(codec, param)):
        out = step.encode(out)
    return struct.pack(MMTF_ENDIAN + "iii", codec, len(values), param) + out


def _encodable(values, codec: int, param: int) -> bool:
    if codec == 5:
        return all(len(s.encode("utf-8")) <= param for s in values)
    return True


# --- dictionary level ------------------------------------------------------------


def _read_source(source: Source) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, Path)):
        with open(source, "rb") as fh:
            return fh.read()
    return source.read()


def decode_bytes_to_dictionary(source: Source, gzip: bool = False) -> dict[str, Any]:
    """
    Decode MMTF bytes, a file path or a binary stream into a plain dict.

    Binary-encoded columns are expanded: integer columns to numpy int32 arrays,
    float columns to numpy float32 arrays, char and string columns to lists of
    str. Gzip compression is detected from the magic bytes even when ``gzip``
    is False.
    """
    data = _read_source(source)
    if gzip or data[:2] == _GZIP_MAGIC:
        try:
            data = gzip_module.decompress(data)
        except (OSError, EOFError) as e:
            raise CodecError(f"invalid gzip data: {e}") from e
    try:
        raw = msgpack.unpackb(data, raw=False, strict_map_key=False)
    except (ValueError, msgpack.exceptions.UnpackException) as e:
        raise CodecError(f"invalid MessagePack data: {e}") from e
    if not isinstance(raw, dict):
        raise CodecError(f"MMTF data must be a map, got {type(raw).__name__}")

    version = raw.get("mmtfVersion", "")
    if isinstance(version, str) and version:
        major = version.split(".")[0]
        if major.isdigit() and int(major) > MMTF_FORMAT_VERSION[0]:
            raise CodecError(f"Unsupported MMTF version: {version}")

    out: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, bytes):
            try:
                out[key] = decode_array(value)
            except CodecError as e:
                raise CodecError(f"field '{key}': {e}") from e
            logger.debug("Decoded %s with strategy %d", key, struct.unpack(">i", value[:4])[0])
        else:
            out[key] = value
    return out


def _to_builtin(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, dict):
        return {k: _to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_builtin(v) for v in value]
    return value


def dictionary_to_bytes(d: dict[str, Any]) -> bytes:
    """Pack a dictionary to (uncompressed) MMTF bytes, binary-encoding known columns."""
    packed: dict[str, Any] = {}
    for key, value in d.items():
        rule = ENCODING_RULES.get(key)
        if rule is not None and isinstance(value, (list, tuple, np.ndarray)):
            codec, param = rule
            values = _to_builtin(value)
            if _encodable(values, codec, param):
                packed[key] = encode_array(values, codec, param)
                continue
        packed[key] = _to_builtin(value)
    return msgpack.packb(packed, use_bin_type=True)


def encode_dictionary_to_bytes(
    d: dict[str, Any], destination: Destination, gzip: bool = False
) -> None:
    """Write a dictionary as MMTF to a file path or binary stream, optionally gzipped."""
    data = dictionary_to_bytes(d)
    if gzip:
        data = gzip_module.compress(data)
    if isinstance(destination, (str, Path)):
        with open(destination, "wb") as fh:
            fh.write(data)
    else:
        destination.write(data)
    logger.debug("Wrote %d bytes of MMTF data", len(data))
