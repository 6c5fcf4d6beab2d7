import gzip
import io
import struct

import msgpack
import numpy as np
import pytest

from mmtfio import CodecError, MMTFDict, decode_bytes_to_dictionary, encode_dictionary_to_bytes
from mmtfio.codec import decode_array, dictionary_to_bytes, encode_array


def _header(codec: int, length: int, param: int) -> bytes:
    return struct.pack(">iii", codec, length, param)


def test_run_length_delta_integers():
    ids = [1, 2, 3, 4, 5, 10, 11, 12]
    data = encode_array(ids, 8)
    assert data[:12] == _header(8, 8, 0)
    # deltas 1,1,1,1,1,5,1,1 run-length encode to (1,5) (5,1) (1,2)
    assert np.frombuffer(data[12:], ">i4").tolist() == [1, 5, 5, 1, 1, 2]
    assert decode_array(data).tolist() == ids


def test_integer_chars():
    chars = ["\0", "\0", "A", "A", "B"]
    data = encode_array(chars, 6)
    assert decode_array(data) == chars


def test_fixed_length_strings():
    data = encode_array(["A", "BB", "CCCC"], 5, 4)
    assert len(data) == 12 + 12
    assert decode_array(data) == ["A", "BB", "CCCC"]


def test_recursive_index_handles_large_deltas():
    coords = [0.0, 40.0, -40.0, 1.234]
    data = encode_array(coords, 10, 1000)
    out = decode_array(data)
    assert out.dtype == np.float32
    assert out.tolist() == pytest.approx(coords, abs=1e-3)


@pytest.mark.parametrize(
    "codec, param, values",
    [
        (1, 0, [1.5, -2.25]),
        (2, 0, [1, -1, 3]),
        (3, 0, [300, -300]),
        (4, 0, [70000, -1]),
        (7, 0, [0, 0, 0, 4]),
        (9, 100, [1.0, 1.0, 0.5]),
        (11, 100, [1.25, -3.5]),
        (12, 100, [1.25, 400.0]),
        (13, 10, [0.5, 20.0]),
        (14, 0, [5, 40000]),
        (15, 0, [5, 300]),
    ],
)
def test_strategies(codec, param, values):
    out = decode_array(encode_array(values, codec, param))
    assert len(out) == len(values)
    assert np.asarray(out).tolist() == pytest.approx(values)


def test_empty_arrays():
    assert decode_array(encode_array([], 8)).tolist() == []
    assert decode_array(encode_array([], 6)) == []
    assert decode_array(encode_array([], 10, 1000)).tolist() == []


def test_unknown_strategy():
    with pytest.raises(CodecError):
        decode_array(_header(99, 0, 0))


def test_length_disagrees_with_header():
    data = encode_array([1, 2, 3], 4)
    with pytest.raises(CodecError):
        decode_array(_header(4, 5, 0) + data[12:])


def test_short_array():
    with pytest.raises(CodecError):
        decode_array(b"\x00\x00")


def test_dictionary_roundtrip_through_bytes():
    d = {
        "atomIdList": [1, 2, 3],
        "xCoordList": [1.0, 2.5, -3.125],
        "chainIdList": ["A", "B"],
        "insCodeList": ["\0", "A"],
        "title": "x",
        "numAtoms": 3,
        "entityList": [{"chainIndexList": [0], "type": "polymer"}],
    }
    out = decode_bytes_to_dictionary(dictionary_to_bytes(d))
    assert out["atomIdList"].tolist() == [1, 2, 3]
    assert out["xCoordList"].tolist() == pytest.approx([1.0, 2.5, -3.125], abs=1e-3)
    assert out["chainIdList"] == ["A", "B"]
    assert out["insCodeList"] == ["\0", "A"]
    assert out["title"] == "x"
    assert out["numAtoms"] == 3
    assert out["entityList"] == [{"chainIndexList": [0], "type": "polymer"}]


def test_long_chain_names_stay_plain():
    packed = msgpack.unpackb(dictionary_to_bytes({"chainNameList": ["LONGNAME"]}), raw=False)
    assert packed["chainNameList"] == ["LONGNAME"]


def test_numpy_values_are_packed():
    d = {"groupTypeList": np.array([0, 1, 1], dtype=np.int32), "numModels": np.int64(1)}
    out = decode_bytes_to_dictionary(dictionary_to_bytes(d))
    assert out["groupTypeList"].tolist() == [0, 1, 1]
    assert out["numModels"] == 1


def test_gzip_is_detected(tmp_path):
    path = tmp_path / "empty.mmtf.gz"
    encode_dictionary_to_bytes(MMTFDict().dict, path, gzip=True)
    with gzip.open(path, "rb") as fh:
        assert isinstance(msgpack.unpackb(fh.read(), raw=False), dict)
    assert decode_bytes_to_dictionary(path)["numAtoms"] == 0
    assert decode_bytes_to_dictionary(path, gzip=True)["numAtoms"] == 0


def test_write_to_stream():
    buf = io.BytesIO()
    encode_dictionary_to_bytes({"numAtoms": 0}, buf)
    buf.seek(0)
    assert decode_bytes_to_dictionary(buf) == {"numAtoms": 0}


def test_garbage_input():
    with pytest.raises(CodecError):
        decode_bytes_to_dictionary(b"not an mmtf file")
    with pytest.raises(CodecError):
        decode_bytes_to_dictionary(msgpack.packb([1, 2, 3]))
    with pytest.raises(CodecError):
        decode_bytes_to_dictionary(b"\x1f\x8bbroken", gzip=True)


@pytest.mark.parametrize(
    "column",
    [
        _header(5, 1, 0) + b"A\0\0\0",
        _header(5, 1, 4) + b"\xff\xfe\0\0",
        _header(7, 1, 0) + struct.pack(">ii", 3, -2),
        _header(6, 1, 0) + struct.pack(">ii", -1, 1),
    ],
    ids=["zero-string-length", "invalid-utf8", "negative-run-length", "negative-char-code"],
)
def test_malformed_column_raises_codec_error(column):
    raw = msgpack.packb({"chainIdList": column}, use_bin_type=True)
    with pytest.raises(CodecError, match="chainIdList"):
        decode_bytes_to_dictionary(raw)


def test_corrupt_column_names_the_field():
    raw = msgpack.packb({"atomIdList": _header(8, 1, 0) + b"\x00"}, use_bin_type=True)
    with pytest.raises(CodecError, match="atomIdList"):
        decode_bytes_to_dictionary(raw)


def test_newer_major_version_is_rejected():
    with pytest.raises(CodecError, match="version"):
        decode_bytes_to_dictionary(msgpack.packb({"mmtfVersion": "2.0.0"}))
    assert decode_bytes_to_dictionary(msgpack.packb({"mmtfVersion": "1.0.0"}))
