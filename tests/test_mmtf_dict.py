import numpy as np
import pytest

from mmtfio import ArrayLengthMismatchError, MissingFieldError, MMTFDict
from mmtfio.mmtf_dict import FIELDS, REQUIRED_FIELDS, FieldKind


def test_empty_dictionary_has_every_field():
    d = MMTFDict()
    assert set(d) == set(FIELDS)
    assert set(REQUIRED_FIELDS) <= set(d)
    assert repr(d) == f"MMTF dictionary with {len(FIELDS)} fields"
    assert d["numAtoms"] == 0
    assert d["xCoordList"] == []
    assert d["structureId"] == ""
    # each instance gets fresh lists
    d["atomIdList"].append(1)
    assert MMTFDict()["atomIdList"] == []


def test_wraps_existing_dict():
    raw = {"numAtoms": 2}
    d = MMTFDict(raw)
    d["title"] = "x"
    assert d.dict is raw
    assert raw["title"] == "x"
    assert "numAtoms" in d
    assert d.get("missing", 5) == 5
    assert len(d) == 2


def test_typed_accessors():
    d = MMTFDict(
        {
            "numAtoms": np.int32(3),
            "title": "t",
            "groupIdList": np.array([1, 2], dtype=np.int32),
            "xCoordList": [1.0, 2.5],
            "chainIdList": ["A", "B"],
            "altLocList": ["\0", "A"],
            "groupList": [{"groupName": "ALA"}],
            "resolution": 2,
        }
    )
    assert d.get_int("numAtoms") == 3
    assert d.get_string("title") == "t"
    assert d.get_int_array("groupIdList").tolist() == [1, 2]
    assert d.get_float_array("xCoordList").tolist() == [1.0, 2.5]
    assert d.get_string_array("chainIdList") == ["A", "B"]
    assert d.get_char_array("altLocList") == ["\0", "A"]
    assert d.get_records("groupList") == [{"groupName": "ALA"}]
    assert d.get_typed("resolution") == 2.0
    assert d.get_typed("groupIdList").tolist() == [1, 2]
    assert FIELDS["altLocList"][0] is FieldKind.CHAR_ARRAY


@pytest.mark.parametrize(
    "getter, value",
    [
        ("get_int", "3"),
        ("get_int", True),
        ("get_string", 3),
        ("get_int_array", [1.5]),
        ("get_int_array", 4),
        ("get_float_array", ["a"]),
        ("get_string_array", [1]),
        ("get_char_array", ["AB"]),
        ("get_records", [1]),
    ],
)
def test_typed_accessor_mismatch(getter, value):
    d = MMTFDict({"f": value})
    with pytest.raises(MissingFieldError) as exc:
        getattr(d, getter)("f")
    assert exc.value.field == "f"


def test_missing_field_is_a_key_error():
    d = MMTFDict({})
    with pytest.raises(KeyError):
        d.get_int("numAtoms")
    with pytest.raises(MissingFieldError, match="'chainsPerModel': missing"):
        d.check_required()


def test_check_lengths():
    d = MMTFDict()
    d.check_lengths()
    d["chainsPerModel"] = [1]
    with pytest.raises(ArrayLengthMismatchError):
        d.check_lengths()
    d["groupsPerChain"] = [0]
    d["chainIdList"] = ["A"]
    d["chainNameList"] = ["A"]
    d.check_lengths()
    d["atomIdList"] = [1]
    with pytest.raises(ArrayLengthMismatchError, match="per-atom"):
        d.check_lengths()
