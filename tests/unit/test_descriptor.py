"""
Unit tests for descriptor decoding (ptimg.descriptor)
"""

import pytest
import json
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from ptimg.descriptor import Descriptor, Resource, View, load_descriptor
from ptimg.errors import DescriptorError, ParseError


SAMPLE = {
    "ptimg-version": 1,
    "resources": {"i": {"src": "0001.jpg", "width": 64, "height": 64}},
    "views": [
        {"width": 64, "height": 64, "coords": ["i:32,32+0,0>0,0", "i:32,32+32,32>32,32"]},
        {"width": 16, "height": 16, "coords": []},
    ],
}


class TestDescriptorDecoding:
    """Test cases for Descriptor.from_dict / from_json"""

    def test_from_json(self):
        """Test the kebab-case wire format decodes"""
        d = Descriptor.from_json(json.dumps(SAMPLE).encode())
        assert d.version == 1
        assert d.resources == {"i": Resource(src="0001.jpg", width=64, height=64)}
        assert len(d.views) == 2
        assert d.views[0] == View(64, 64, ("i:32,32+0,0>0,0", "i:32,32+32,32>32,32"))
        assert d.views[1].coords == ()

    def test_to_dict_round_trip(self):
        """Test to_dict emits the same wire format"""
        d = Descriptor.from_dict(SAMPLE)
        assert d.to_dict() == SAMPLE
        assert Descriptor.from_dict(d.to_dict()) == d

    def test_summary(self):
        """Test summary lists view sizes and instruction counts"""
        s = Descriptor.from_dict(SAMPLE).summary()
        assert s["version"] == 1
        assert s["views"][0] == {"index": 0, "width": 64, "height": 64, "instructions": 2}

    def test_view_keys_and_instructions(self):
        """Test View helpers parse instructions lazily"""
        v = View(8, 8, ("b:1,1+0,0>0,0", "a:1,1+0,0>0,0", "b:2,2+0,0>0,0"))
        assert v.keys() == ["b", "a"]
        assert [i.key for i in v.instructions()] == ["b", "a", "b"]
        with pytest.raises(ParseError):
            View(8, 8, ("nope",)).instructions()

    def test_is_read_only(self):
        """Test descriptors are frozen"""
        d = Descriptor.from_dict(SAMPLE)
        with pytest.raises(AttributeError):
            d.version = 2  # type: ignore[misc]

    def test_collections_are_read_only(self):
        """Test resources and views cannot be changed after decoding"""
        d = Descriptor.from_dict(SAMPLE)
        with pytest.raises(TypeError):
            d.resources["x"] = Resource("x.jpg", 1, 1)  # type: ignore[index]
        assert isinstance(d.views, tuple)
        assert isinstance(d.views[0].coords, tuple)

    def test_constructor_copies_inputs(self):
        """Test mutating the dict or list passed in does not reach the descriptor"""
        res = {"i": Resource("a.jpg", 2, 2)}
        coords = ["i:1,1+0,0>0,0"]
        d = Descriptor(1, res, [View(2, 2, coords)])  # type: ignore[arg-type]
        res["j"] = Resource("b.jpg", 2, 2)
        coords.append("i:2,2+0,0>0,0")
        assert list(d.resources) == ["i"]
        assert d.views[0].coords == ("i:1,1+0,0>0,0",)

    def test_load_descriptor(self, tmp_path):
        """Test loading from a file path"""
        p = tmp_path / "0001.ptimg.json"
        p.write_text(json.dumps(SAMPLE))
        assert load_descriptor(p).views[0].width == 64

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d.pop("ptimg-version"),
            lambda d: d.update({"ptimg-version": "1"}),
            lambda d: d.pop("views"),
            lambda d: d.update({"views": {}}),
            lambda d: d.update({"resources": []}),
            lambda d: d["resources"]["i"].pop("src"),
            lambda d: d["resources"]["i"].update({"width": -1}),
            lambda d: d["views"][0].pop("height"),
            lambda d: d["views"][0].update({"width": True}),
            lambda d: d["views"][0].update({"coords": "i:1,1+0,0>0,0"}),
            lambda d: d["views"][0].update({"coords": [1, 2]}),
            lambda d: d["views"].append("not-an-object"),
        ],
    )
    def test_rejects_bad_shapes(self, mutate):
        """Test missing or mistyped fields raise DescriptorError"""
        data = json.loads(json.dumps(SAMPLE))
        mutate(data)
        with pytest.raises(DescriptorError):
            Descriptor.from_dict(data)

    def test_rejects_bad_json(self):
        """Test undecodable input raises DescriptorError"""
        with pytest.raises(DescriptorError):
            Descriptor.from_json(b"{not json")
        with pytest.raises(DescriptorError):
            Descriptor.from_json(b"\xff\xfe\x00")
        with pytest.raises(DescriptorError):
            Descriptor.from_json("[1, 2]")
