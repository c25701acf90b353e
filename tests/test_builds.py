"""Tests for build assembly and sequential narrowing."""

import pytest

from pcparts_catalog.compat import assemble_builds, builds_for_selection, narrow_sequential
from pcparts_catalog.compat.builds import (
    STATE_BOTH,
    STATE_CPU_ONLY,
    STATE_MOTHERBOARD_ONLY,
    STATE_NONE,
)

from conftest import make_product


@pytest.fixture
def catalog():
    return [
        make_product("mb-am5", "Motherboard", {
            "socketType": "AM5", "ramType": "DDR5", "pcieInterface": "PCIe 4.0",
            "wattage": "600W", "Storagetype": "NVMe",
        }),
        make_product("mb-lga", "Motherboard", {
            "socketType": "LGA1700", "ramType": "DDR4", "pcieInterface": "PCIe 5.0",
        }),
        make_product("cpu-am5", "CPU", {"socketType": "AM5"}),
        make_product("cpu-lga", "CPU", {"socketType": "LGA1700"}),
        make_product("ram-ddr5", "RAM", {"ramType": "DDR5"}),
        make_product("gpu-4", "GPU", {"pcieInterface": "PCIe 4.0"}),
        make_product("psu-750", "PSU", {"wattage": "750W"}),
        make_product("psu-450", "PSU", {"wattage": "450W"}),
        make_product("ssd", "Storage", {"Storagetype": "NVMe"}),
        make_product("case", "Case", {"color": "black"}),
    ]


def _ids(products):
    return [p["id"] for p in products]


class TestAssembleBuilds:
    def test_only_complete_builds(self, catalog):
        """mb-lga has a CPU but no DDR4 RAM or PCIe 5.0 GPU, so it is dropped."""
        builds = assemble_builds(catalog)
        assert len(builds) == 1
        build = builds[0]
        assert build.motherboard["id"] == "mb-am5"
        assert build.is_complete()
        assert build.to_dict() == {
            "motherboard": {"id": "mb-am5", "name": "mb-am5", "brand": "", "category": "Motherboard"},
            "compatibleCpus": [{"id": "cpu-am5", "name": "cpu-am5", "brand": "", "category": "CPU"}],
            "compatibleRams": [{"id": "ram-ddr5", "name": "ram-ddr5", "brand": "", "category": "RAM"}],
            "compatibleGpus": [{"id": "gpu-4", "name": "gpu-4", "brand": "", "category": "GPU"}],
        }

    def test_no_motherboards(self, catalog):
        assert assemble_builds([p for p in catalog if p["category"] != "Motherboard"]) == []

    def test_idempotent(self, catalog):
        first = [b.to_dict() for b in assemble_builds(catalog)]
        second = [b.to_dict() for b in assemble_builds(catalog)]
        assert first == second


class TestBuildsForSelection:
    def test_motherboard_complete(self, catalog):
        builds = builds_for_selection(catalog[0], catalog)
        assert len(builds) == 1
        assert builds[0].to_dict()["selectedProduct"]["id"] == "mb-am5"

    def test_motherboard_incomplete(self, catalog):
        assert builds_for_selection(catalog[1], catalog) == []

    def test_cpu_selection_fills_other_slots(self, catalog):
        builds = builds_for_selection(catalog[3], catalog)
        assert len(builds) == 1
        data = builds[0].to_dict()
        assert data["motherboard"]["id"] == "mb-lga"
        assert data["compatibleCpus"] == []
        # Not filtered for completeness
        assert data["compatibleRams"] == []
        assert data["compatibleGpus"] == []

    def test_ram_selection(self, catalog):
        builds = builds_for_selection(catalog[4], catalog)
        assert [b.motherboard["id"] for b in builds] == ["mb-am5"]
        data = builds[0].to_dict()
        assert _ids(data["compatibleCpus"]) == ["cpu-am5"]
        assert _ids(data["compatibleGpus"]) == ["gpu-4"]
        assert data["compatibleRams"] == []

    def test_other_category(self, catalog):
        assert builds_for_selection(catalog[6], catalog) == []
        assert builds_for_selection(catalog[9], catalog) == []


class TestNarrowSequential:
    def test_cpu_only(self, catalog):
        result = narrow_sequential(["cpu-am5"], catalog)
        assert result.state == STATE_CPU_ONLY
        assert _ids(result.candidates) == ["mb-am5"]
        assert _ids(result.selected) == ["cpu-am5"]

    def test_cpu_only_socket_case_insensitive(self):
        catalog = [
            make_product("mb-lower", "Motherboard", {"socketType": "am5"}),
            make_product("mb-other", "Motherboard", {"socketType": "lga1700"}),
            make_product("cpu", "CPU", {"socketType": " AM5"}),
        ]
        result = narrow_sequential(["cpu"], catalog)
        assert result.state == STATE_CPU_ONLY
        assert _ids(result.candidates) == ["mb-lower"]

    def test_motherboard_only(self, catalog):
        result = narrow_sequential(["mb-am5"], catalog)
        assert result.state == STATE_MOTHERBOARD_ONLY
        assert _ids(result.candidates) == ["cpu-am5", "ram-ddr5", "gpu-4", "psu-750", "ssd"]

    def test_both(self, catalog):
        result = narrow_sequential(["cpu-am5", "mb-am5"], catalog)
        assert result.state == STATE_BOTH
        assert _ids(result.candidates) == ["ram-ddr5", "gpu-4"]

    def test_neither(self, catalog):
        result = narrow_sequential(["gpu-4"], catalog)
        assert result.state == STATE_NONE
        assert "gpu-4" not in _ids(result.candidates)
        assert len(result.candidates) == len(catalog) - 1

    def test_unknown_ids_ignored(self, catalog):
        result = narrow_sequential(["nope"], catalog)
        assert result.state == STATE_NONE
        assert result.selected == []
        assert len(result.candidates) == len(catalog)

    def test_selected_never_candidates(self, catalog):
        result = narrow_sequential(["mb-am5", "ram-ddr5"], catalog)
        assert "ram-ddr5" not in _ids(result.candidates)

    def test_empty_selection(self, catalog):
        with pytest.raises(ValueError, match="No products selected"):
            narrow_sequential([], catalog)
