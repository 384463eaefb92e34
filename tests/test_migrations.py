"""Tests for Alembic migrations."""

import importlib.util
from pathlib import Path
from types import ModuleType

from pipevault.services.lifecycle import LoadStatus

VERSIONS_DIR = Path(__file__).resolve().parent.parent / "migrations" / "versions"


def load_migration(filename: str) -> ModuleType:
    spec = importlib.util.spec_from_file_location(filename.removesuffix(".py"), VERSIONS_DIR / filename)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestMigrationChain:
    """Tests for the revision chain."""

    def test_seed_follows_schema(self) -> None:
        """Test that the yard seed runs after the schema migration."""
        schema = load_migration("7c1e2a9d4b10_create_pipevault_tables.py")
        seed = load_migration("9e4b0c6f2a31_seed_yard_layout.py")

        assert schema.down_revision is None
        assert seed.down_revision == schema.revision

    def test_load_status_follows_seed(self) -> None:
        """Test that the truck load status columns are added after the seed."""
        seed = load_migration("9e4b0c6f2a31_seed_yard_layout.py")
        status = load_migration("b5d2f8a1c7e3_add_truck_load_status.py")

        assert status.down_revision == seed.revision


class TestTruckLoadStatusMigration:
    """Tests for the add_truck_load_status migration (b5d2f8a1c7e3)."""

    migration = load_migration("b5d2f8a1c7e3_add_truck_load_status.py")

    def test_statuses_match_lifecycle(self) -> None:
        """Test that the check constraint allows every load status."""
        assert set(self.migration.LOAD_STATUSES) == {s.value for s in LoadStatus}

    def test_existing_loads_backfill_as_completed(self) -> None:
        """Test that loads recorded before booking existed count as received."""
        assert self.migration.BACKFILL_STATUS == "COMPLETED"


class TestSeedYardLayoutMigration:
    """Tests for the seed_yard_layout migration (9e4b0c6f2a31).

    These tests verify the seeded yard layout: two yards, five areas each,
    nine racks per area.
    """

    layout = load_migration("9e4b0c6f2a31_seed_yard_layout.py").build_yard_layout()

    def test_yards(self) -> None:
        """Test that yards B and C are seeded."""
        yards, _, _ = self.layout
        assert [y["id"] for y in yards] == ["B", "C"]

    def test_five_areas_per_yard(self) -> None:
        """Test that each yard has North, East, South, West and Middle areas."""
        _, areas, _ = self.layout
        assert len(areas) == 10
        yard_b = [a["name"] for a in areas if a["yard_id"] == "B"]
        assert yard_b == ["North", "East", "South", "West", "Middle"]
        assert {a["id"] for a in areas if a["yard_id"] == "C"} == {
            "C-N",
            "C-E",
            "C-S",
            "C-W",
            "C-M",
        }

    def test_nine_racks_per_area(self) -> None:
        """Test rack count and identifiers."""
        _, _, racks = self.layout
        assert len(racks) == 90
        north = [r for r in racks if r["area_id"] == "B-N"]
        assert [r["id"] for r in north] == [f"B-N-{i}" for i in range(1, 10)]
        assert north[2]["name"] == "Rack 3"

    def test_rack_capacity(self) -> None:
        """Test that every rack holds 200 joints or 2400 meters."""
        _, _, racks = self.layout
        assert all(r["capacity"] == 200 for r in racks)
        assert all(r["capacity_meters"] == 2400.0 for r in racks)

    def test_rack_ids_unique(self) -> None:
        """Test that rack ids never collide across yards."""
        _, _, racks = self.layout
        ids = [r["id"] for r in racks]
        assert len(ids) == len(set(ids))
