"""
Unit tests for the external catalog reader and change log access:
deduplication over the point/code join, key lookups, change log ordering
and the processed flag.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

from services.alarm_sync.external_source import (
    ChangeLogSource,
    ChangeType,
    ExternalPoint,
    ExternalSource,
)


# ---------------------------------------------------------------------------
# get_distinct_points
# ---------------------------------------------------------------------------


class TestDistinctPoints:
    @pytest.mark.asyncio
    async def test_duplicate_join_rows_collapse_to_first_system_name(self, catalog, source):
        """Three code rows for one point -> one row, the 'Alpha' one."""
        await catalog.add_points(catalog.point(10, "Boiler-1", system_id=5))
        await catalog.add_codes((5, "Gamma"), (5, "Alpha"), (5, "Beta"))

        points = await source.get_distinct_points()

        assert len(points) == 1
        assert points[0].system_name == "Alpha"
        assert points[0].name == "Boiler-1"

    @pytest.mark.asyncio
    async def test_one_row_per_composite_key(self, catalog, source):
        await catalog.add_points(
            catalog.point(1, "Pump-1", system_id=5),
            catalog.point(2, "Pump-2", system_id=5),
            catalog.point(3, "Fan-3", system_id=6),
        )
        await catalog.add_codes((5, "Water"), (5, "Cooling"), (6, "HVAC"), (6, "Air"))

        points = await source.get_distinct_points()

        keys = [p.key for p in points]
        assert len(keys) == len(set(keys)) == 3
        assert [p.object_seq for p in points] == [1, 2, 3]
        assert {p.name: p.system_name for p in points} == {
            "Pump-1": "Cooling",
            "Pump-2": "Cooling",
            "Fan-3": "Air",
        }

    @pytest.mark.asyncio
    async def test_repeated_calls_are_stable(self, catalog, source):
        await catalog.add_points(catalog.point(4, "Tank-4", system_id=9))
        await catalog.add_codes((9, "Zulu"), (9, "Mike"), (9, "Echo"))

        first = await source.get_distinct_points()
        second = await source.get_distinct_points()

        assert first == second
        assert first[0].system_name == "Echo"

    @pytest.mark.asyncio
    async def test_filters_alarm_level(self, catalog, source):
        await catalog.add_points(
            catalog.point(1, "Critical", alarm_level=1),
            catalog.point(2, "Info", alarm_level=2),
        )
        await catalog.add_codes((7, "HVAC"))

        points = await source.get_distinct_points()

        assert [p.name for p in points] == ["Critical"]

    @pytest.mark.asyncio
    async def test_excludes_null_code_name_and_unjoined_points(self, catalog, source):
        await catalog.add_points(
            catalog.point(1, "Joined", system_id=7),
            catalog.point(2, "NullCode", system_id=8),
            catalog.point(3, "NoCode", system_id=99),
        )
        await catalog.add_codes((7, "HVAC"), (8, None))

        points = await source.get_distinct_points()

        assert [p.name for p in points] == ["Joined"]

    @pytest.mark.asyncio
    async def test_null_columns_map_to_defaults(self, catalog, source):
        row = catalog.point(1, None)
        row.update({"OBJ_DESC": None, "OBJ_ABOVE": None, "OBJ_BELOW": None})
        await catalog.add_points(row)
        await catalog.add_codes((7, "HVAC"))

        (point,) = await source.get_distinct_points()

        assert point.name == ""
        assert point.description == ""
        assert point.threshold_above == 0
        assert point.threshold_below == 0

    @pytest.mark.asyncio
    async def test_empty_catalog(self, source):
        assert await source.get_distinct_points() == []


# ---------------------------------------------------------------------------
# get_points_by_scope_and_parent
# ---------------------------------------------------------------------------


class TestPointsByScope:
    @pytest.mark.asyncio
    async def test_filters_on_code_table(self, catalog, source):
        await catalog.add_points(
            catalog.point(1, "Pump-1", system_id=5),
            catalog.point(2, "Fan-2", system_id=6),
        )
        await catalog.add_codes(
            (5, "Water", 100, 1),
            (5, "Aqua", 200, 1),
            (6, "HVAC", 100, 2),
        )

        points = await source.get_points_by_scope_and_parent(100, 1)

        assert len(points) == 1
        assert points[0].name == "Pump-1"
        assert points[0].system_name == "Water"

    @pytest.mark.asyncio
    async def test_no_match(self, catalog, source):
        await catalog.add_points(catalog.point(1, "Pump-1", system_id=5))
        await catalog.add_codes((5, "Water", 100, 1))

        assert await source.get_points_by_scope_and_parent(300, 1) == []


# ---------------------------------------------------------------------------
# get_point_by_keys
# ---------------------------------------------------------------------------


class TestPointByKeys:
    @pytest.mark.asyncio
    async def test_found(self, catalog, source):
        await catalog.add_points(
            catalog.point(42, "Pump-7", object_id=4201, system_id=7, device_id=1, desc="Main pump"),
        )
        await catalog.add_codes((7, "Water"), (7, "Boiler"))

        point = await source.get_point_by_keys(42, 7, 1)

        assert isinstance(point, ExternalPoint)
        assert point.name == "Pump-7"
        assert point.object_id == 4201
        assert point.description == "Main pump"
        assert point.system_name == "Boiler"

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self, catalog, source):
        await catalog.add_points(catalog.point(42, "Pump-7"))
        await catalog.add_codes((7, "Water"))

        assert await source.get_point_by_keys(42, 7, 2) is None

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, source):
        assert await source.get_point_by_keys(None, 7, 1) is None
        assert await source.get_point_by_keys(42, None, 1) is None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrorPropagation:
    @pytest.mark.asyncio
    async def test_query_errors_propagate(self, tmp_path):
        """No tables -> the driver error reaches the caller untouched."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            with pytest.raises(OperationalError):
                await ExternalSource(engine).get_distinct_points()
            with pytest.raises(OperationalError):
                await ChangeLogSource(engine).has_unprocessed_changes()
        finally:
            await engine.dispose()


# ---------------------------------------------------------------------------
# Change log
# ---------------------------------------------------------------------------


class TestChangeLog:
    @pytest.mark.asyncio
    async def test_has_unprocessed_changes(self, catalog, changes):
        assert await changes.has_unprocessed_changes() is False
        await catalog.add_change("UPDATE", object_seq=1, system_id=7, device_id=1)
        assert await changes.has_unprocessed_changes() is True
        assert await changes.count_unprocessed() == 1

    @pytest.mark.asyncio
    async def test_unprocessed_oldest_first(self, catalog, changes):
        late = await catalog.add_change(
            "DELETE", object_seq=2, changed_at=datetime(2025, 4, 3, 12, 0),
        )
        early = await catalog.add_change(
            "INSERT", object_seq=1, system_id=7, device_id=1,
            changed_at=datetime(2025, 4, 3, 8, 0),
        )

        entries = await changes.get_unprocessed()

        assert [e.log_id for e in entries] == [early, late]
        assert entries[0].change_type == ChangeType.INSERT
        assert entries[0].object_seq == 1
        assert entries[1].system_id is None

    @pytest.mark.asyncio
    async def test_change_type_normalised(self, catalog, changes):
        await catalog.add_change(" update ", object_seq=1, system_id=7, device_id=1)

        (entry,) = await changes.get_unprocessed()

        assert entry.change_type == "UPDATE"

    @pytest.mark.asyncio
    async def test_mark_processed_only_given_ids(self, catalog, changes):
        first = await catalog.add_change("UPDATE", object_seq=1, system_id=7, device_id=1)
        second = await catalog.add_change("UPDATE", object_seq=2, system_id=7, device_id=1)

        marked = await changes.mark_processed([first])

        assert marked == 1
        assert await catalog.processed() == {first: True, second: False}
        assert [e.log_id for e in await changes.get_unprocessed()] == [second]

    @pytest.mark.asyncio
    async def test_mark_processed_empty_is_noop(self, changes):
        assert await changes.mark_processed([]) == 0

    @pytest.mark.asyncio
    async def test_unprocessed_capped_at_batch_size(self, catalog, external_engine):
        ids = [
            await catalog.add_change("UPDATE", object_seq=n, system_id=7, device_id=1)
            for n in range(5)
        ]
        changes = ChangeLogSource(external_engine, batch_size=3)

        first = await changes.get_unprocessed()
        assert [e.log_id for e in first] == ids[:3]

        await changes.mark_processed([e.log_id for e in first])
        assert [e.log_id for e in await changes.get_unprocessed()] == ids[3:]

    @pytest.mark.asyncio
    async def test_mark_processed_in_chunks(self, catalog, external_engine):
        ids = [
            await catalog.add_change("DELETE", object_seq=n)
            for n in range(5)
        ]
        changes = ChangeLogSource(external_engine, chunk_size=2)

        assert await changes.mark_processed(ids) == 5
        assert await catalog.processed() == {log_id: True for log_id in ids}
