import json
import math

import numpy as np
import pytest

from pantilt_scanner.recorder import CsvRecorder
from scan_analysis.batch_store import BatchStore
from scan_analysis.errors import NoData


def write_recording(root, cloud, angle_step=10.0, settle_delay_ms=50, status="complete", start=1000.0):
    """Write a recording the way the scan controller does."""
    recorder = CsvRecorder(str(root))
    recorder.setup()
    recorder.send_recording_name(f"{angle_step:g}deg-{settle_delay_ms:g}ms")
    recorder.send_property("angle_step", angle_step)
    recorder.send_property("settle_delay_ms", settle_delay_ms)
    for i in range(len(cloud)):
        recorder.set_time(start + 0.5 * i)
        recorder.log("yaw", float(i))
        recorder.log("distance", 20.0 + i)
        recorder.log("position", np.array(cloud[: i + 1], dtype=float))
    recorder.send_property("status", status)
    recorder.close()
    return recorder.run_dir


CLOUD = [[-1.0, 20.0, 0.0], [0.0, 20.0, 1.0], [1.0, 20.0, 0.0], [0.0, 20.0, -1.0]]


def test_query_returns_latest_at_snapshots(tmp_path):
    write_recording(tmp_path, CLOUD)
    store = BatchStore.open(tmp_path)

    (recording,) = list(store.recordings())
    (batch,) = recording.query()

    assert [r.capture_time for r in batch] == [1000.0, 1000.5, 1001.0, 1001.5]
    assert [len(r.points) for r in batch] == [1, 2, 3, 4]
    np.testing.assert_array_equal(batch[-1].points, np.array(CLOUD))
    np.testing.assert_array_equal(batch[1].latest_point, np.array(CLOUD[1]))
    assert not batch[-1].points.flags.writeable


def test_records_carry_run_constants_and_scalars(tmp_path):
    write_recording(tmp_path, CLOUD, angle_step=2.5, settle_delay_ms=20)
    records = BatchStore.open(tmp_path).query_all()

    record = records[2]
    assert record.recording_name == "2.5deg-20ms"
    assert record.angle_step == 2.5
    assert record.settle_delay_ms == 20.0
    assert record.scalars == {"yaw": 2.0, "distance": 22.0}
    assert math.isnan(record.scalar("temperature"))
    assert record.start_time.tzinfo is not None


def test_single_recording_directory_opens_as_store(tmp_path):
    run_dir = write_recording(tmp_path, CLOUD)

    store = BatchStore.open(run_dir)

    assert store.paths == [run_dir]
    assert len(store.query_all()) == 4


def test_unfinished_and_empty_recordings_are_skipped(tmp_path):
    write_recording(tmp_path, CLOUD, status="aborted")
    write_recording(tmp_path, [])
    complete = write_recording(tmp_path, CLOUD, settle_delay_ms=80)

    store = BatchStore.open(tmp_path)

    assert [r.path for r in store.recordings()] == [complete]
    assert {r.settle_delay_ms for r in store.query_all()} == {80.0}


def test_recording_without_status_counts_as_complete(tmp_path):
    run_dir = write_recording(tmp_path, CLOUD)
    properties_path = run_dir / "properties.json"
    properties = json.loads(properties_path.read_text())
    del properties["properties"]["status"]
    properties_path.write_text(json.dumps(properties))

    assert len(BatchStore.open(tmp_path).query_all()) == 4


def test_missing_run_property_is_no_data(tmp_path):
    run_dir = write_recording(tmp_path, CLOUD)
    properties_path = run_dir / "properties.json"
    properties = json.loads(properties_path.read_text())
    del properties["properties"]["settle_delay_ms"]
    properties_path.write_text(json.dumps(properties))

    with pytest.raises(NoData, match="settle_delay_ms"):
        BatchStore.open(tmp_path).query_all()


def test_query_splits_into_batches(tmp_path):
    write_recording(tmp_path, CLOUD)
    (recording,) = list(BatchStore.open(tmp_path).recordings())

    batches = recording.query(batch_size=3)

    assert [len(b) for b in batches] == [3, 1]
    assert len(batches[1][0].points) == 4


def test_open_requires_recordings(tmp_path):
    with pytest.raises(NoData):
        BatchStore.open(tmp_path / "missing")
    with pytest.raises(NoData):
        BatchStore.open(tmp_path)

    write_recording(tmp_path, CLOUD, status="aborted")
    with pytest.raises(NoData):
        BatchStore.open(tmp_path).query_all()
