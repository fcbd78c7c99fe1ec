import numpy as np
import pytest

from gltfmodel import LoadError, LoadOptions, load, load_bytes
from gltfmodel.errors import E_ATTRIBUTE_LENGTH_MISMATCH, StructureError
from gltfmodel.reporting import (
    Reporter,
    TaskRecord,
    TaskStatus,
    set_reporter,
)

from gltf_builder import TRIANGLE, AssetBuilder, triangle_asset


class RecordingReporter(Reporter):
    def __init__(self) -> None:
        super().__init__()
        self.started: list[str] = []
        self.ended: dict[str, TaskStatus] = {}
        self.records: dict[str, TaskRecord] = {}
        self.messages: list[str] = []

    def _on_start(self, rec: TaskRecord) -> None:
        self.started.append(rec.task_id)

    def _on_end(self, rec: TaskRecord) -> None:
        self.ended[rec.task_id] = rec.status
        self.records[rec.task_id] = rec

    def status(self, message: str, **fields) -> None:
        self.messages.append(message)

    def error(self, message: str, **fields) -> None:
        self.messages.append(message)

    def section(self, title: str) -> None:
        self.messages.append(title)


@pytest.fixture
def recorder():
    rep = RecordingReporter()
    set_reporter(rep)
    return rep


def _many_meshes(count: int, bad=()) -> AssetBuilder:
    b = AssetBuilder()
    nodes = []
    for i in range(count):
        shifted = [[x + i, y, z] for x, y, z in TRIANGLE]
        if i in bad:
            prim = b.add_primitive(shifted, TEXCOORD_0=[[0, 0]])
        else:
            prim = b.add_primitive(shifted)
        nodes.append(b.add_node(mesh=b.add_mesh(prim)))
    b.add_scene(nodes)
    return b


def test_load_gltf_and_glb_agree(tmp_path):
    b = triangle_asset()
    from_gltf = load(b.write_gltf(tmp_path))
    from_glb = load(b.write_glb(tmp_path))
    assert from_gltf.summary() == from_glb.summary()
    np.testing.assert_array_equal(
        from_gltf.meshes[0].primitives[0].positions,
        from_glb.meshes[0].primitives[0].positions,
    )


def test_load_accepts_string_path(tmp_path):
    path = triangle_asset().write_glb(tmp_path)
    assert load(str(path)).summary()["meshes"] == 1


def test_summary_counts():
    summary = load_bytes(_many_meshes(3).embedded_json()).summary()
    assert summary["meshes"] == 3
    assert summary["primitives"] == 3
    assert summary["vertices"] == 9
    assert summary["nodes"] == 3
    assert summary["scenes"] == 1
    assert summary["scene"] == 0
    assert summary["animations"] == 0
    assert summary["duration"] == 0.0


def test_parallel_load_matches_sequential():
    data = _many_meshes(8).embedded_json()
    seq = load_bytes(data, LoadOptions(workers=1))
    par = load_bytes(data, LoadOptions(workers=4))
    assert seq.summary() == par.summary()
    for a, b in zip(seq.meshes, par.meshes):
        np.testing.assert_array_equal(
            a.primitives[0].positions, b.primitives[0].positions
        )
        np.testing.assert_array_equal(
            a.primitives[0].normals, b.primitives[0].normals
        )
    # Slots keep source order regardless of completion order.
    firsts = [m.primitives[0].positions[0, 0] for m in par.meshes]
    assert firsts == list(range(8))


@pytest.mark.parametrize("workers", [1, 4])
def test_first_failing_index_is_reported(workers):
    data = _many_meshes(6, bad={1, 4}).embedded_json()
    with pytest.raises(StructureError) as exc:
        load_bytes(data, LoadOptions(workers=workers))
    assert exc.value.code == E_ATTRIBUTE_LENGTH_MISMATCH
    assert exc.value.context["mesh"] == 1


def test_reporter_sees_pipeline_tasks(recorder):
    load_bytes(triangle_asset().embedded_json())
    assert recorder.started[0] == "resolve"
    for task_id in ("resolve", "meshes", "scene", "animations"):
        assert recorder.ended[task_id] is TaskStatus.SUCCESS
    assert recorder.records["meshes"].completed == 1
    assert recorder.records["resolve"].meta["bytes"] > 0


def test_failed_task_is_marked(recorder):
    data = _many_meshes(2, bad={0}).embedded_json()
    with pytest.raises(LoadError):
        load_bytes(data)
    assert recorder.ended["meshes"] is TaskStatus.FAILED
    assert "scene" not in recorder.started
    assert "animations" not in recorder.started


def test_materials_task_skipped_when_disabled(recorder):
    load_bytes(
        triangle_asset().embedded_json(), LoadOptions(load_materials=False)
    )
    assert "materials" not in recorder.started
    assert "images" not in recorder.started


def test_summary_is_logged(caplog):
    caplog.set_level("INFO", logger="gltfmodel")
    load_bytes(triangle_asset().embedded_json())
    assert any("Loaded model" in r.getMessage() for r in caplog.records)


def test_load_error_carries_code_and_context():
    data = _many_meshes(1, bad={0}).embedded_json()
    with pytest.raises(LoadError) as exc:
        load_bytes(data)
    payload = exc.value.to_dict()
    assert payload["code"] == E_ATTRIBUTE_LENGTH_MISMATCH
    assert payload["context"]["mesh"] == 0
