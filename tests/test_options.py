import json

import pytest

from gltfmodel.options import WORKERS_ENV, LoadOptions, load_options


def test_defaults():
    opts = LoadOptions()
    assert opts.names is False
    assert opts.extras is False
    assert opts.load_materials is True
    assert opts.generate_normals is True
    assert opts.generate_tangents is True
    assert opts.workers == 1
    assert not opts.keeps_meta


def test_yaml_options(tmp_path):
    path = tmp_path / "opts.yaml"
    path.write_text("names: true\nworkers: 3\n", encoding="utf-8")
    opts = load_options(path)
    assert opts.names is True
    assert opts.workers == 3
    assert opts.keeps_meta


def test_json_options(tmp_path):
    path = tmp_path / "opts.json"
    path.write_text(json.dumps({"load_materials": False}), encoding="utf-8")
    assert load_options(path).load_materials is False


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "opts.yml"
    path.write_text("", encoding="utf-8")
    assert load_options(path) == LoadOptions()


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "opts.yaml"
    path.write_text("names: true\nlights: true\n", encoding="utf-8")
    with pytest.raises(ValueError, match="lights"):
        load_options(path)


def test_non_mapping_root_rejected(tmp_path):
    path = tmp_path / "opts.yaml"
    path.write_text("- names\n- extras\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_options(path)


@pytest.mark.parametrize(
    "body", ["workers: two\n", "workers: true\n", "names: 1\n"]
)
def test_wrong_value_type_rejected(tmp_path, body):
    path = tmp_path / "opts.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ValueError, match="must be"):
        load_options(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_options(tmp_path / "nope.yaml")


def test_workers_must_be_positive():
    with pytest.raises(ValueError):
        LoadOptions(workers=0)


def test_env_overrides_workers(monkeypatch):
    monkeypatch.setenv(WORKERS_ENV, "6")
    opts = LoadOptions(names=True).from_env()
    assert opts.workers == 6
    assert opts.names is True


def test_env_unset_keeps_options(monkeypatch):
    monkeypatch.delenv(WORKERS_ENV, raising=False)
    opts = LoadOptions(workers=2)
    assert opts.from_env() is opts


def test_env_must_be_integer(monkeypatch):
    monkeypatch.setenv(WORKERS_ENV, "many")
    with pytest.raises(ValueError, match=WORKERS_ENV):
        LoadOptions().from_env()
