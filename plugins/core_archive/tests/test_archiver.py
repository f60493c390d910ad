# plugins/core_archive/tests/test_archiver.py

import json
import logging
from pathlib import Path
from typing import Dict
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from backend.core.errors import CorruptData, FormatError, IOFailure, UserCancelled
from plugins.core_archive import codec
from plugins.core_archive.archiver import SceneArchiver, scene_name
from plugins.core_archive.container import ArchiveReader, ArchiveWriter
from plugins.core_archive.models import SavableInterface, SavableKind, SceneFragment


class FakeSavable(SavableInterface):
    def __init__(self, kind: SavableKind, document: Dict, resources: Dict[str, Path] = None, name: str = None):
        self.fragment = SceneFragment(kind=kind, name=name, document=document)
        self.resources = resources or {}

    def save(self) -> SceneFragment:
        return self.fragment

    def get_resources(self) -> Dict[str, str]:
        return {role: str(path) for role, path in self.resources.items()}


@pytest.fixture
def library(tmp_path) -> Path:
    return tmp_path / "project" / "Library"


@pytest.fixture
def archiver(library) -> SceneArchiver:
    return SceneArchiver(library)


@pytest.fixture
def assets(tmp_path, make_file):
    source = tmp_path / "sources"
    return {
        "mesh": make_file(source, "robot.obj", b"v 1 2 3\nf 1 1 1\n"),
        "texture": make_file(source, "robot.png", b"\x89PNG fake pixels"),
    }


def _read_scene(path: Path) -> dict:
    with ArchiveReader(codec.decode(path.read_bytes())) as reader:
        return json.loads(reader.find("scene.json").payload)


class TestSave:

    def test_scene_document_layout(self, archiver, assets, tmp_path):
        camera = FakeSavable(SavableKind.EDITOR, {"fov": 60}, name="camera")
        robot = FakeSavable(SavableKind.MODEL, {"name": "Robot"}, resources=assets)
        destination = tmp_path / "level.ultra"

        report = archiver.save([camera, robot], destination)

        assert report.success and bool(report)
        assert report.failures == []
        scene = _read_scene(destination)
        assert scene["camera"] == {"fov": 60, "resources": []}
        assert scene["models"] == [{
            "name": "Robot",
            "resources": [{"mesh": "robot.obj"}, {"texture": "robot.png"}],
        }]

    def test_save_does_not_mutate_savable_document(self, archiver, assets, tmp_path):
        robot = FakeSavable(SavableKind.MODEL, {"name": "Robot"}, resources=assets)
        archiver.save([robot], tmp_path / "level.ultra")
        assert "resources" not in robot.fragment.document

    def test_deleted_texture_is_skipped(self, archiver, assets, tmp_path, caplog):
        assets["texture"].unlink()
        robot = FakeSavable(SavableKind.MODEL, {"name": "Robot"}, resources=assets)
        destination = tmp_path / "level.ultra"

        with caplog.at_level(logging.WARNING):
            report = archiver.save([robot], destination)

        assert report.success
        (failure,) = report.failures
        assert failure.role == "texture"
        assert "could not be read" in failure.reason
        assert _read_scene(destination)["models"][0]["resources"] == [{"mesh": "robot.obj"}]

    def test_shared_resource_is_archived_once(self, archiver, assets, tmp_path):
        a = FakeSavable(SavableKind.MODEL, {"name": "A"}, resources={"mesh": assets["mesh"]})
        b = FakeSavable(SavableKind.MODEL, {"name": "B"}, resources={"mesh": assets["mesh"]})
        destination = tmp_path / "level.ultra"

        archiver.save([a, b], destination)

        with ArchiveReader(codec.decode(destination.read_bytes())) as reader:
            assert reader.names().count("robot.obj") == 1

    def test_colliding_filenames_keep_first_copy(self, archiver, tmp_path, make_file, caplog):
        first = make_file(tmp_path / "one", "rock.png", b"grey")
        second = make_file(tmp_path / "two", "rock.png", b"mossy")
        a = FakeSavable(SavableKind.MODEL, {}, resources={"texture": first})
        b = FakeSavable(SavableKind.MODEL, {}, resources={"texture": second})
        destination = tmp_path / "level.ultra"

        with caplog.at_level(logging.WARNING):
            report = archiver.save([a, b], destination)

        assert report.failures == []
        assert "already archived with different contents" in caplog.text
        with ArchiveReader(codec.decode(destination.read_bytes())) as reader:
            assert reader.find("rock.png").payload == b"grey"

    def test_reserved_resource_name_is_rejected(self, archiver, tmp_path, make_file):
        bad = make_file(tmp_path, "scene.json", b"{}")
        model = FakeSavable(SavableKind.MODEL, {}, resources={"mesh": bad})

        report = archiver.save([model], tmp_path / "level.ultra")

        assert report.success
        assert "reserved" in report.failures[0].reason

    def test_write_failure_reports_unsuccessful(self, archiver, tmp_path):
        destination = tmp_path / "missing-dir" / "level.ultra"
        report = archiver.save([FakeSavable(SavableKind.MODEL, {})], destination)
        assert not report.success
        assert not destination.exists()

    def test_failing_savable_reports_unsuccessful(self, archiver, tmp_path):
        broken = MagicMock(spec=SavableInterface)
        broken.save.side_effect = RuntimeError("actor exploded")
        destination = tmp_path / "level.ultra"

        report = archiver.save([broken], destination)

        assert not report.success
        assert not destination.exists()

    def test_editor_fragment_needs_usable_name(self):
        with pytest.raises(ValidationError):
            SceneFragment(kind=SavableKind.EDITOR, document={})
        with pytest.raises(ValidationError):
            SceneFragment(kind=SavableKind.EDITOR, name="models", document={})


class TestLoad:

    def test_round_trip_restores_resources(self, archiver, assets, library, tmp_path):
        camera = FakeSavable(SavableKind.EDITOR, {"fov": 60}, name="camera")
        robot = FakeSavable(SavableKind.MODEL, {"name": "Robot"}, resources=assets)
        destination = tmp_path / "level.ultra"
        archiver.save([camera, robot], destination)

        result = archiver.load(destination)

        assert result.failures == []
        assert result.document["camera"]["fov"] == 60
        (model,) = result.document["models"]
        restored = {role: Path(path) for ref in model["resources"] for role, path in ref.items()}
        assert restored == {"mesh": library / "robot.obj", "texture": library / "robot.png"}
        for role, path in restored.items():
            assert path.read_bytes() == assets[role].read_bytes()
        # 加载成功后归档被删除
        assert not destination.exists()

    def test_empty_scene_round_trips(self, archiver, tmp_path):
        destination = tmp_path / "empty.ultra"
        archiver.save([], destination)
        result = archiver.load(destination)
        assert result.document == {"models": []}
        assert result.outcomes == []

    def test_missing_resource_entry_is_reported(self, archiver, tmp_path):
        writer = ArchiveWriter()
        scene = {"models": [{"resources": [{"mesh": "ghost.obj"}]}]}
        writer.add("scene.json", json.dumps(scene).encode())
        source = tmp_path / "level.ultra"
        source.write_bytes(codec.encode(writer.finalize()))

        result = archiver.load(source)

        (failure,) = result.failures
        assert failure.reason == "not found in archive"
        # 失败的引用保持原样
        assert result.document["models"][0]["resources"] == [{"mesh": "ghost.obj"}]

    def test_path_like_resource_names_are_not_extracted(self, archiver, library, tmp_path):
        writer = ArchiveWriter()
        scene = {"models": [{"resources": [{"mesh": "../escape.obj"}]}]}
        writer.add("scene.json", json.dumps(scene).encode())
        source = tmp_path / "level.ultra"
        source.write_bytes(codec.encode(writer.finalize()))

        result = archiver.load(source)

        assert len(result.failures) == 1
        assert not (library.parent / "escape.obj").exists()

    def test_missing_file(self, archiver, tmp_path):
        with pytest.raises(IOFailure):
            archiver.load(tmp_path / "nothing.ultra")

    def test_corrupt_archive_is_kept(self, archiver, tmp_path):
        source = tmp_path / "level.ultra"
        source.write_bytes(b"\xff\xff\x00\x00garbage")
        with pytest.raises(CorruptData):
            archiver.load(source)
        assert source.exists()

    def test_missing_scene_entry(self, archiver, tmp_path):
        writer = ArchiveWriter()
        writer.add("robot.obj", b"mesh")
        source = tmp_path / "level.ultra"
        source.write_bytes(codec.encode(writer.finalize()))

        with pytest.raises(FormatError, match="scene.json"):
            archiver.load(source)

    @pytest.mark.parametrize("payload", [b"{ broken", b"[1, 2]", b'{"models": {}}'])
    def test_unusable_scene_document(self, archiver, tmp_path, payload):
        writer = ArchiveWriter()
        writer.add("scene.json", payload)
        source = tmp_path / "level.ultra"
        source.write_bytes(codec.encode(writer.finalize()))

        with pytest.raises(FormatError):
            archiver.load(source)


class TestDialogs:

    def test_save_as_appends_extension(self, archiver, tmp_path):
        picker = MagicMock()
        picker.pick.return_value = tmp_path / "level"

        report = archiver.save_as([], picker)

        assert report.path == tmp_path / "level.ultra"
        assert (tmp_path / "level.ultra").exists()
        picker.pick.assert_called_once_with("Save Scene", ".ultra")

    def test_cancelled_dialogs_do_nothing(self, archiver):
        picker = MagicMock()
        picker.pick.return_value = None
        assert archiver.save_as([], picker) is None

        picker.pick.side_effect = UserCancelled("dismissed")
        assert archiver.load_from(picker) is None

    def test_load_from_picked_file(self, archiver, tmp_path):
        destination = tmp_path / "level.ultra"
        archiver.save([FakeSavable(SavableKind.EDITOR, {"zoom": 2}, name="view")], destination)
        picker = MagicMock()
        picker.pick.return_value = destination

        result = archiver.load_from(picker)

        assert result.document["view"] == {"zoom": 2, "resources": []}


@pytest.mark.parametrize("path, expected", [
    ("levels/castle.ultra", "castle"),
    ("castle.backup.ultra", "castle"),
    ("castle", "castle"),
])
def test_scene_name(path, expected):
    assert scene_name(Path(path)) == expected
