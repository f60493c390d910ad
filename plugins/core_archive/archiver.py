# plugins/core_archive/archiver.py

import copy
import json
import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from backend.core.errors import CorruptData, FormatError, IOFailure, UserCancelled
from backend.core.utils import write_atomic
from . import codec
from .container import ArchiveReader, ArchiveWriter
from .models import (
    MODELS_KEY, RESOURCES_KEY, SCENE_ENTRY_NAME, SCENE_EXTENSION,
    FilePickerInterface, LoadResult, ResourceOutcome, SavableInterface, SavableKind, SaveReport,
    validate_entry_name,
)

logger = logging.getLogger(__name__)


def scene_name(path: Path) -> str:
    """场景名称：文件名中第一个点之前的部分。"""
    return Path(path).name.split(".", 1)[0]


class SceneArchiver:
    """
    把场景文档和它引用的资源文件打包成一个压缩归档，或者反过来，
    把归档中的资源释放到项目的 Library 目录中。
    """

    def __init__(self, library_path: Path, compression_level: int = 6):
        self.library_path = Path(library_path)
        self.compression_level = compression_level

    # --- 保存 ---

    def save(self, savables: Iterable[SavableInterface], destination: Path) -> SaveReport:
        destination = Path(destination)
        writer = ArchiveWriter()
        outcomes: List[ResourceOutcome] = []
        digests: Dict[str, str] = {}
        root: Dict[str, Any] = {MODELS_KEY: []}

        try:
            for savable in savables:
                fragment = savable.save()
                document = copy.deepcopy(fragment.document)

                resources = []
                for role, source in savable.get_resources().items():
                    outcome = self._archive_resource(writer, digests, role, Path(source))
                    outcomes.append(outcome)
                    if outcome.ok:
                        resources.append({role: outcome.filename})
                document[RESOURCES_KEY] = resources

                if fragment.kind == SavableKind.EDITOR:
                    root[fragment.name] = document
                else:
                    root[MODELS_KEY].append(document)

            rendered = json.dumps(root, indent=2)
            writer.add(SCENE_ENTRY_NAME, rendered.encode("utf-8"))
            blob = codec.encode(writer.finalize(), self.compression_level)
            write_atomic(destination, blob)
        except Exception as e:
            logger.error(f"Failed to save scene to {destination}: {e}", exc_info=e)
            return SaveReport(path=destination, success=False, outcomes=outcomes)

        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(
            f"Saved scene '{scene_name(destination)}' to {destination} "
            f"({len(outcomes) - failed} resources archived, {failed} skipped)."
        )
        return SaveReport(path=destination, success=True, outcomes=outcomes)

    def _archive_resource(
        self, writer: ArchiveWriter, digests: Dict[str, str], role: str, source: Path
    ) -> ResourceOutcome:
        filename = source.name
        outcome = ResourceOutcome(role=role, filename=filename, path=str(source))

        reason = self._unsafe_name_reason(filename)
        if reason is None:
            try:
                payload = source.read_bytes()
            except OSError as e:
                reason = f"could not be read: {e}"

        if reason is not None:
            logger.warning(f"Skipping resource '{role}' ({source}): {reason}")
            outcome.ok = False
            outcome.reason = reason
            return outcome

        digest = hashlib.sha256(payload).hexdigest()
        if filename in digests:
            # 资源文件名在归档内不分命名空间：同名资源只保存第一份
            if digests[filename] != digest:
                logger.warning(
                    f"Resource filename '{filename}' is already archived with different contents; "
                    f"{source} will resolve to the first copy."
                )
            return outcome

        writer.add(filename, payload)
        digests[filename] = digest
        return outcome

    # --- 加载 ---

    def load(self, source: Path) -> LoadResult:
        """
        解压并解析归档，把 models 中引用的资源写入 Library，
        并把引用改写为完整路径。成功后删除原归档文件。
        """
        source = Path(source)
        try:
            blob = source.read_bytes()
        except OSError as e:
            raise IOFailure(f"Failed to read scene archive: {e}", source) from e

        try:
            data = codec.decode(blob)
        except CorruptData as e:
            raise CorruptData(str(e), source) from e

        with ArchiveReader(data) as reader:
            entry = reader.find(SCENE_ENTRY_NAME)
            if entry is None:
                raise FormatError(f"Archive does not contain '{SCENE_ENTRY_NAME}'.", source)

            try:
                document = json.loads(entry.payload.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise FormatError(f"Scene document could not be parsed: {e}", source) from e
            if not isinstance(document, dict):
                raise FormatError("Scene document must be a JSON object.", source)

            outcomes = self._extract_resources(reader, document, source)

        try:
            source.unlink()
        except OSError as e:
            logger.warning(f"Could not delete scene archive {source} after loading: {e}")

        logger.info(f"Loaded scene '{scene_name(source)}' from {source}.")
        return LoadResult(document=document, outcomes=outcomes)

    def _extract_resources(self, reader: ArchiveReader, document: Dict[str, Any], source: Path) -> List[ResourceOutcome]:
        models = document.get(MODELS_KEY, [])
        if not isinstance(models, list):
            raise FormatError(f"Scene document field '{MODELS_KEY}' must be an array.", source)

        outcomes: List[ResourceOutcome] = []
        for model in models:
            resources = model.get(RESOURCES_KEY, []) if isinstance(model, dict) else None
            if not isinstance(resources, list):
                logger.warning(f"Skipping model entry with malformed resources in {source}")
                continue

            for resource in resources:
                if not isinstance(resource, dict) or len(resource) != 1:
                    logger.warning(f"Skipping malformed resource reference {resource!r} in {source}")
                    continue
                (role, filename), = resource.items()
                outcome = self._extract_resource(reader, role, filename)
                outcomes.append(outcome)
                if outcome.ok:
                    resource[role] = outcome.path

        return outcomes

    def _extract_resource(self, reader: ArchiveReader, role: str, filename: Any) -> ResourceOutcome:
        outcome = ResourceOutcome(role=role, filename=str(filename))

        reason = self._unsafe_name_reason(filename) if isinstance(filename, str) else "filename is not a string"
        entry = None
        if reason is None:
            entry = reader.find(filename)
            if entry is None:
                reason = "not found in archive"

        if entry is not None:
            target = self.library_path / filename
            try:
                self.library_path.mkdir(parents=True, exist_ok=True)
                target.write_bytes(entry.payload)
                outcome.path = str(target)
            except OSError as e:
                reason = f"could not be written to {target}: {e}"

        if reason is not None:
            logger.error(f"Failed to extract resource '{role}' ({filename}): {reason}")
            outcome.ok = False
            outcome.reason = reason
        return outcome

    @staticmethod
    def _unsafe_name_reason(filename: str) -> Optional[str]:
        if filename == SCENE_ENTRY_NAME:
            return f"'{SCENE_ENTRY_NAME}' is reserved for the scene document"
        try:
            validate_entry_name(filename)
        except ValueError as e:
            return str(e)
        return None

    # --- 对话框 ---

    def save_as(self, savables: Iterable[SavableInterface], picker: FilePickerInterface) -> Optional[SaveReport]:
        destination = self._pick(picker, "Save Scene")
        if destination is None:
            return None
        if not destination.name.lower().endswith(SCENE_EXTENSION):
            destination = destination.with_name(destination.name + SCENE_EXTENSION)
        return self.save(savables, destination)

    def load_from(self, picker: FilePickerInterface) -> Optional[LoadResult]:
        source = self._pick(picker, "Load Scene")
        if source is None:
            return None
        return self.load(source)

    @staticmethod
    def _pick(picker: FilePickerInterface, title: str) -> Optional[Path]:
        try:
            chosen = picker.pick(title, SCENE_EXTENSION)
        except UserCancelled:
            chosen = None
        if chosen is None:
            logger.info(f"{title} dialog dismissed.")
            return None
        return Path(chosen)
