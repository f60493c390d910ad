# plugins/core_assets/index.py

import os
import shutil
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from backend.core.contracts import HookManager
from .contracts import PreviewRendererInterface
from .models import (
    LIBRARY_DIRNAME, TRACKED_TYPES,
    AssetRecord, AssetType, ProjectRecord, ScanReport, SyncAction, SyncOutcome,
    detect_asset_type,
)

logger = logging.getLogger(__name__)


class AssetIndex:
    """
    项目资产的内存索引，以及 Library 内容缓存的同步逻辑。

    索引按类型分桶，每个桶以项目相对路径为键。扫描采用分代标记-清除：
    每次扫描都会递增纪元，被观察到的记录会被打上当前纪元，
    扫描结束时所有未被打上当前纪元的记录都会被清除。
    """

    def __init__(
        self,
        root: Path,
        renderer: Optional[PreviewRendererInterface] = None,
        hook_manager: Optional[HookManager] = None,
    ):
        self.root = Path(root)
        self._renderer = renderer
        self._hook_manager = hook_manager
        self._epoch = 0
        self._assets: Dict[AssetType, Dict[str, AssetRecord]] = {t: {} for t in TRACKED_TYPES}
        # None 表示“待生成”：下一次调用 previews() 时渲染
        self._previews: Dict[AssetType, Dict[UUID, Optional[Any]]] = {t: {} for t in TRACKED_TYPES}

    @property
    def library_path(self) -> Path:
        return self.root / LIBRARY_DIRNAME

    @property
    def epoch(self) -> int:
        return self._epoch

    def library_path_for(self, record: AssetRecord) -> Path:
        return self.library_path / record.library_filename

    # --- 查询 ---

    def get_asset(self, asset_id: UUID) -> Optional[AssetRecord]:
        for bucket in self._assets.values():
            for record in bucket.values():
                if record.id == asset_id:
                    return record
        return None

    def assets(self, asset_type: Optional[AssetType] = None) -> List[AssetRecord]:
        types = TRACKED_TYPES if asset_type is None else (asset_type,)
        return [
            record
            for t in types
            for _, record in sorted(self._assets.get(t, {}).items())
        ]

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._assets.values())

    # --- 数据库 <-> 索引 ---

    def to_record(self, name: str) -> ProjectRecord:
        return ProjectRecord(name=name, version=1, assets=[r.model_copy() for r in self.assets()])

    def build_index(self, project_record: ProjectRecord) -> None:
        """从数据库记录重建内存索引，并为每个资产预留一个待生成的预览槽。"""
        self.release_previews()
        self._assets = {t: {} for t in TRACKED_TYPES}

        for asset in project_record.assets:
            if asset.type not in self._assets:
                logger.warning(f"Ignoring database asset '{asset.source_path}' of type '{asset.type.value}'")
                continue
            record = asset.model_copy(update={"purge_generation": 0})
            self._assets[asset.type][record.source_path] = record
            self.prepare_preview(asset.type, record.id)

    # --- 同步 ---

    def scan(self) -> ScanReport:
        """
        遍历项目目录，使索引和 Library 与文件系统保持一致。
        单个文件的失败只会被记录在报告中，扫描会继续进行。
        """
        self._epoch += 1
        report = ScanReport(epoch=self._epoch)

        for path, asset_type in self._walk():
            source_path = path.relative_to(self.root).as_posix()
            try:
                last_modified = path.stat().st_mtime_ns
            except OSError as e:
                logger.warning(f"Skipping {asset_type.value} that could not be read: {path}: {e}")
                continue

            bucket = self._assets[asset_type]
            record = bucket.get(source_path)

            if record is None:
                record = AssetRecord(type=asset_type, source_path=source_path, last_modified=last_modified)
                bucket[source_path] = record
                outcome = self._sync_to_library(record, path, SyncAction.ADDED)
                logger.info(f"Added {asset_type.value}: {path}")
                self._record(report, outcome)
            elif record.last_modified != last_modified or not self.library_path_for(record).exists():
                record.last_modified = last_modified
                outcome = self._sync_to_library(record, path, SyncAction.UPDATED)
                logger.info(f"Updated {asset_type.value}: {path}")
                self._record(report, outcome)

            record.purge_generation = self._epoch

        self._purge_missing(report)
        return report

    def _walk(self) -> Iterator[Tuple[Path, AssetType]]:
        library = os.path.normcase(os.path.abspath(self.library_path))
        for current_root, dirnames, filenames in os.walk(self.root):
            # 跳过 Library 子树
            dirnames[:] = [
                d for d in dirnames
                if os.path.normcase(os.path.abspath(os.path.join(current_root, d))) != library
            ]
            for filename in filenames:
                path = Path(current_root) / filename
                asset_type = detect_asset_type(path)
                if asset_type is AssetType.UNKNOWN or not path.is_file():
                    continue
                yield path, asset_type

    def _sync_to_library(self, record: AssetRecord, source: Path, action: SyncAction) -> SyncOutcome:
        outcome = SyncOutcome(
            action=action, asset_type=record.type, source_path=record.source_path, asset_id=record.id
        )
        try:
            self.library_path.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, self.library_path_for(record))
        except OSError as e:
            # 记录保留在索引中；下一次扫描会因为 Library 副本缺失而重试
            logger.error(f"Failed to copy file: {source}: {e}")
            outcome.ok = False
            outcome.reason = str(e)

        self.prepare_preview(record.type, record.id)
        return outcome

    def _purge_missing(self, report: ScanReport) -> None:
        for asset_type, bucket in self._assets.items():
            stale = [record for record in bucket.values() if record.purge_generation != self._epoch]

            for record in stale:
                logger.warning(f"Removed {asset_type.value}: {self.root / record.source_path}")
                del bucket[record.source_path]
                self.remove_preview(asset_type, record.id)

                outcome = SyncOutcome(
                    action=SyncAction.REMOVED, asset_type=asset_type,
                    source_path=record.source_path, asset_id=record.id,
                )
                try:
                    self.library_path_for(record).unlink(missing_ok=True)
                except OSError as e:
                    logger.error(f"Failed to remove asset: {self.library_path_for(record)}: {e}")
                    outcome.ok = False
                    outcome.reason = str(e)
                self._record(report, outcome)

    def _record(self, report: ScanReport, outcome: SyncOutcome) -> None:
        report.outcomes.append(outcome)
        if self._hook_manager is not None:
            self._hook_manager.trigger("asset_synced", outcome=outcome, index=self)

    # --- 预览缓存 ---

    def prepare_preview(self, asset_type: AssetType, asset_id: UUID) -> None:
        """把预览槽重置为待生成，下一次渲染时重新生成。"""
        self.remove_preview(asset_type, asset_id)
        self._previews.setdefault(asset_type, {})[asset_id] = None

    def remove_preview(self, asset_type: AssetType, asset_id: UUID) -> None:
        slots = self._previews.get(asset_type, {})
        if asset_id not in slots:
            return
        handle = slots.pop(asset_id)
        if handle is not None:
            self._release(handle)

    def previews(
        self, asset_type: AssetType, renderer: Optional[PreviewRendererInterface] = None
    ) -> Dict[UUID, Optional[Any]]:
        """
        渲染所有待生成的预览槽，返回 id -> 句柄 的副本。
        句柄只是借出的引用，调用方不得在本次渲染之后保留它们。
        """
        if renderer is not None:
            self._renderer = renderer

        slots = self._previews.get(asset_type, {})
        if self._renderer is not None:
            for asset_id, handle in slots.items():
                if handle is not None:
                    continue
                asset = self.get_asset(asset_id)
                if asset is None:
                    continue
                try:
                    slots[asset_id] = self._renderer.render(asset_type, self.library_path_for(asset))
                except Exception as e:
                    logger.error(f"Failed to render preview for {asset.source_path}: {e}")

        return dict(slots)

    def release_previews(self) -> None:
        for asset_type, slots in self._previews.items():
            for asset_id in list(slots):
                self.remove_preview(asset_type, asset_id)

    def _release(self, handle: Any) -> None:
        if self._renderer is None:
            return
        try:
            self._renderer.release(handle)
        except Exception as e:
            logger.error(f"Failed to release preview handle: {e}")
