# /mapconsole/core/map_module/map_loader.py
"""
异步地图加载

每次 load() 领取一个全局递增的令牌并设为“当前”；后台线程完成后
比较令牌，过期结果直接丢弃，绝不回写画布（建议式取消，非抢占）。
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from itertools import count
from typing import Any, Callable, List, Mapping, Optional, Protocol

from PIL import Image

from mapconsole.core.errors import AssetLoadError, MapConsoleError, MapDataError
from mapconsole.core.models import MapMetadata, MapSummary, OccupancyGrid
from mapconsole.utils.logging import log

from .raster_decoder import GridRasterDecoder, RasterSource


class MapDataProvider(Protocol):
    """地图数据源接口 - 由基础设施层实现"""

    def list_maps(self) -> List[Mapping[str, Any]]:
        ...

    def fetch_raster(self, map_id: str) -> Any:
        """图像资源（PIL 图像 / bytes / 路径）或原始占据栅格消息 dict"""
        ...


@dataclass(frozen=True)
class LoadResult:
    token: int
    map_id: str
    metadata: MapMetadata
    bitmap: Image.Image


class LoadTicket:
    """一次加载请求的句柄，测试与宿主可据此等待完成"""

    def __init__(self, token: int, map_id: str) -> None:
        self.token = token
        self.map_id = map_id
        self.stale = False
        self.error: Optional[MapConsoleError] = None
        self._done = threading.Event()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def _finish(self, *, stale: bool = False, error: Optional[MapConsoleError] = None) -> None:
        self.stale = stale
        self.error = error
        self._done.set()


LoadedCallback = Callable[[LoadResult], None]
FailedCallback = Callable[[int, str, MapConsoleError], None]


class MapLoader:
    """Fetch + decode maps off the UI thread, discarding superseded results."""

    def __init__(
        self,
        provider: MapDataProvider,
        decoder: Optional[GridRasterDecoder] = None,
        background: bool = True,
    ) -> None:
        self._provider = provider
        self._decoder = decoder or GridRasterDecoder()
        self._background = background
        self._tokens = count(1)
        self._current = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    def load(
        self,
        summary: MapSummary,
        on_loaded: LoadedCallback,
        on_failed: FailedCallback,
    ) -> LoadTicket:
        with self._lock:
            token = next(self._tokens)
            self._current = token
        ticket = LoadTicket(token, summary.id)
        log.info("Loading map %s (token=%d)", summary.name, token)

        if self._background:
            worker = threading.Thread(
                target=self._run,
                args=(ticket, summary, on_loaded, on_failed),
                name=f"map-load-{token}",
                daemon=True,
            )
            worker.start()
        else:
            self._run(ticket, summary, on_loaded, on_failed)
        return ticket

    def cancel(self) -> None:
        """作废正在进行的加载"""
        with self._lock:
            self._current = next(self._tokens)

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._current

    # ------------------------------------------------------------------ #
    def fetch_and_decode(self, summary: MapSummary) -> tuple[MapMetadata, Image.Image]:
        try:
            raw = self._provider.fetch_raster(summary.id)
        except MapConsoleError:
            raise
        except Exception as e:  # noqa: BLE001
            raise AssetLoadError(f"fetch raster for {summary.id!r} failed: {e}") from e

        if isinstance(raw, Mapping):
            grid = OccupancyGrid.from_message(raw)
            if grid.metadata != summary.metadata:
                log.warning("Map %s: occupancy info %s differs from listing %s; using occupancy info",
                            summary.id, grid.metadata, summary.metadata)
            return grid.metadata, self._decoder.decode(grid)
        if raw is None:
            raise AssetLoadError(f"no raster for map {summary.id!r}")
        source: RasterSource = raw
        return summary.metadata, self._decoder.decode_image(source, summary.metadata)

    def _run(
        self,
        ticket: LoadTicket,
        summary: MapSummary,
        on_loaded: LoadedCallback,
        on_failed: FailedCallback,
    ) -> None:
        result: Optional[LoadResult] = None
        error: Optional[MapConsoleError] = None
        try:
            metadata, bitmap = self.fetch_and_decode(summary)
            result = LoadResult(ticket.token, summary.id, metadata, bitmap)
        except MapConsoleError as e:
            error = e
        except AssertionError as e:
            # 位图尺寸不变式被破坏：开发环境直接暴露
            ticket._finish(error=MapDataError(str(e)))
            raise
        except Exception as e:  # noqa: BLE001
            # 取数已在 fetch_and_decode 中包装，剩下的都出在解码阶段
            log.exception("Unexpected failure decoding map %s", summary.id)
            error = MapDataError(f"cannot decode map {summary.id!r}: {e!r}")

        if not self.is_current(ticket.token):
            log.debug("Discarding stale load of %s (token=%d)", summary.id, ticket.token)
            ticket._finish(stale=True, error=error)
            return

        try:
            if result is not None:
                log.info("Map %s loaded (token=%d)", summary.name, ticket.token)
                on_loaded(result)
            else:
                log.error("Map %s failed to load: %s", summary.name, error)
                on_failed(ticket.token, summary.id, error)
        except Exception:  # noqa: BLE001
            log.exception("Map load callback raised")
        finally:
            ticket._finish(error=error)
