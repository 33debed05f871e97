from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx

from shortvideo.errors import ProviderError, ProviderTimeoutError
from shortvideo.models.domain import Orientation, StockVideoAsset
from shortvideo.services.footage import FootageQueryExecutor, matches_orientation

TARGET_WIDTH = {
    Orientation.PORTRAIT: 1080,
    Orientation.LANDSCAPE: 1920,
    Orientation.SQUARE: 1080,
}


class PexelsClient(FootageQueryExecutor):
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.pexels.com",
        per_page: int = 80,
        transport: httpx.BaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.per_page = per_page
        self.transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key)

    def execute(self, term: str, orientation: Orientation, timeout_s: float) -> List[StockVideoAsset]:
        if not self.enabled():
            raise ProviderError("Pexels client is not configured")
        url = f"{self.base_url}/videos/search"
        params = {
            "query": term,
            "orientation": orientation.value,
            "per_page": self.per_page,
            "size": "medium",
        }
        headers = {"Authorization": self.api_key}
        try:
            with httpx.Client(timeout=timeout_s, transport=self.transport) as client:
                response = client.get(url, params=params, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"Pexels search for '{term}' timed out") from exc
        except httpx.HTTPStatusError as exc:
            self.log.error(
                "pexels HTTP error",
                extra={"status": exc.response.status_code, "body": exc.response.text[:500]},
            )
            raise ProviderError(f"Pexels search failed with status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Pexels search failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError("Pexels returned a malformed response") from exc
        assets = self._parse_videos(body, orientation)
        self.log.debug("pexels search completed", extra={"term": term, "assets": len(assets)})
        return assets

    def _parse_videos(self, payload: dict[str, Any], orientation: Orientation) -> List[StockVideoAsset]:
        videos = payload.get("videos") if isinstance(payload, dict) else None
        if not isinstance(videos, list):
            return []
        assets: List[StockVideoAsset] = []
        for video in videos:
            if not isinstance(video, dict) or video.get("id") is None:
                continue
            rendition = self._pick_rendition(video.get("video_files") or [], orientation)
            if rendition is None:
                continue
            assets.append(
                StockVideoAsset(
                    id=str(video["id"]),
                    url=rendition["link"],
                    width_px=int(rendition["width"]),
                    height_px=int(rendition["height"]),
                    duration_s=float(video.get("duration") or 0),
                )
            )
        return assets

    def _pick_rendition(self, files: list[Any], orientation: Orientation) -> dict[str, Any] | None:
        target = TARGET_WIDTH[orientation]
        candidates = []
        for item in files:
            if not isinstance(item, dict):
                continue
            width, height, link = item.get("width"), item.get("height"), item.get("link")
            if not width or not height or not isinstance(link, str):
                continue
            if item.get("file_type", "video/mp4") != "video/mp4":
                continue
            if not matches_orientation(int(width), int(height), orientation):
                continue
            candidates.append(item)
        if not candidates:
            return None
        # closest to the output width, preferring hd renditions on ties
        return min(candidates, key=lambda f: (abs(int(f["width"]) - target), f.get("quality") != "hd"))
