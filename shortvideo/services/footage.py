from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Iterable, List, Optional, Sequence

from shortvideo.errors import NotFoundError, ProviderError, ProviderTimeoutError, ShortVideoError
from shortvideo.models.domain import Orientation, StockVideoAsset

SQUARE_TOLERANCE = 0.05


def matches_orientation(width: int, height: int, orientation: Orientation) -> bool:
    if width <= 0 or height <= 0:
        return False
    ratio = width / height
    if orientation == Orientation.PORTRAIT:
        return ratio < 1 - SQUARE_TOLERANCE
    if orientation == Orientation.LANDSCAPE:
        return ratio > 1 + SQUARE_TOLERANCE
    return abs(ratio - 1) <= SQUARE_TOLERANCE


class FootageQueryExecutor:
    """Runs a single search query against a stock footage provider."""

    def execute(
        self, term: str, orientation: Orientation, timeout_s: float
    ) -> List[StockVideoAsset]: ...  # pragma: no cover


class StockFootageSelector:
    def __init__(
        self,
        executor: FootageQueryExecutor,
        default_timeout_ms: int = 20_000,
        max_attempts: int = 3,
        fallback_terms: Sequence[str] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.executor = executor
        self.default_timeout_ms = default_timeout_ms
        self.max_attempts = max(1, max_attempts)
        self.fallback_terms = [term for term in fallback_terms if term.strip()]
        self.log = logger or logging.getLogger(__name__)

    def find_video(
        self,
        search_terms: Sequence[str],
        min_duration_s: float,
        exclude_ids: Iterable[str] = (),
        orientation: Orientation = Orientation.PORTRAIT,
        timeout_ms: int | None = None,
    ) -> StockVideoAsset:
        """Return the first asset matching any term, trying the terms in order.

        Raises ``NotFoundError`` when no term yields a qualifying asset,
        ``ProviderTimeoutError`` once a query has timed out ``max_attempts``
        times and ``ProviderError`` for any other upstream failure.
        """
        timeout_s = (self.default_timeout_ms if timeout_ms is None else timeout_ms) / 1000
        excluded = set(exclude_ids)
        terms = list(search_terms) + [term for term in self.fallback_terms if term not in search_terms]
        for term in terms:
            candidates = self._query_with_retry(term, orientation, timeout_s)
            for asset in candidates:
                if asset.id in excluded:
                    continue
                if asset.duration_s < min_duration_s:
                    continue
                if not matches_orientation(asset.width_px, asset.height_px, orientation):
                    continue
                self.log.debug(
                    "stock footage selected",
                    extra={"term": term, "video_id": asset.id, "duration_s": asset.duration_s},
                )
                return asset
            self.log.info(
                "no qualifying stock footage for term",
                extra={"term": term, "candidates": len(candidates), "min_duration_s": min_duration_s},
            )
        raise NotFoundError(f"no stock footage found for terms: {', '.join(terms)}")

    def _query_with_retry(self, term: str, orientation: Orientation, timeout_s: float) -> List[StockVideoAsset]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._query_once(term, orientation, timeout_s)
            except TimeoutError as exc:
                self.log.warning(
                    "stock footage query timed out",
                    extra={"term": term, "attempt": attempt, "max_attempts": self.max_attempts},
                )
                if attempt == self.max_attempts:
                    raise ProviderTimeoutError(
                        f"stock footage search for '{term}' timed out after {attempt} attempts"
                    ) from exc
        raise AssertionError("unreachable")  # pragma: no cover

    def _query_once(self, term: str, orientation: Orientation, timeout_s: float) -> List[StockVideoAsset]:
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.executor.execute(term, orientation, timeout_s))
            except Exception as exc:
                future.set_exception(exc)

        # A hung provider call keeps only its own daemon thread; later attempts
        # never queue behind it.
        threading.Thread(target=run, name="footage-query", daemon=True).start()
        try:
            return future.result(timeout=timeout_s)
        except FuturesTimeoutError as exc:
            raise ProviderTimeoutError(f"stock footage query exceeded {timeout_s:.3f}s") from exc
        except (TimeoutError, ShortVideoError):
            raise
        except Exception as exc:
            raise ProviderError(f"stock footage query failed: {exc}") from exc
