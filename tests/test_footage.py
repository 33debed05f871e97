import threading
import time

import httpx
import pytest

from shortvideo.clients.pexels import PexelsClient
from shortvideo.errors import NotFoundError, ProviderError, ProviderTimeoutError
from shortvideo.models.domain import Orientation, StockVideoAsset
from shortvideo.services.footage import FootageQueryExecutor, StockFootageSelector, matches_orientation


def portrait_asset(asset_id="1", duration_s=10.0, width=1080, height=1920):
    return StockVideoAsset(
        id=asset_id,
        url=f"https://videos.example.com/{asset_id}.mp4",
        width_px=width,
        height_px=height,
        duration_s=duration_s,
    )


class StaticExecutor(FootageQueryExecutor):
    def __init__(self, results):
        self.results = results
        self.calls = []

    def execute(self, term, orientation, timeout_s):
        self.calls.append(term)
        return list(self.results.get(term, []))


class SlowExecutor(FootageQueryExecutor):
    def __init__(self, delay_s):
        self.delay_s = delay_s
        self.calls = 0

    def execute(self, term, orientation, timeout_s):
        self.calls += 1
        time.sleep(self.delay_s)
        return [portrait_asset()]


class FlakyExecutor(FootageQueryExecutor):
    def __init__(self, failures, error_factory):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    def execute(self, term, orientation, timeout_s):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return [portrait_asset("dog-1")]


def test_find_video_returns_matching_asset():
    selector = StockFootageSelector(StaticExecutor({"dog": [portrait_asset("dog-1")]}))
    video = selector.find_video(["dog"], 2.4, set())
    assert video is not None
    assert video.id == "dog-1"


def test_find_video_times_out_after_three_attempts():
    executor = SlowExecutor(delay_s=1.0)
    selector = StockFootageSelector(executor)
    started = time.monotonic()
    with pytest.raises(TimeoutError):
        selector.find_video(["dog"], 2.4, set(), Orientation.PORTRAIT, timeout_ms=100)
    assert time.monotonic() - started < 1.0
    assert executor.calls == 3


class HangingExecutor(FootageQueryExecutor):
    def __init__(self):
        self.hanging = True
        self.release = threading.Event()
        self.calls = 0
        self._lock = threading.Lock()

    def execute(self, term, orientation, timeout_s):
        with self._lock:
            self.calls += 1
        if self.hanging:
            self.release.wait(timeout=5)
        return [portrait_asset("dog-1")]


def test_hung_provider_calls_do_not_starve_later_searches():
    executor = HangingExecutor()
    selector = StockFootageSelector(executor)
    try:
        for _ in range(2):
            with pytest.raises(TimeoutError):
                selector.find_video(["dog"], 2.4, set(), Orientation.PORTRAIT, timeout_ms=100)
        assert executor.calls == 6

        executor.hanging = False
        video = selector.find_video(["dog"], 2.4, set(), Orientation.PORTRAIT, timeout_ms=1000)
        assert video.id == "dog-1"
        assert executor.calls == 7
    finally:
        executor.release.set()


def test_zero_timeout_is_honoured():
    executor = SlowExecutor(delay_s=1.0)
    selector = StockFootageSelector(executor, default_timeout_ms=20_000)
    started = time.monotonic()
    with pytest.raises(TimeoutError):
        selector.find_video(["dog"], 2.4, set(), Orientation.PORTRAIT, timeout_ms=0)
    assert time.monotonic() - started < 1.0


def test_find_video_retries_timeouts_until_success():
    def timeout():
        return ProviderTimeoutError("aborted")

    executor = FlakyExecutor(failures=2, error_factory=timeout)
    selector = StockFootageSelector(executor)
    video = selector.find_video(["dog"], 2.4, set(), Orientation.PORTRAIT, timeout_ms=5000)
    assert video.id == "dog-1"
    assert executor.calls == 3


def test_builtin_timeout_errors_are_retried_too():
    executor = FlakyExecutor(failures=1, error_factory=lambda: TimeoutError("socket timeout"))
    selector = StockFootageSelector(executor)
    assert selector.find_video(["dog"], 2.4, set()).id == "dog-1"
    assert executor.calls == 2


def test_non_timeout_error_is_not_retried():
    executor = FlakyExecutor(failures=10, error_factory=lambda: RuntimeError("HTTP 401"))
    selector = StockFootageSelector(executor)
    with pytest.raises(ProviderError) as excinfo:
        selector.find_video(["dog"], 2.4, set(), Orientation.PORTRAIT, timeout_ms=5000)
    assert not isinstance(excinfo.value, TimeoutError)
    assert executor.calls == 1


def test_filters_and_short_circuits_in_term_order():
    executor = StaticExecutor(
        {
            "cat": [
                portrait_asset("used"),
                portrait_asset("short", duration_s=1.0),
                portrait_asset("wide", width=1920, height=1080),
            ],
            "dog": [portrait_asset("dog-1"), portrait_asset("dog-2")],
            "bird": [portrait_asset("bird-1")],
        }
    )
    selector = StockFootageSelector(executor)
    video = selector.find_video(["cat", "dog", "bird"], 5.0, {"used"})
    assert video.id == "dog-1"
    assert executor.calls == ["cat", "dog"]


def test_excluded_ids_are_skipped_within_a_term():
    selector = StockFootageSelector(StaticExecutor({"dog": [portrait_asset("dog-1"), portrait_asset("dog-2")]}))
    assert selector.find_video(["dog"], 2.0, {"dog-1"}).id == "dog-2"


def test_not_found_when_no_term_qualifies():
    executor = StaticExecutor({"dog": [portrait_asset("dog-1", duration_s=1.0)]})
    selector = StockFootageSelector(executor)
    with pytest.raises(NotFoundError):
        selector.find_video(["dog", "cat"], 2.4, set())
    assert executor.calls == ["dog", "cat"]


def test_fallback_terms_are_tried_last():
    executor = StaticExecutor({"nature": [portrait_asset("nature-1")]})
    selector = StockFootageSelector(executor, fallback_terms=["nature", "ocean"])
    assert selector.find_video(["unicorn"], 2.0, set()).id == "nature-1"
    assert executor.calls == ["unicorn", "nature"]


def test_orientation_matching():
    assert matches_orientation(1080, 1920, Orientation.PORTRAIT)
    assert not matches_orientation(1920, 1080, Orientation.PORTRAIT)
    assert matches_orientation(1920, 1080, Orientation.LANDSCAPE)
    assert matches_orientation(1080, 1080, Orientation.SQUARE)
    assert matches_orientation(1080, 1100, Orientation.SQUARE)
    assert not matches_orientation(1080, 1920, Orientation.SQUARE)
    assert not matches_orientation(0, 1920, Orientation.PORTRAIT)


PEXELS_PAYLOAD = {
    "page": 1,
    "videos": [
        {
            "id": 101,
            "width": 1920,
            "height": 1080,
            "duration": 12,
            "video_files": [
                {"id": 1, "quality": "hd", "file_type": "video/mp4", "width": 1920, "height": 1080, "link": "https://v/101-l.mp4"},
            ],
        },
        {
            "id": 202,
            "width": 2160,
            "height": 3840,
            "duration": 15,
            "video_files": [
                {"id": 2, "quality": "uhd", "file_type": "video/mp4", "width": 2160, "height": 3840, "link": "https://v/202-uhd.mp4"},
                {"id": 3, "quality": "hd", "file_type": "video/mp4", "width": 1080, "height": 1920, "link": "https://v/202-hd.mp4"},
                {"id": 4, "quality": "sd", "file_type": "video/mp4", "width": 540, "height": 960, "link": "https://v/202-sd.mp4"},
            ],
        },
    ],
}


def test_pexels_client_parses_portrait_renditions():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["params"] = dict(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(200, json=PEXELS_PAYLOAD)

    client = PexelsClient("secret-key", transport=httpx.MockTransport(handler))
    assets = client.execute("dog", Orientation.PORTRAIT, 5.0)

    assert seen["auth"] == "secret-key"
    assert seen["path"] == "/videos/search"
    assert seen["params"]["query"] == "dog"
    assert seen["params"]["orientation"] == "portrait"
    assert [asset.id for asset in assets] == ["202"]
    assert assets[0].url == "https://v/202-hd.mp4"
    assert (assets[0].width_px, assets[0].height_px) == (1080, 1920)
    assert assets[0].duration_s == 15.0


def test_pexels_client_through_selector():
    client = PexelsClient("secret-key", transport=httpx.MockTransport(lambda request: httpx.Response(200, json=PEXELS_PAYLOAD)))
    selector = StockFootageSelector(client)
    video = selector.find_video(["dog"], 2.4, set())
    assert video.id == "202"


def test_pexels_client_maps_timeouts():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = PexelsClient("secret-key", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderTimeoutError):
        client.execute("dog", Orientation.PORTRAIT, 1.0)


def test_pexels_client_maps_http_errors():
    client = PexelsClient("secret-key", transport=httpx.MockTransport(lambda request: httpx.Response(401, text="nope")))
    with pytest.raises(ProviderError) as excinfo:
        client.execute("dog", Orientation.PORTRAIT, 1.0)
    assert not isinstance(excinfo.value, ProviderTimeoutError)


def test_pexels_client_requires_api_key():
    with pytest.raises(ProviderError):
        PexelsClient("").execute("dog", Orientation.PORTRAIT, 1.0)
