import io
import wave

import httpx
import pytest

from shortvideo.clients.tts import KokoroClient, wav_duration_ms
from shortvideo.errors import ProviderError
from shortvideo.models.domain import Voice, WordTiming
from shortvideo.services.narration import NarrationResolver, build_captions


def words(*spans):
    return [WordTiming(word=word, start_ms=start, end_ms=end) for word, start, end in spans]


def assert_well_formed(cues, duration_ms):
    assert cues
    for cue in cues:
        assert cue.start_ms < cue.end_ms
    for previous, current in zip(cues, cues[1:]):
        assert previous.end_ms <= current.start_ms
    assert cues[-1].end_ms <= duration_ms


def test_groups_by_max_words():
    timings = words(*[(f"w{i}", i * 300, i * 300 + 250) for i in range(7)])
    cues = build_captions(timings, 2_200, max_words=3, max_duration_ms=10_000)
    assert [cue.text for cue in cues] == ["w0 w1 w2", "w3 w4 w5", "w6"]
    assert (cues[0].start_ms, cues[0].end_ms) == (0, 850)
    assert_well_formed(cues, 2_200)


def test_groups_by_max_duration():
    timings = words(("slow", 0, 900), ("and", 900, 1800), ("steady", 1800, 2700))
    cues = build_captions(timings, 3_000, max_words=10, max_duration_ms=2_000)
    assert [cue.text for cue in cues] == ["slow and", "steady"]
    assert_well_formed(cues, 3_000)


def test_breaks_after_sentence_end():
    timings = words(("Hello", 0, 300), ("world.", 300, 600), ("Next", 700, 1000), ("one", 1000, 1300))
    cues = build_captions(timings, 1_500, max_words=10, max_duration_ms=10_000)
    assert [cue.text for cue in cues] == ["Hello world.", "Next one"]


def test_overlapping_and_overlong_timings_are_clamped():
    timings = words(("a", 0, 500), ("b", 400, 900), ("c", 850, 1400), ("d", 1300, 2500))
    cues = build_captions(timings, 2_000, max_words=2, max_duration_ms=10_000)
    assert [cue.text for cue in cues] == ["a b", "c d"]
    assert cues[1].start_ms == 900
    assert cues[-1].end_ms == 2_000
    assert_well_formed(cues, 2_000)


def test_zero_length_cues_are_folded():
    timings = words(("one", 0, 400), ("two", 400, 800), ("three", 2_000, 2_200))
    cues = build_captions(timings, 1_000, max_words=2, max_duration_ms=10_000)
    assert [cue.text for cue in cues] == ["one two three"]
    assert_well_formed(cues, 1_000)


def test_leading_zero_length_cue_is_carried_forward():
    timings = words(("uh", 0, 0), ("okay", 0, 0), ("go", 100, 500))
    cues = build_captions(timings, 600, max_words=2, max_duration_ms=10_000)
    assert [cue.text for cue in cues] == ["uh okay go"]
    assert_well_formed(cues, 600)


def test_captions_are_deterministic():
    timings = words(*[(f"w{i}", i * 250, i * 250 + 200) for i in range(20)])
    first = build_captions(timings, 5_000, max_words=4, max_duration_ms=1_500)
    second = build_captions(list(reversed(timings)), 5_000, max_words=4, max_duration_ms=1_500)
    assert first == second
    assert_well_formed(first, 5_000)


def test_empty_input_yields_no_cues():
    assert build_captions([], 1_000) == []
    assert build_captions(words(("a", 0, 100)), 0) == []


class StaticTTS:
    def __init__(self, duration_ms=1_200, error=None):
        self.duration_ms = duration_ms
        self.error = error

    def synthesize(self, text, voice):
        if self.error:
            raise self.error
        return b"wav", self.duration_ms


class StaticAligner:
    def __init__(self, timings=None, error=None):
        self.timings = timings or []
        self.error = error
        self.calls = 0

    def align(self, audio, text):
        self.calls += 1
        if self.error:
            raise self.error
        return self.timings


def test_resolver_builds_audio_and_captions():
    aligner = StaticAligner(words(("hi", 0, 400), ("there", 400, 1_000)))
    resolver = NarrationResolver(StaticTTS(), aligner, max_words=6)
    narration = resolver.resolve("hi there", Voice.AF_HEART)
    assert narration.audio.duration_ms == 1_200
    assert narration.audio.data == b"wav"
    assert [cue.text for cue in narration.captions] == ["hi there"]


def test_resolver_falls_back_to_single_cue():
    resolver = NarrationResolver(StaticTTS(), StaticAligner([]))
    narration = resolver.resolve("quiet scene", Voice.AF_HEART)
    assert len(narration.captions) == 1
    assert (narration.captions[0].start_ms, narration.captions[0].end_ms) == (0, 1_200)


def test_resolver_does_not_retry_synthesis_failures():
    aligner = StaticAligner()
    resolver = NarrationResolver(StaticTTS(error=RuntimeError("model crashed")), aligner)
    with pytest.raises(ProviderError):
        resolver.resolve("text", Voice.AF_HEART)
    assert aligner.calls == 0


def test_resolver_wraps_alignment_failures():
    aligner = StaticAligner(error=RuntimeError("whisper died"))
    resolver = NarrationResolver(StaticTTS(), aligner)
    with pytest.raises(ProviderError):
        resolver.resolve("text", Voice.AF_HEART)
    assert aligner.calls == 1


def make_wav(duration_ms, rate=24_000):
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as writer:
        writer.setnchannels(1)
        writer.setsampwidth(2)
        writer.setframerate(rate)
        writer.writeframes(b"\x00\x00" * (rate * duration_ms // 1000))
    return buffer.getvalue()


def test_kokoro_client_returns_audio_and_duration():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, content=make_wav(1_500))

    client = KokoroClient(base_url="http://tts.local", transport=httpx.MockTransport(handler))
    audio, duration_ms = client.synthesize("Hello there", Voice.AM_ADAM)
    assert seen["path"] == "/v1/audio/speech"
    assert b'"am_adam"' in seen["body"]
    assert duration_ms == 1_500
    assert audio.startswith(b"RIFF")


def test_kokoro_client_maps_http_errors():
    client = KokoroClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    with pytest.raises(ProviderError):
        client.synthesize("Hello", Voice.AF_HEART)


def test_wav_duration_rejects_garbage():
    with pytest.raises(ProviderError):
        wav_duration_ms(b"not a wav file")
