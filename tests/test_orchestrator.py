"""
Tests for the acquisition orchestrator: escalation, retries, budgets,
deadlines, cancellation and metadata attachment.
"""

import asyncio

import pytest

from modnote.acquisition.orchestrator import AcquisitionOrchestrator, create_orchestrator
from modnote.acquisition.sources import from_bytes, from_url
from modnote.acquisition.strategies import create_default_strategies
from modnote.acquisition.strategies.base import ExtractionStrategy
from modnote.models import AcquisitionOptions, SourceKind, StrategyResult, VideoMetadata

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
TRANSCRIPT = "Today we are talking about compounding habits and why they matter."


def ok(text=TRANSCRIPT, confidence=0.9):
    return StrategyResult.ok(text, confidence)


def network(message="connection reset"):
    return StrategyResult.failed("network_or_timeout", message, retryable=True)


def auth(message="invalid key"):
    return StrategyResult.failed("quota_or_auth", message, retryable=False)


def malformed(message="unsupported input"):
    return StrategyResult.failed("malformed_input", message, retryable=False)


class ScriptedStrategy(ExtractionStrategy):
    """Returns scripted results in order, repeating the last one."""

    kinds = frozenset(SourceKind)

    def __init__(self, name, results, settings):
        super().__init__(settings=settings)
        self.name = name
        self.results = list(results)
        self.calls = 0

    async def _extract(self, source, options):
        self.calls += 1
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return await item()
        return item


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class StaticMetadata:
    def __init__(self, metadata, delay=0.0):
        self.metadata = metadata
        self.delay = delay

    async def fetch(self, source):
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.metadata


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def video_chain(settings):
    """Build the three video strategies from scripted results."""

    def _build(caption, page, audio):
        return [
            ScriptedStrategy("caption-read", caption, settings),
            ScriptedStrategy("page-scrape", page, settings),
            ScriptedStrategy("audio-transcription", audio, settings),
        ]

    return _build


class TestEscalation:
    @pytest.mark.asyncio
    async def test_first_success_wins(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([ok()], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.success
        assert result.text == TRANSCRIPT
        assert result.strategy_used == "caption-read"
        assert result.confidence == pytest.approx(0.9)
        assert (caption.calls, page.calls, audio.calls) == (1, 0, 0)
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_retries_with_incremental_backoff(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([network(), network(), ok()], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.strategy_used == "caption-read"
        assert caption.calls == 3
        assert sleeper.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_terminal_failure_skips_retries(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([auth()], [network()], [ok("Transcribed from the audio track itself.")])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.success
        assert result.strategy_used == "audio-transcription"
        assert caption.calls == 1
        assert page.calls == 3
        assert audio.calls == 1

    @pytest.mark.asyncio
    async def test_insignificant_text_escalates(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([ok("[Music] ♪")], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.strategy_used == "page-scrape"
        assert caption.calls == 3

    @pytest.mark.asyncio
    async def test_strategy_order_override_ignores_unknown(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([ok()], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(
            from_url(VIDEO_URL),
            AcquisitionOptions(strategy_order=["does-not-exist", "page-scrape"]),
        )

        assert result.strategy_used == "page-scrape"
        assert caption.calls == 0

    @pytest.mark.asyncio
    async def test_unexpected_exception_propagates(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([RuntimeError("strategy bug")], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        with pytest.raises(RuntimeError, match="strategy bug"):
            await orchestrator.acquire(from_url(VIDEO_URL))
        assert page.calls == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_reports_most_informative_error(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([auth()], [malformed()], [network()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert not result.success
        assert result.text is None
        assert result.error_message == "All extraction strategies failed; caption-read: quota_or_auth: invalid key"

    @pytest.mark.asyncio
    async def test_most_recent_wins_among_equal_kinds(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([network("first")], [network("second")], [network("last")])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.error_message.endswith("audio-transcription: network_or_timeout: last")

    @pytest.mark.asyncio
    async def test_no_applicable_strategy(self, settings, sleeper):
        orchestrator = AcquisitionOrchestrator(create_default_strategies(settings), settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_bytes(b"hello", "notes.xyz"))

        assert not result.success
        assert result.error_message.startswith("malformed_input: no extraction strategy applies")

    @pytest.mark.asyncio
    async def test_global_attempt_budget(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([network()], [network()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(from_url(VIDEO_URL), AcquisitionOptions(max_total_attempts=4))

        assert not result.success
        assert (caption.calls, page.calls, audio.calls) == (3, 1, 0)

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_retryable(self, settings, sleeper, video_chain):
        async def hang():
            await asyncio.sleep(10)

        caption, page, audio = video_chain([hang], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        result = await orchestrator.acquire(
            from_url(VIDEO_URL),
            AcquisitionOptions(attempt_timeout_seconds=0.05, max_retries=1),
        )

        assert result.strategy_used == "page-scrape"
        assert caption.calls == 2
        assert sleeper.delays == [1.0]


class TestDeadlinesAndCancellation:
    @pytest.mark.asyncio
    async def test_deadline_stops_the_chain(self, settings, sleeper, video_chain):
        clock = FakeClock()

        async def slow_failure():
            clock.now += 40
            return network("boom")

        caption, page, audio = video_chain([slow_failure], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator(
            [caption, page, audio], settings=settings, sleep=sleeper, clock=clock
        )

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert not result.success
        assert result.error_message == "Acquisition deadline exceeded; caption-read: network_or_timeout: boom"
        assert caption.calls == 2
        assert page.calls == 0
        assert result.processing_time_ms == 80000

    @pytest.mark.asyncio
    async def test_backoff_is_capped_by_deadline(self, settings, sleeper, video_chain):
        clock = FakeClock()

        async def late_failure():
            clock.now += 59.5
            return network()

        caption, page, audio = video_chain([late_failure, ok()], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator(
            [caption, page, audio], settings=settings, sleep=sleeper, clock=clock
        )

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.success
        assert sleeper.delays == [pytest.approx(0.5)]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([ok()], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)
        cancel = asyncio.Event()
        cancel.set()

        result = await orchestrator.acquire(from_url(VIDEO_URL), cancel_event=cancel)

        assert not result.success
        assert result.error_message == "Acquisition cancelled"
        assert caption.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_running_attempt(self, settings, sleeper, video_chain):
        started = asyncio.Event()
        cancel = asyncio.Event()
        interrupted = []

        async def hang():
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                interrupted.append(True)
                raise

        async def trigger():
            await started.wait()
            cancel.set()

        caption, page, audio = video_chain([hang], [ok()], [ok()])
        orchestrator = AcquisitionOrchestrator([caption, page, audio], settings=settings, sleep=sleeper)

        trigger_task = asyncio.create_task(trigger())
        result = await orchestrator.acquire(from_url(VIDEO_URL), cancel_event=cancel)
        await trigger_task

        assert not result.success
        assert result.error_message.startswith("Acquisition cancelled")
        assert interrupted == [True]
        assert page.calls == 0


class TestMetadata:
    @pytest.mark.asyncio
    async def test_metadata_attached_to_success(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([ok()], [ok()], [ok()])
        fetcher = StaticMetadata(VideoMetadata(video_id="dQw4w9WgXcQ", title="Compounding"))
        orchestrator = AcquisitionOrchestrator(
            [caption, page, audio], metadata_fetcher=fetcher, settings=settings, sleep=sleeper
        )

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.metadata.title == "Compounding"
        assert not result.is_placeholder

    @pytest.mark.asyncio
    async def test_placeholder_on_failure(self, settings, sleeper, video_chain):
        caption, page, audio = video_chain([auth()], [auth()], [auth()])
        fetcher = StaticMetadata(VideoMetadata(video_id="dQw4w9WgXcQ", title="Compounding"))
        orchestrator = AcquisitionOrchestrator(
            [caption, page, audio], metadata_fetcher=fetcher, settings=settings, sleep=sleeper
        )

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert not result.success
        assert result.is_placeholder
        assert result.metadata.video_id == "dQw4w9WgXcQ"

    @pytest.mark.asyncio
    async def test_slow_metadata_does_not_block(self, settings, sleeper, video_chain):
        fast = settings.model_copy(update={"metadata_timeout_seconds": 0.05})
        caption, page, audio = video_chain([ok()], [ok()], [ok()])
        fetcher = StaticMetadata(VideoMetadata(title="late"), delay=5)
        orchestrator = AcquisitionOrchestrator(
            [caption, page, audio], metadata_fetcher=fetcher, settings=fast, sleep=sleeper
        )

        result = await orchestrator.acquire(from_url(VIDEO_URL))

        assert result.success
        assert result.metadata is None


class TestConstruction:
    def test_duplicate_names_rejected(self, settings):
        strategies = create_default_strategies(settings)

        with pytest.raises(ValueError, match="Duplicate strategy name"):
            AcquisitionOrchestrator(strategies + strategies[:1], settings=settings)

    def test_default_plan_per_kind(self, settings, make_pdf):
        orchestrator = create_orchestrator(settings)

        video_plan = [s.name for s in orchestrator.plan(from_url(VIDEO_URL))]
        pdf_plan = [s.name for s in orchestrator.plan(from_bytes(make_pdf(["x"]), "a.pdf"))]
        image_plan = [s.name for s in orchestrator.plan(from_bytes(b"\x89PNG", "a.png"))]

        assert video_plan == ["caption-read", "page-scrape", "audio-transcription"]
        assert pdf_plan == ["text-layer", "vision-ocr", "basic-ocr"]
        assert image_plan == ["vision-ocr", "basic-ocr"]
        assert [s.name for s in orchestrator.plan(from_url("https://example.com"))] == ["web-scrape"]
