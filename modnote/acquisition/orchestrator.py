"""
Acquisition orchestrator.

Drives the ordered strategy chain for one source: each strategy gets up to
``max_retries`` retries with incremental backoff, terminal failures skip to
the next strategy, and the first significant result wins. Metadata lookup
runs as a concurrent task and is attached to the final result either way.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)
from tenacity.stop import stop_base

from modnote.acquisition.cleaning import is_significant, significant_length
from modnote.acquisition.metadata import MetadataFetcher
from modnote.acquisition.sources import classify
from modnote.acquisition.strategies import (
    DEFAULT_PRIORITIES,
    ExtractionStrategy,
    create_default_strategies,
)
from modnote.config import Settings, get_settings
from modnote.models import (
    AcquisitionOptions,
    AttemptOutcome,
    ExtractionAttempt,
    ExtractionResult,
    SourceMetadata,
    SourceRef,
    StrategyResult,
)
from modnote.utils.errors import ErrorKind
from modnote.utils.logging import LogContext, get_logger, log_performance

logger = get_logger(__name__)

# Higher rank wins when choosing which failure to report
_ERROR_RANK = {
    ErrorKind.QUOTA_OR_AUTH.value: 4,
    ErrorKind.MALFORMED_INPUT.value: 3,
    ErrorKind.NETWORK_OR_TIMEOUT.value: 2,
    ErrorKind.EMPTY_RESULT.value: 1,
}


class RetryableAttemptFailure(Exception):
    """Raised inside the retry loop so tenacity schedules another attempt."""

    def __init__(self, result: StrategyResult) -> None:
        super().__init__(result.error_message)
        self.result = result


@dataclass
class _AcquisitionRun:
    """Mutable state of one ``acquire`` call; never shared between calls."""

    started: float
    deadline: float
    max_total_attempts: int
    clock: Callable[[], float]
    cancel_event: Optional[asyncio.Event] = None
    attempts: List[ExtractionAttempt] = field(default_factory=list)

    @property
    def remaining(self) -> float:
        return self.deadline - self.clock()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    @property
    def deadline_passed(self) -> bool:
        return self.remaining <= 0

    @property
    def budget_spent(self) -> bool:
        return len(self.attempts) >= self.max_total_attempts

    @property
    def should_stop(self) -> bool:
        return self.cancelled or self.deadline_passed or self.budget_spent

    def elapsed_ms(self) -> int:
        return max(int((self.clock() - self.started) * 1000), 0)


class stop_when_run_over(stop_base):
    """Stop retrying once the acquisition is cancelled, late, or out of attempts."""

    def __init__(self, run: _AcquisitionRun) -> None:
        self.run = run

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.run.should_stop


class AcquisitionOrchestrator:
    """Turn a source into text by escalating through extraction strategies."""

    def __init__(
        self,
        strategies: Sequence[ExtractionStrategy],
        metadata_fetcher: Optional[MetadataFetcher] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            strategies: Available strategies; order within a kind comes from the priority table
            metadata_fetcher: Optional side lookup run concurrently with extraction
            settings: Retry, timeout and significance defaults
            sleep: Backoff sleep, injectable for tests
            clock: Monotonic clock used for deadlines and timings
        """
        self.settings = settings or get_settings()
        self.metadata_fetcher = metadata_fetcher
        self._sleep = sleep
        self._clock = clock
        self._strategies: Dict[str, ExtractionStrategy] = {}
        for strategy in strategies:
            if strategy.name in self._strategies:
                raise ValueError(f"Duplicate strategy name: {strategy.name}")
            self._strategies[strategy.name] = strategy

    @property
    def strategy_names(self) -> List[str]:
        return list(self._strategies)

    def plan(
        self,
        source: SourceRef,
        options: Optional[AcquisitionOptions] = None,
    ) -> List[ExtractionStrategy]:
        """Ordered strategies that will be tried for a source."""
        source = classify(source)
        if options and options.strategy_order:
            names = options.strategy_order
        else:
            names = DEFAULT_PRIORITIES.get(source.kind, [])

        planned = []
        for name in names:
            strategy = self._strategies.get(name)
            if strategy is None:
                logger.warning(f"Unknown strategy {name!r} ignored")
                continue
            if strategy.applies_to(source) and strategy not in planned:
                planned.append(strategy)
        return planned

    @log_performance
    async def acquire(
        self,
        source: SourceRef,
        options: Optional[AcquisitionOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExtractionResult:
        """
        Acquire text for a source.

        Never raises for expected provider failures: the result carries
        ``success=False`` and the most informative error instead. Unexpected
        exceptions from a strategy propagate.
        """
        options = options or AcquisitionOptions()
        source = classify(source)
        deadline_seconds = options.deadline_seconds or self.settings.acquisition_deadline_seconds
        now = self._clock()
        run = _AcquisitionRun(
            started=now,
            deadline=now + deadline_seconds,
            max_total_attempts=options.max_total_attempts or self.settings.max_total_attempts,
            clock=self._clock,
            cancel_event=cancel_event,
        )

        with LogContext(source=source.display_name, source_kind=source.kind.value):
            metadata_task = self._start_metadata(source)
            try:
                result = await self._run_chain(source, options, run)
                result.metadata = await self._collect_metadata(metadata_task, wait=not run.cancelled)
            finally:
                if metadata_task is not None and not metadata_task.done():
                    metadata_task.cancel()
            return result

    # -------------------------------------------------------------------------
    # Strategy chain
    # -------------------------------------------------------------------------

    async def _run_chain(
        self,
        source: SourceRef,
        options: AcquisitionOptions,
        run: _AcquisitionRun,
    ) -> ExtractionResult:
        planned = self.plan(source, options)
        if not planned:
            logger.warning(f"No strategy applies to {source.kind.value} source {source.display_name}")
            return ExtractionResult(
                success=False,
                error_message=f"{ErrorKind.MALFORMED_INPUT.value}: no extraction strategy applies "
                f"to {source.kind.value} source {source.display_name}",
                processing_time_ms=run.elapsed_ms(),
            )

        for index, strategy in enumerate(planned):
            if run.should_stop:
                break
            if index:
                logger.info(f"Escalating to {strategy.name}")

            with LogContext(strategy=strategy.name):
                result = await self._run_strategy(strategy, source, options, run)

            if result is not None and result.success:
                return ExtractionResult(
                    success=True,
                    text=result.text,
                    confidence=result.confidence,
                    strategy_used=strategy.name,
                    processing_time_ms=run.elapsed_ms(),
                )

        return ExtractionResult(
            success=False,
            error_message=self._failure_message(run),
            processing_time_ms=run.elapsed_ms(),
        )

    async def _run_strategy(
        self,
        strategy: ExtractionStrategy,
        source: SourceRef,
        options: AcquisitionOptions,
        run: _AcquisitionRun,
    ) -> Optional[StrategyResult]:
        """Run one strategy with retries; returns its last result."""
        max_retries = options.max_retries if options.max_retries is not None else self.settings.max_retries
        base_delay = (
            options.base_delay_seconds
            if options.base_delay_seconds is not None
            else self.settings.base_delay_seconds
        )

        async def backoff(seconds: float) -> None:
            delay = min(seconds, max(run.remaining, 0.0))
            await self._race(self._sleep(delay), None, run.cancel_event)

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RetryableAttemptFailure),
            stop=stop_after_attempt(max_retries + 1) | stop_when_run_over(run),
            wait=wait_incrementing(start=base_delay, increment=base_delay),
            sleep=backoff,
            before_sleep=self._log_backoff,
            reraise=True,
        )

        last: Optional[StrategyResult] = None
        try:
            async for attempt in retrying:
                with attempt:
                    if run.should_stop:
                        break
                    last = await self._attempt(strategy, source, options, run)
                    if not last.success and last.retryable:
                        raise RetryableAttemptFailure(last)
        except RetryableAttemptFailure as e:
            last = e.result
            logger.info(f"{strategy.name} gave up after {attempt.retry_state.attempt_number} attempt(s)")
        return last

    async def _attempt(
        self,
        strategy: ExtractionStrategy,
        source: SourceRef,
        options: AcquisitionOptions,
        run: _AcquisitionRun,
    ) -> StrategyResult:
        attempt_timeout = options.attempt_timeout_seconds or self.settings.attempt_timeout_seconds
        timeout = min(attempt_timeout, max(run.remaining, 0.0))
        status, result = await self._race(strategy.extract(source, options), timeout, run.cancel_event)

        if status == "cancelled":
            result = StrategyResult.failed(ErrorKind.CANCELLED.value, "Acquisition cancelled", retryable=False)
            outcome = AttemptOutcome.FAILURE
        elif status == "timeout":
            if run.deadline_passed:
                result = StrategyResult.failed(
                    ErrorKind.CANCELLED.value, "Acquisition deadline exceeded", retryable=False
                )
            else:
                result = StrategyResult.failed(
                    ErrorKind.NETWORK_OR_TIMEOUT.value,
                    f"{strategy.name} timed out after {timeout:.1f}s",
                    retryable=True,
                )
            outcome = AttemptOutcome.TIMEOUT
        elif result.success and not is_significant(result.text, self.settings.min_significant_chars):
            result = StrategyResult.failed(
                ErrorKind.EMPTY_RESULT.value,
                f"{strategy.name} returned only {significant_length(result.text)} significant characters",
                retryable=True,
            )
            outcome = AttemptOutcome.FAILURE
        else:
            outcome = AttemptOutcome.SUCCESS if result.success else AttemptOutcome.FAILURE

        run.attempts.append(
            ExtractionAttempt(
                strategy_name=strategy.name,
                outcome=outcome,
                error_kind=result.error_kind,
                error_message=result.error_message,
                retryable=result.retryable,
            )
        )
        if result.success:
            logger.info(f"{strategy.name} succeeded ({len(result.text or '')} chars, confidence {result.confidence:.2f})")
        else:
            logger.info(
                f"{strategy.name} attempt {outcome.value}: {result.error_kind} "
                f"({'retryable' if result.retryable else 'terminal'}) {result.error_message}"
            )
        return result

    async def _race(
        self,
        coro: Awaitable[Any],
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[str, Any]:
        """
        Await ``coro`` against a timeout and the cancel event.

        Returns ("done", value), ("timeout", None) or ("cancelled", None).
        Losing tasks are cancelled and awaited before returning.
        """
        task = asyncio.ensure_future(coro)
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [w for w in waiters if not w.done()]
            for waiter in pending:
                waiter.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if task in done:
            return "done", task.result()
        if cancel_waiter is not None and cancel_waiter in done:
            return "cancelled", None
        return "timeout", None

    @staticmethod
    def _log_backoff(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.info(f"Retrying in {delay:.2f}s (attempt {retry_state.attempt_number} failed)")

    @staticmethod
    def _failure_message(run: _AcquisitionRun) -> str:
        failures = [a for a in run.attempts if a.outcome is not AttemptOutcome.SUCCESS]
        informative = [a for a in failures if a.error_kind in _ERROR_RANK]

        best = None
        if informative:
            # Highest rank; among equals the most recent
            best = max(
                enumerate(informative),
                key=lambda pair: (_ERROR_RANK[pair[1].error_kind], pair[0]),
            )[1]
        detail = f"{best.strategy_name}: {best.error_kind}: {best.error_message}" if best else None

        if run.cancelled:
            prefix = "Acquisition cancelled"
        elif run.deadline_passed:
            prefix = "Acquisition deadline exceeded"
        elif not failures:
            return "All extraction strategies failed"
        else:
            return f"All extraction strategies failed; {detail or failures[-1].error_message}"
        return f"{prefix}; {detail}" if detail else prefix

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def _start_metadata(self, source: SourceRef) -> Optional["asyncio.Task[Optional[SourceMetadata]]"]:
        if self.metadata_fetcher is None:
            return None
        return asyncio.create_task(self.metadata_fetcher.fetch(source))

    async def _collect_metadata(
        self,
        task: Optional["asyncio.Task[Optional[SourceMetadata]]"],
        wait: bool,
    ) -> Optional[SourceMetadata]:
        if task is None:
            return None
        timeout = self.settings.metadata_timeout_seconds if wait else 0
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task not in done:
            logger.info("Metadata lookup did not finish in time")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return None
        if task.exception() is not None:
            logger.warning(f"Metadata lookup failed: {task.exception()}")
            return None
        return task.result()


def create_orchestrator(settings: Optional[Settings] = None, **kwargs: Any) -> AcquisitionOrchestrator:
    """Create an orchestrator with the built-in strategies and metadata fetcher."""
    settings = settings or get_settings()
    return AcquisitionOrchestrator(
        create_default_strategies(settings),
        metadata_fetcher=MetadataFetcher(settings=settings),
        settings=settings,
        **kwargs,
    )
