"""Wires the components together and owns their background jobs."""

from datetime import timedelta
from typing import Iterable

import structlog

from automation import AutomationEngine, CycleOutcome, ExecutorRegistry, RuleGenerator
from automation.models import TriggerEvent
from fusion import ContextFusionHub, PatternSource, RecordStoreSource, SignalSource
from observability import AnalyticsSink, StructlogAnalyticsSink, log_run_summary
from patterns import EmbeddingClusterDetector, PatternEngine, RuleMatchDetector
from ranking import EmbeddingCapability, RelevanceRanker
from records.models import Record, RecordFilter
from records.store import PayloadStore, RecordStore
from resources import ResourceModeSelector, TelemetryProvider
from shared_types import Capability

from .scheduler import DecisionScheduler, PeriodicTask

logger = structlog.get_logger()


class DecisionRuntime:
    """One process-wide set of components sharing one selector and one hub."""

    def __init__(
        self,
        config: dict,
        telemetry: TelemetryProvider,
        embedder: EmbeddingCapability | None = None,
        executors: ExecutorRegistry | None = None,
        record_store: RecordStore | None = None,
        payload_store: PayloadStore | None = None,
        analytics: AnalyticsSink | None = None,
        sources: Iterable[SignalSource] = (),
    ):
        self.config = config
        self.record_store = record_store
        self.analytics = analytics or StructlogAnalyticsSink()

        self.selector = ResourceModeSelector(
            telemetry, config.get("resources", {}), analytics=self.analytics
        )
        self.ranker = RelevanceRanker(embedder, config.get("ranking", {}))
        patterns_cfg = config.get("patterns", {})
        self.patterns = PatternEngine(
            heavy=EmbeddingClusterDetector(embedder, patterns_cfg.get("heavy", {})),
            light=RuleMatchDetector(config=patterns_cfg.get("light", {})),
            selector=self.selector,
            config=patterns_cfg,
            analytics=self.analytics,
            store=payload_store,
        )
        self.hub = ContextFusionHub(
            ranker=self.ranker,
            selector=self.selector,
            config=config.get("fusion", {}),
            analytics=self.analytics,
        )
        self.hub.register_source(PatternSource(self.patterns.active))
        if record_store is not None:
            self.hub.register_source(RecordStoreSource(record_store))
        for source in sources:
            self.hub.register_source(source)

        automation_cfg = {**config.get("automation", {}), "retry": config.get("retry", {})}
        self.automation = AutomationEngine(
            executors or ExecutorRegistry.with_logging_executors(),
            config=automation_cfg,
            analytics=self.analytics,
            store=payload_store,
            record_store=record_store,
        )
        self.generator = RuleGenerator(config.get("automation", {}))
        self.scheduler = DecisionScheduler()
        self._build_tasks()

    def _build_tasks(self) -> None:
        cfg = self.config.get("scheduler", {})
        backoff = timedelta(hours=cfg.get("error_backoff_hours", 1))
        tasks = [
            PeriodicTask(
                "mode_refresh",
                self.selector.refresh,
                timedelta(seconds=cfg.get("mode_refresh_seconds", 60)),
            ),
            PeriodicTask(
                "context_poll",
                self.hub.poll_sources,
                timedelta(seconds=cfg.get("context_poll_seconds", 30)),
            ),
            PeriodicTask(
                "pattern_refresh",
                self.refresh_patterns,
                timedelta(hours=cfg.get("pattern_refresh_hours", 24)),
                backoff,
            ),
            PeriodicTask(
                "rule_generation",
                self.regenerate_rules,
                timedelta(hours=cfg.get("rule_generation_hours", 24)),
                backoff,
            ),
        ]
        self.tasks = {t.name: t for t in tasks}

    def _records(self, limit: int = 500) -> list[Record]:
        if self.record_store is None:
            return []
        return self.record_store.query(RecordFilter(limit=limit))

    async def refresh_patterns(self):
        records = self._records(self.config.get("patterns", {}).get("max_records", 500))
        self.ranker.invalidate()
        return await self.patterns.refresh(records, self.hub.current.to_query_context())

    async def regenerate_rules(self):
        rules = self.generator.generate(self.patterns.active.value, self.automation.list_rules())
        return self.automation.replace_generated_rules(rules)

    async def start(self) -> None:
        """Restore state, take a first reading, then start background jobs."""
        self.automation.load()
        self.patterns.load()
        await self.selector.refresh()
        await self.hub.poll_sources()
        for task in self.tasks.values():
            self.scheduler.add_task(task)
        self.scheduler.start()
        logger.info("runtime_started", mode=self.selector.current_mode().value)

    async def stop(self) -> None:
        await self.scheduler.stop()
        log_run_summary()
        logger.info("runtime_stopped")

    async def handle_trigger(self, event: TriggerEvent) -> CycleOutcome:
        # One snapshot reference for the whole cycle
        snapshot = self.hub.current
        return await self.automation.handle_trigger(event, snapshot)

    async def rank(self, query: str, limit: int | None = None) -> list[Record]:
        use_semantic = await self.selector.should_use_expensive_path(Capability.EMBEDDING)
        return await self.ranker.rank(
            query,
            self._records(),
            self.hub.current.to_query_context(),
            limit=limit,
            use_semantic=use_semantic,
        )
