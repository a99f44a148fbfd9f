"""
Scheduler - resumes delayed runs and fires time-based triggers.

Polls the run store every ``poll_interval`` seconds. Suspensions are rows in
the database, so runs parked at a delay survive a process restart and are
picked up by the next tick.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..core.exceptions import AutomationError
from .configs import TriggerConfig
from .graph import load_graph
from .trigger_matcher import trigger_matcher
from .types import DomainEvent, TriggerType, WorkflowStatus

if TYPE_CHECKING:
    from .runner import ExecutionEngine
    from .types import Run, StoredWorkflow, Suspension

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)


class Scheduler:
    def __init__(self, engine: ExecutionEngine, poll_interval: float = 5.0) -> None:
        self.engine = engine
        self.poll_interval = poll_interval

    async def tick(self) -> list[Run]:
        """Resume every due suspension, then fire due timers. Returns the runs touched."""
        runs = await self.resume_due()
        runs.extend(await self.fire_timers())
        return runs

    async def resume_due(self) -> list[Run]:
        now = self.engine.clock.now()
        resumed: list[Run] = []

        for suspension in await self.engine.runs.due_suspensions(now):
            claimed = await self.engine.runs.claim_suspension(suspension.run_id)
            if claimed is None:
                # Resumed by another worker or cancelled meanwhile
                continue
            try:
                run = await self.engine.resume(claimed)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Run %s failed to resume", claimed.run_id)
                run = await self._fail_claimed(claimed, str(e) or type(e).__name__)
            if run is not None:
                resumed.append(run)

        return resumed

    async def _fail_claimed(self, claimed: Suspension, message: str) -> Run | None:
        """Fail a run whose resume raised. If that fails too, park it again for the next tick."""
        try:
            return await self.engine.fail_run(claimed, "resume", message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Run %s could not be marked failed; retrying next tick", claimed.run_id)
            await self.engine.runs.save_suspension(claimed)
            return None

    async def fire_timers(self) -> list[Run]:
        """Start a run for each time-based workflow whose current instant is unclaimed."""
        now = self.engine.clock.now()
        started: list[Run] = []

        for workflow in await self.engine.workflows.list(status=WorkflowStatus.ACTIVE):
            config = _timer_config(workflow)
            if config is None:
                continue
            try:
                started.extend(await self._fire_timer(workflow, config, now))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Timer for workflow %s failed", workflow.id)

        return started

    async def _fire_timer(self, workflow: StoredWorkflow, config: TriggerConfig, now: datetime) -> list[Run]:
        instant = scheduled_instant(now, config.interval_seconds)
        if not await self.engine.workflows.claim_timer_instant(workflow.id, instant):
            return []

        event = DomainEvent(
            type=TriggerType.TIME_BASED,
            tenant_id=workflow.tenant_id,
            workflow_id=workflow.id,
            payload={"schedule": {"firedAt": instant.isoformat()}},
            occurred_at=now,
        )
        started = []
        for match in trigger_matcher.match(event, [workflow]):
            logger.info("Timer fired for workflow %s at %s", workflow.id, instant.isoformat())
            started.append(await self.engine.start_run(match.workflow, event.payload, match.graph))
        return started

    async def run_forever(self) -> None:
        """Poll until cancelled. A failing tick is logged and retried on the next poll."""
        logger.info("Scheduler started (poll every %.1fs)", self.poll_interval)
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self.poll_interval)


def scheduled_instant(now: datetime, interval_seconds: float) -> datetime:
    """Latest schedule instant at or before ``now``, anchored to the Unix epoch."""
    elapsed = (now - EPOCH).total_seconds()
    return EPOCH + timedelta(seconds=math.floor(elapsed / interval_seconds) * interval_seconds)


def _timer_config(workflow: StoredWorkflow) -> TriggerConfig | None:
    try:
        graph = load_graph(workflow.workflow_data)
    except AutomationError as e:
        logger.warning("Skipping timer for workflow %s: %s", workflow.id, e.message)
        return None
    config = graph.trigger.config
    if config.trigger_type is not TriggerType.TIME_BASED:
        return None
    return config
