"""Batch and reactive runner for the nurture loop.

Per lead the pipeline is: lease -> snapshot -> deal health -> oracle ->
guardrails -> repetition check -> execute or reschedule -> release lease.
Every path through the pipeline ends with a new ``next_review_at`` unless the
lead no longer exists, and a failure on one lead never aborts the batch.

Blocking I/O (the store, the oracle, the channel gateways) runs in worker
threads under per-call timeouts so one stalled call cannot hold up the
cycle beyond its budget.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy.orm import Session

from nurture.core.config import AgentSettings, Config, get_config
from nurture.core.enums import TERMINAL_STAGES, WON_STAGES, ActionType, Disposition
from nurture.core.exceptions import (
    ChannelSendError,
    ConsentRevokedError,
    DatabaseError,
    DataInconsistencyError,
    OracleTimeoutError,
)
from nurture.core.logging import LogContext, build_log_event
from nurture.core.snapshots import LeadSnapshot
from nurture.guardrails.repetition import detect_message_repetition, recent_outbound_messages
from nurture.guardrails.validator import GuardrailPolicy, RuleCode, validate_decision
from nurture.intelligence.clock import DEFAULT_REGION, next_local_hour, resolve_region, utcnow
from nurture.intelligence.deal_health import EngagementSignal, analyze_deal_health
from nurture.llm.oracle import DecisionOracle
from nurture.schemas.decisions import ProposedAction
from nurture.services.alert_service import AlertService
from nurture.services.channels import ChannelRegistry, compose_link_message
from nurture.services.lead_service import LeadService
from nurture.services.outcome_tracker import OutcomeTracker

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def in_rollout(lead_id: int | str, rollout_percent: int) -> bool:
    """Deterministic rollout bucket for a lead id."""
    if rollout_percent >= 100:
        return True
    if rollout_percent <= 0:
        return False
    digest = hashlib.md5(str(lead_id).encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 100 < rollout_percent


@dataclass(frozen=True)
class SchedulePolicy:
    batch_size: int = 50
    recent_contact_exclusion_minutes: int = 10
    lease_ttl_seconds: int = 300
    policy_retry_minutes: int = 60
    repetition_retry_hours: float = 6
    error_retry_hours: float = 2
    escalation_cooldown_hours: float = 48
    overdue_alert_hours: float = 24
    outcome_window_hours: float = 4
    oracle_timeout_seconds: float = 60
    channel_timeout_seconds: float = 30
    store_timeout_seconds: float = 30
    cycle_budget_seconds: float = 600
    contact_hours_start: int = 8
    default_region: str = DEFAULT_REGION

    @classmethod
    def from_config(cls, config: Config) -> "SchedulePolicy":
        return cls(
            batch_size=config.BATCH_SIZE,
            recent_contact_exclusion_minutes=config.RECENT_CONTACT_EXCLUSION_MINUTES,
            lease_ttl_seconds=config.LEASE_TTL_SECONDS,
            policy_retry_minutes=config.POLICY_RETRY_MINUTES,
            repetition_retry_hours=config.REPETITION_RETRY_HOURS,
            error_retry_hours=config.ERROR_RETRY_HOURS,
            escalation_cooldown_hours=config.ESCALATION_COOLDOWN_HOURS,
            overdue_alert_hours=config.OVERDUE_ALERT_HOURS,
            outcome_window_hours=config.OUTCOME_WINDOW_HOURS,
            oracle_timeout_seconds=config.ORACLE_TIMEOUT_SECONDS,
            channel_timeout_seconds=config.CHANNEL_TIMEOUT_SECONDS,
            cycle_budget_seconds=config.CYCLE_BUDGET_SECONDS,
            contact_hours_start=config.CONTACT_HOURS_START,
            default_region=config.DEFAULT_REGION,
        )


@dataclass
class LeadResult:
    lead_id: int
    disposition: Disposition
    next_review_at: datetime | None = None
    action: str | None = None
    reason: str = ""
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "disposition": self.disposition.value,
            "next_review_at": self.next_review_at.isoformat() if self.next_review_at else None,
            "action": self.action,
            "reason": self.reason,
            "warnings": list(self.warnings),
            "dry_run": self.dry_run,
        }


@dataclass
class CycleReport:
    cycle_id: str
    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    results: list[LeadResult] = field(default_factory=list)
    overdue_lead_ids: list[int] = field(default_factory=list)
    outcomes_evaluated: int = 0
    budget_exhausted: bool = False
    skipped_reason: str | None = None

    @property
    def counts(self) -> dict[str, int]:
        return dict(Counter(result.disposition.value for result in self.results))

    def as_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "processed": len(self.results),
            "counts": self.counts,
            "overdue_lead_ids": list(self.overdue_lead_ids),
            "outcomes_evaluated": self.outcomes_evaluated,
            "budget_exhausted": self.budget_exhausted,
            "skipped_reason": self.skipped_reason,
        }


class NurtureScheduler:
    """Runs the nurture pipeline for due leads (batch) or one lead (reactive)."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        oracle: DecisionOracle | None = None,
        channels: ChannelRegistry | None = None,
        alerts: AlertService | None = None,
        settings: AgentSettings | None = None,
        policy: SchedulePolicy | None = None,
        guardrails: GuardrailPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        owner: str | None = None,
    ) -> None:
        config = None
        if None in (session_factory, oracle, channels, alerts, settings, policy, guardrails):
            config = get_config()
        if session_factory is None:
            from nurture.database.db import get_session_factory

            session_factory = get_session_factory()
        self.session_factory = session_factory
        self.oracle = oracle or DecisionOracle(default_region=config.DEFAULT_REGION)
        self.channels = channels or ChannelRegistry.from_config(config)
        self.alerts = alerts or AlertService(config)
        self.settings = settings or config.agent_settings
        self.policy = policy or SchedulePolicy.from_config(config)
        self.guardrails = guardrails or GuardrailPolicy.from_config(config)
        self.clock = clock
        self.owner = owner or f"worker-{uuid.uuid4().hex[:12]}"

    # -- store access -----------------------------------------------------

    def _with_leads(self, work: Callable[[LeadService], Any]) -> Any:
        with LeadService(self.session_factory()) as leads:
            return work(leads)

    def _with_tracker(self, work: Callable[[OutcomeTracker], Any]) -> Any:
        with OutcomeTracker(self.session_factory(), window_hours=self.policy.outcome_window_hours) as tracker:
            return work(tracker)

    async def _blocking(self, fn: Callable[..., Any], *args: Any, timeout: float) -> Any:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)

    async def _leads(self, work: Callable[[LeadService], Any]) -> Any:
        return await self._blocking(self._with_leads, work, timeout=self.policy.store_timeout_seconds)

    # -- batch path -------------------------------------------------------

    async def select_batch(self, now: datetime) -> list[int]:
        """Due lead ids inside the rollout slice, capped at the batch size."""
        pct = self.settings.rollout_percent
        limit = self.policy.batch_size if pct >= 100 else None
        candidates = await self._leads(
            lambda leads: leads.select_due_leads(
                now,
                limit=limit,
                exclusion_minutes=self.policy.recent_contact_exclusion_minutes,
            )
        )
        selected = [lead_id for lead_id in candidates if in_rollout(lead_id, pct)]
        return selected[: self.policy.batch_size]

    async def run_cycle(self, now: datetime | None = None, trigger: str = "scheduled") -> CycleReport:
        fixed_now = now
        started = fixed_now or self.clock()
        report = CycleReport(cycle_id=uuid.uuid4().hex[:12], trigger=trigger, started_at=started)
        context = LogContext(cycle_id=report.cycle_id, trigger=trigger)

        if not self.settings.enabled:
            report.skipped_reason = "agent disabled"
            report.finished_at = started
            logger.info("scheduler.cycle.disabled", extra=build_log_event("scheduler.cycle.disabled", context))
            return report

        deadline = time.monotonic() + self.policy.cycle_budget_seconds
        try:
            lead_ids = await self.select_batch(started)
        except Exception as exc:
            logger.exception("scheduler.cycle.selection_failed", extra=build_log_event("scheduler.cycle.selection_failed", context))
            raise DatabaseError(f"Lead selection failed: {exc}") from exc

        logger.info(
            "scheduler.cycle.start",
            extra=build_log_event(
                "scheduler.cycle.start",
                context,
                batch=len(lead_ids),
                dry_run=self.settings.dry_run,
                rollout_percent=self.settings.rollout_percent,
            ),
        )

        for lead_id in lead_ids:
            if time.monotonic() >= deadline:
                report.budget_exhausted = True
                logger.warning(
                    "scheduler.cycle.budget_exhausted",
                    extra=build_log_event(
                        "scheduler.cycle.budget_exhausted",
                        context,
                        remaining=len(lead_ids) - len(report.results),
                    ),
                )
                break
            lead_now = fixed_now or self.clock()
            report.results.append(
                await self._process(lead_id, lead_now, trigger=trigger, cycle_id=report.cycle_id, proactive=True)
            )

        finished = fixed_now or self.clock()
        report.outcomes_evaluated = await self.sweep_outcomes(finished)
        report.overdue_lead_ids = await self.check_overdue(finished)
        report.finished_at = finished
        logger.info(
            "scheduler.cycle.finish",
            extra=build_log_event("scheduler.cycle.finish", context, **report.counts),
        )
        return report

    # -- reactive path ----------------------------------------------------

    async def process_lead(self, lead_id: int, now: datetime | None = None, trigger: str = "reactive") -> LeadResult:
        """Run the pipeline for one lead outside the batch (e.g. on an inbound reply)."""
        now = now or self.clock()
        if not self.settings.enabled:
            return LeadResult(lead_id, Disposition.SKIPPED, reason="agent disabled")
        return await self._process(lead_id, now, trigger=trigger, cycle_id=None, proactive=False)

    # -- health & outcomes ------------------------------------------------

    async def sweep_outcomes(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        try:
            evaluated = await self._blocking(
                self._with_tracker,
                lambda tracker: len(tracker.evaluate_due(now)),
                timeout=self.policy.store_timeout_seconds,
            )
        except Exception:
            logger.exception("outcome.sweep_failed", extra={"event": "outcome.sweep_failed"})
            return 0
        return evaluated

    async def check_overdue(self, now: datetime | None = None) -> list[int]:
        """Alert on leads whose review is far past due; returns their ids."""
        now = now or self.clock()
        try:
            overdue = await self._leads(
                lambda leads: [
                    (lead.id, lead.first_name or f"lead {lead.id}", lead.next_review_at)
                    for lead in leads.find_severely_overdue(now, self.policy.overdue_alert_hours)
                ]
            )
        except Exception:
            logger.exception("scheduler.health_check_failed", extra={"event": "scheduler.health_check_failed"})
            return []

        if not overdue:
            return []

        logger.warning(
            "scheduler.health.overdue",
            extra={"event": "scheduler.health.overdue", "count": len(overdue), "threshold_hours": self.policy.overdue_alert_hours},
        )
        lines = [
            f"- {name} (#{lead_id}): {int((now - due).total_seconds() // 3600)}h overdue"
            for lead_id, name, due in overdue[:20]
        ]
        await asyncio.to_thread(
            self.alerts.notify,
            "overdue",
            f"{len(overdue)} lead(s) severely overdue for review",
            "\n".join(lines),
            None,
        )
        return [lead_id for lead_id, _, _ in overdue]

    # -- per-lead pipeline ------------------------------------------------

    def _in_scope(self, snapshot: LeadSnapshot, proactive: bool) -> str | None:
        if snapshot.automation_disabled or not snapshot.managed_by_autonomous:
            return "lead not under autonomous management"
        if proactive and snapshot.stage in TERMINAL_STAGES:
            return f"terminal stage {snapshot.stage.value}"
        if not proactive and snapshot.stage in TERMINAL_STAGES - WON_STAGES:
            return f"terminal stage {snapshot.stage.value}"
        if not in_rollout(snapshot.id, self.settings.rollout_percent):
            return "outside rollout"
        return None

    async def _process(
        self,
        lead_id: int,
        now: datetime,
        *,
        trigger: str,
        cycle_id: str | None,
        proactive: bool,
    ) -> LeadResult:
        context = LogContext(cycle_id=cycle_id, lead_id=str(lead_id), trigger=trigger)
        try:
            acquired = await self._leads(
                lambda leads: leads.acquire_lease(lead_id, self.owner, now, self.policy.lease_ttl_seconds)
            )
        except Exception:
            logger.exception("scheduler.lease.failed", extra=build_log_event("scheduler.lease.failed", context))
            return LeadResult(lead_id, Disposition.ERRORED, reason="lease acquisition failed")
        if not acquired:
            return LeadResult(lead_id, Disposition.SKIPPED, reason="lead is leased by another worker")

        try:
            result = await self._run_pipeline(lead_id, now, context, proactive)
        except DataInconsistencyError as exc:
            logger.warning(
                "scheduler.lead.inconsistent",
                extra=build_log_event("scheduler.lead.inconsistent", context, error=str(exc)),
            )
            result = LeadResult(lead_id, Disposition.SKIPPED, reason=str(exc))
        except Exception as exc:
            result = await self._handle_failure(lead_id, now, context, exc)
        finally:
            try:
                await self._leads(lambda leads: leads.release_lease(lead_id, self.owner))
            except Exception:
                logger.exception("scheduler.lease.release_failed", extra=build_log_event("scheduler.lease.release_failed", context))

        logger.info(
            "scheduler.lead.processed",
            extra=build_log_event(
                "scheduler.lead.processed",
                context,
                disposition=result.disposition.value,
                action=result.action,
                next_review_at=result.next_review_at.isoformat() if result.next_review_at else None,
                dry_run=result.dry_run,
            ),
        )
        return result

    async def _handle_failure(self, lead_id: int, now: datetime, context: LogContext, exc: Exception) -> LeadResult:
        retry_at = now + timedelta(hours=self.policy.error_retry_hours)
        logger.error(
            "scheduler.lead.failed",
            exc_info=exc,
            extra=build_log_event("scheduler.lead.failed", context, error=str(exc), error_type=type(exc).__name__),
        )
        try:
            await self._leads(lambda leads: leads.schedule_next_review(lead_id, retry_at))
        except Exception:
            logger.exception("scheduler.lead.reschedule_failed", extra=build_log_event("scheduler.lead.reschedule_failed", context))
        return LeadResult(lead_id, Disposition.ERRORED, next_review_at=retry_at, reason=str(exc))

    async def _note(self, lead_id: int, kind: str, content: str, details: dict[str, Any] | None = None) -> None:
        await self._leads(lambda leads: leads.record_activity(lead_id, kind, content, details=details))

    async def _reschedule(self, result: LeadResult) -> LeadResult:
        await self._leads(lambda leads: leads.schedule_next_review(result.lead_id, result.next_review_at))
        return result

    async def _run_pipeline(self, lead_id: int, now: datetime, context: LogContext, proactive: bool) -> LeadResult:
        snapshot: LeadSnapshot = await self._leads(lambda leads: leads.load_snapshot(lead_id))
        out_of_scope = self._in_scope(snapshot, proactive)
        if out_of_scope:
            return LeadResult(lead_id, Disposition.SKIPPED, reason=out_of_scope)

        signal = analyze_deal_health(snapshot, now)
        try:
            action: ProposedAction = await self._blocking(
                self.oracle.decide,
                snapshot,
                signal,
                now,
                context.cycle_id,
                timeout=self.policy.oracle_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise OracleTimeoutError(
                f"Decision oracle did not answer within {self.policy.oracle_timeout_seconds:g}s"
            ) from exc

        validation = validate_decision(action, snapshot, signal, now=now, policy=self.guardrails)
        for warning in validation.warning_messages:
            logger.warning(
                "guardrails.warning",
                extra=build_log_event("guardrails.warning", context, action=action.action.value, warning=warning),
            )

        if not validation.is_valid:
            blocked = self._blocked(lead_id, snapshot, action, validation, now, context)
            await self._note(
                lead_id,
                "guardrail_block",
                f"Blocked {action.action.value}: {blocked.reason}",
                {"rules": sorted(rule.value for rule in validation.failed_rules), "message": action.message},
            )
            return await self._reschedule(blocked)

        if action.action == ActionType.WAIT:
            hours = action.wait_hours or signal.next_review_hours
            return await self._reschedule(
                LeadResult(
                    lead_id,
                    Disposition.WAITED,
                    next_review_at=now + timedelta(hours=hours),
                    action=action.action.value,
                    reason=action.thinking,
                    warnings=validation.warning_messages,
                )
            )

        if action.action == ActionType.ESCALATE:
            return await self._escalate(snapshot, action, signal, now, context, validation.warning_messages)

        message = action.message or ""
        verdict = detect_message_repetition(message, recent_outbound_messages(snapshot.communications))
        if verdict.is_repetitive:
            logger.info(
                "scheduler.lead.repetitive",
                extra=build_log_event("scheduler.lead.repetitive", context, reason=verdict.reason),
            )
            await self._note(lead_id, "repetition_block", verdict.reason, {"message": message})
            return await self._reschedule(
                LeadResult(
                    lead_id,
                    Disposition.REPETITIVE,
                    next_review_at=now + timedelta(hours=self.policy.repetition_retry_hours),
                    action=action.action.value,
                    reason=verdict.reason,
                    warnings=validation.warning_messages,
                )
            )

        return await self._execute_send(snapshot, action, signal, now, context, validation.warning_messages)

    def _blocked(self, lead_id, snapshot, action, validation, now, context) -> LeadResult:
        if validation.blocked_by(RuleCode.QUIET_HOURS):
            region = resolve_region(snapshot.region, self.policy.default_region)
            retry_at = next_local_hour(region, now, hour=self.policy.contact_hours_start)
        else:
            retry_at = now + timedelta(minutes=self.policy.policy_retry_minutes)
        logger.info(
            "guardrails.rejected",
            extra=build_log_event(
                "guardrails.rejected",
                context,
                action=action.action.value,
                rules=sorted(rule.value for rule in validation.failed_rules),
                errors=validation.error_messages,
            ),
        )
        return LeadResult(
            lead_id,
            Disposition.BLOCKED,
            next_review_at=retry_at,
            action=action.action.value,
            reason="; ".join(validation.error_messages),
            warnings=validation.warning_messages,
        )

    async def _escalate(
        self,
        snapshot: LeadSnapshot,
        action: ProposedAction,
        signal: EngagementSignal,
        now: datetime,
        context: LogContext,
        warnings: list[str],
    ) -> LeadResult:
        retry_at = now + timedelta(hours=self.policy.escalation_cooldown_hours)
        reason = action.thinking or "Escalated for human review"
        prefix = "[DRY RUN] " if self.settings.dry_run else ""
        await self._leads(
            lambda leads: leads.record_activity(
                snapshot.id,
                "escalation",
                f"{prefix}Escalated to a human: {reason}",
                details={"temperature": signal.temperature.value, "urgency": signal.contextual_urgency},
            )
        )
        if not self.settings.dry_run:
            await asyncio.to_thread(
                self.alerts.notify,
                "escalation",
                f"{snapshot.display_name} needs a human",
                reason,
                snapshot.id,
            )
        return await self._reschedule(
            LeadResult(
                snapshot.id,
                Disposition.ESCALATED,
                next_review_at=retry_at,
                action=action.action.value,
                reason=reason,
                warnings=warnings,
                dry_run=self.settings.dry_run,
            )
        )

    async def _execute_send(
        self,
        snapshot: LeadSnapshot,
        action: ProposedAction,
        signal: EngagementSignal,
        now: datetime,
        context: LogContext,
        warnings: list[str],
    ) -> LeadResult:
        channel = action.channel
        body = action.message or ""
        if action.action == ActionType.SEND_TEMPLATED_LINK and action.link_kind is not None:
            body = compose_link_message(body, action.link_kind)
        next_review_at = now + timedelta(hours=signal.next_review_hours)

        if self.settings.dry_run:
            await self._leads(
                lambda leads: leads.record_activity(
                    snapshot.id,
                    "dry_run",
                    f"[DRY RUN] Would send {channel.value}: {body}",
                    channel=channel,
                    details={"action": action.action.value, "confidence": action.confidence.value},
                )
            )
            return await self._reschedule(
                LeadResult(
                    snapshot.id,
                    Disposition.EXECUTED,
                    next_review_at=next_review_at,
                    action=action.action.value,
                    warnings=warnings,
                    dry_run=True,
                )
            )

        recipient = snapshot.recipient_for(channel)
        if not recipient:
            raise ChannelSendError(f"Lead {snapshot.id} has no {channel.value} address")
        sender = self.channels.get(channel)
        try:
            delivery = await self._blocking(sender.send, recipient, body, timeout=self.policy.channel_timeout_seconds)
        except ConsentRevokedError as exc:
            await self._leads(lambda leads: leads.revoke_consent(snapshot.id, channel))
            return await self._reschedule(
                LeadResult(
                    snapshot.id,
                    Disposition.BLOCKED,
                    next_review_at=now + timedelta(minutes=self.policy.policy_retry_minutes),
                    action=action.action.value,
                    reason=str(exc),
                    warnings=warnings,
                )
            )
        except asyncio.TimeoutError as exc:
            raise ChannelSendError(f"{channel.value} send timed out") from exc

        communication = await self._leads(
            lambda leads: leads.record_communication(
                snapshot.id,
                channel,
                body,
                provider_message_id=delivery.provider_message_id,
                now=now,
            )
        )
        decision = {
            "action": action.action.value,
            "confidence": action.confidence.value,
            "thinking": action.thinking,
            "channel": channel.value,
        }
        try:
            await self._blocking(
                self._with_tracker,
                lambda tracker: tracker.arm(
                    snapshot.id,
                    communication.id,
                    body,
                    now,
                    stage=snapshot.stage.value,
                    temperature=signal.temperature.value,
                    decision=decision,
                ),
                timeout=self.policy.store_timeout_seconds,
            )
        except Exception:
            # Delivered already; only the outcome record is lost.
            logger.exception(
                "scheduler.outcome.arm_failed",
                extra=build_log_event("scheduler.outcome.arm_failed", context, communication_id=communication.id),
            )
        return await self._reschedule(
            LeadResult(
                snapshot.id,
                Disposition.EXECUTED,
                next_review_at=next_review_at,
                action=action.action.value,
                warnings=warnings,
            )
        )
