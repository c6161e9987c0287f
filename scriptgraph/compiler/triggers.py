"""
scriptgraph Compiler — Trigger Installer
=========================================
Generates Triggers.js when the graph has at least one trigger.* node.

    installTriggers()   deleteTriggers(), then one ScriptApp trigger per
                        trigger node, all pointing at executeWorkflow
    deleteTriggers()    removes every project trigger whose handler is
                        executeWorkflow, so installing twice is harmless
    doPost(e)/doGet(e)  only with a trigger.webhook node: turn the request
                        into triggerData, run the workflow, answer JSON

Schedule translation
--------------------
Apps Script clock triggers are interval based, so cron strings are mapped
onto the closest builder chain:

    @hourly              everyHours(1)
    @daily               everyDays(1)
    @weekly              everyWeeks(1)
    */N * * * *          everyMinutes(N)        N snapped to 1/5/10/15/30
    0 */N * * *          everyHours(N)          N snapped to 1/2/4/6/8/12
    M H * * *            everyDays(1).atHour(H).nearMinute(M)
    M H * * D            onWeekDay(D).atHour(H).nearMinute(M)

Anything else falls back to a daily trigger, with a comment saying so.
Gmail and Sheets triggers poll every `pollingInterval` minutes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .emitter import ENTRY_FUNCTION
from .scheduler import ExecutionPlan, ScheduledNode
from .templates import NodeKind
from .writer import CodeWriter, comment_text, js_literal

logger = logging.getLogger(__name__)

TRIGGERS_FILE = "Triggers.js"

MINUTE_INTERVALS = (1, 5, 10, 15, 30)
HOUR_INTERVALS = (1, 2, 4, 6, 8, 12)
DEFAULT_POLLING_MINUTES = 5

_WEEKDAYS = {
    "0": "SUNDAY", "1": "MONDAY", "2": "TUESDAY", "3": "WEDNESDAY",
    "4": "THURSDAY", "5": "FRIDAY", "6": "SATURDAY", "7": "SUNDAY",
    "SUN": "SUNDAY", "MON": "MONDAY", "TUE": "TUESDAY", "WED": "WEDNESDAY",
    "THU": "THURSDAY", "FRI": "FRIDAY", "SAT": "SATURDAY",
}

_STEP = re.compile(r"^\*/(\d+)$")


def snap(value: int, allowed: Sequence[int]) -> int:
    """Closest allowed interval; ties go to the smaller one."""
    return min(allowed, key=lambda candidate: (abs(candidate - value), candidate))


@dataclass(frozen=True)
class Schedule:
    chain: str
    note: Optional[str] = None


def _in_range(text: str, low: int, high: int) -> Optional[int]:
    if not text.isdigit():
        return None
    value = int(text)
    return value if low <= value <= high else None


def translate_schedule(schedule: Optional[str]) -> Schedule:
    """Map a cron expression or @alias onto a ScriptApp clock-trigger chain."""
    text = (schedule or "@daily").strip()
    aliases = {
        "@hourly": "everyHours(1)",
        "@daily": "everyDays(1)",
        "@weekly": "everyWeeks(1)",
    }
    if text in aliases:
        return Schedule(aliases[text])

    fields = text.split()
    if len(fields) == 5:
        minute, hour, dom, month, dow = fields

        step = _STEP.match(minute)
        if step and hour == "*" and dom == "*" and month == "*" and dow == "*":
            every = int(step.group(1))
            snapped = snap(every, MINUTE_INTERVALS)
            note = None if snapped == every else f"every {every} minutes is not supported; using {snapped}"
            return Schedule(f"everyMinutes({snapped})", note)

        step = _STEP.match(hour)
        if minute == "0" and step and dom == "*" and month == "*" and dow == "*":
            every = int(step.group(1))
            snapped = snap(every, HOUR_INTERVALS)
            note = None if snapped == every else f"every {every} hours is not supported; using {snapped}"
            return Schedule(f"everyHours({snapped})", note)

        at_minute = _in_range(minute, 0, 59)
        at_hour = _in_range(hour, 0, 23)
        if at_minute is not None and at_hour is not None and dom == "*" and month == "*":
            at = f"atHour({at_hour}).nearMinute({at_minute})"
            if dow == "*":
                return Schedule(f"everyDays(1).{at}")
            weekday = _WEEKDAYS.get(dow.upper())
            if weekday is not None:
                return Schedule(f"onWeekDay(ScriptApp.WeekDay.{weekday}).{at}")

    logger.warning(f"Unsupported schedule '{text}'; installing a daily trigger instead")
    return Schedule("everyDays(1)", f"unsupported schedule '{text}', falling back to daily")


class TriggerInstallerGenerator:

    def generate(self, plan: ExecutionPlan) -> Optional[str]:
        """Triggers.js source, or None when the graph has no trigger nodes."""
        triggers = [n for n in plan.nodes if n.tag.startswith("trigger.")]
        if not triggers:
            return None

        w = CodeWriter()
        w.writeln("/**")
        w.writeln(" * Trigger setup and management")
        w.writeln(f" * Workflow: {comment_text(plan.graph.display_name)}")
        w.writeln(" */")
        w.blank()
        self._install(triggers, w)
        w.blank()
        self._delete(w)
        if any(n.kind is NodeKind.WEBHOOK_TRIGGER for n in triggers):
            w.blank()
            self._webhook_handlers(w)
        return w.render() + "\n"

    # ── installTriggers ───────────────────────────────────────────────────

    def _install(self, triggers: List[ScheduledNode], w: CodeWriter) -> None:
        w.writeln("/**")
        w.writeln(" * Install all triggers for this workflow.  Safe to run repeatedly.")
        w.writeln(" */")
        w.writeln("function installTriggers() {")
        w.push()
        w.writeln("deleteTriggers();")
        for snode in triggers:
            w.blank()
            self._install_one(snode, w)
        w.blank()
        w.writeln("Logger.log('All triggers installed successfully');")
        w.pop()
        w.writeln("}")

    def _install_one(self, snode: ScheduledNode, w: CodeWriter) -> None:
        handler = js_literal(ENTRY_FUNCTION)
        kind = snode.kind
        label = comment_text(snode.node_id)

        if kind is NodeKind.TIME_TRIGGER:
            raw = snode.config.get("schedule") or snode.config.get("cron") or "@daily"
            schedule = translate_schedule(str(raw))
            w.comment(f"{label}: time trigger ({comment_text(raw)})")
            if schedule.note:
                w.comment(comment_text(schedule.note))
            w.writeln(f"ScriptApp.newTrigger({handler}).timeBased().{schedule.chain}.create();")

        elif kind in (NodeKind.GMAIL_TRIGGER, NodeKind.SHEETS_TRIGGER):
            minutes = self.polling_minutes(snode)
            source = "Gmail" if kind is NodeKind.GMAIL_TRIGGER else "Sheets"
            w.comment(f"{label}: {source} polling every {minutes} minute(s)")
            w.writeln(f"ScriptApp.newTrigger({handler}).timeBased().everyMinutes({minutes}).create();")

        elif kind is NodeKind.WEBHOOK_TRIGGER:
            w.comment(f"{label}: webhook trigger")
            w.writeln("Logger.log('Webhook trigger configured: deploy as a web app to activate');")

        else:
            w.comment(f"{label}: no installable trigger for {comment_text(snode.tag)}")

    def polling_minutes(self, snode: ScheduledNode) -> int:
        raw = snode.config.get("pollingInterval", DEFAULT_POLLING_MINUTES)
        try:
            minutes = int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Node '{snode.node_id}': invalid pollingInterval {raw!r}, using {DEFAULT_POLLING_MINUTES}")
            minutes = DEFAULT_POLLING_MINUTES
        return snap(minutes, MINUTE_INTERVALS)

    # ── deleteTriggers ────────────────────────────────────────────────────

    def _delete(self, w: CodeWriter) -> None:
        w.writeln("/**")
        w.writeln(" * Remove every trigger that runs this workflow.")
        w.writeln(" */")
        w.writeln("function deleteTriggers() {")
        w.push()
        w.writeln("ScriptApp.getProjectTriggers().forEach(function (trigger) {")
        w.writeln(f"  if (trigger.getHandlerFunction() === {js_literal(ENTRY_FUNCTION)}) {{")
        w.writeln("    ScriptApp.deleteTrigger(trigger);")
        w.writeln("  }")
        w.writeln("});")
        w.pop()
        w.writeln("}")

    # ── doPost / doGet ────────────────────────────────────────────────────

    def _webhook_handlers(self, w: CodeWriter) -> None:
        w.writeln("/**")
        w.writeln(" * Run the workflow for an inbound request and answer with JSON.")
        w.writeln(" */")
        w.writeln("function handleWebhookRequest(triggerData) {")
        w.push()
        w.writeln("let payload;")
        w.writeln("try {")
        w.push()
        w.writeln(f"const result = {ENTRY_FUNCTION}(triggerData);")
        w.writeln("payload = { success: true, results: result.results, correlationId: result.correlationId };")
        w.pop()
        w.writeln("} catch (error) {")
        w.push()
        w.writeln("Logger.log('Webhook execution failed: ' + error.toString());")
        w.writeln("payload = { success: false, error: error.toString() };")
        w.pop()
        w.writeln("}")
        w.writeln("return ContentService")
        w.writeln("  .createTextOutput(JSON.stringify(payload))")
        w.writeln("  .setMimeType(ContentService.MimeType.JSON);")
        w.pop()
        w.writeln("}")
        w.blank()
        w.writeln("function doPost(e) {")
        w.push()
        w.writeln("e = e || {};")
        w.writeln("const contents = e.postData ? e.postData.contents : '';")
        w.writeln("return handleWebhookRequest({")
        w.writeln("  method: 'POST',")
        w.writeln("  headers: {},")
        w.writeln("  body: contents ? safeJsonParse(contents, contents) : {},")
        w.writeln("  query: e.parameter || {}")
        w.writeln("});")
        w.pop()
        w.writeln("}")
        w.blank()
        w.writeln("function doGet(e) {")
        w.push()
        w.writeln("e = e || {};")
        w.writeln("return handleWebhookRequest({")
        w.writeln("  method: 'GET',")
        w.writeln("  headers: {},")
        w.writeln("  body: {},")
        w.writeln("  query: e.parameter || {}")
        w.writeln("});")
        w.pop()
        w.writeln("}")


__all__ = [
    "HOUR_INTERVALS",
    "MINUTE_INTERVALS",
    "Schedule",
    "TRIGGERS_FILE",
    "TriggerInstallerGenerator",
    "snap",
    "translate_schedule",
]
