"""
scriptgraph Compiler — Node Code Templates
===========================================
One NodeTemplate per supported capability tag.  A template emits the body of
`function execute_<safeId>(context) { ... }` into a CodeWriter and returns a
result object of the shape

    { type: "<result type>", ..., status: "<status>" }

Hooks
-----
  emit_body(node, writer, options)
      Writes the statements inside the node function at the writer's
      current indent.  May drop SlotKind slots where cross-cutting code
      belongs (auth / error / rateLimit / dedup).

  injection_params(node, options)
      Connector facts the injector needs to fill this template's slots
      (slug, auth mechanism, dedup key, rate-limit window ...).

  secret_properties(node, options)
      Script property names the generated code reads for credentials.

Dispatch
--------
NodeKind is the closed set of supported tags.  NodeKind.parse(tag) returns
None for anything else, and get_template() then hands back
UnknownNodeTemplate, which emits a stub returning status "skipped".

Adding a node type
------------------
1. Add a NodeKind member.
2. Subclass NodeTemplate and override emit_body (plus the slot hooks if the
   node calls out over HTTP or polls for items).
3. Register: TEMPLATE_REGISTRY[NodeKind.MY_KIND] = MyTemplate()
"""

from __future__ import annotations

import logging
import re
import textwrap
from collections import Counter
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import CompilationError
from .injector import CrossCuttingInjector, InjectionParams, secret_properties
from .ir import CompilerOptions, Node
from .writer import CodeWriter, SlotKind, comment_text, js_literal

if TYPE_CHECKING:
    from .scheduler import ScheduledNode

logger = logging.getLogger(__name__)


# ── Node kinds ────────────────────────────────────────────────────────────────

class NodeKind(str, Enum):
    TIME_TRIGGER = "trigger.time.cron"
    WEBHOOK_TRIGGER = "trigger.webhook"
    GMAIL_TRIGGER = "trigger.gmail.new_email"
    SHEETS_TRIGGER = "trigger.sheets.row_added"
    GMAIL_SEND = "action.gmail.send"
    GMAIL_READ = "action.gmail.read"
    SHEETS_APPEND = "action.sheets.append"
    SHEETS_READ = "action.sheets.read"
    DRIVE_CREATE = "action.drive.create_file"
    HTTP_REQUEST = "action.http.request"
    SLACK_POST = "action.slack.post_message"
    CONDITION = "condition.if"
    DATA_MAPPER = "transform.data_mapper"
    DELAY = "utility.delay"
    LOGGER = "utility.logger"

    @classmethod
    def parse(cls, tag: Optional[str]) -> Optional["NodeKind"]:
        try:
            return cls(tag)
        except ValueError:
            return None

    @property
    def category(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def is_trigger(self) -> bool:
        return self.category == "trigger"


# ── Config access ─────────────────────────────────────────────────────────────

def _get(config: Mapping[str, Any], key: str, default: Any) -> Any:
    """Config value, treating None and "" as unset."""
    value = config.get(key)
    if value is None or value == "":
        return default
    return value


def _int(node: "ScheduledNode", key: str, default: int, config: Optional[Mapping[str, Any]] = None) -> int:
    """Integer config value; `config` defaults to the node's own config."""
    value = _get(node.config if config is None else config, key, default)
    if isinstance(value, bool):
        raise CompilationError(f"Node '{node.node_id}': '{key}' must be a number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CompilationError(f"Node '{node.node_id}': '{key}' must be a number, got {value!r}") from None


def config_flag(config: Mapping[str, Any], key: str) -> bool:
    value = config.get(key, False)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


_WHOLE_PLACEHOLDER = re.compile(r"^\s*(?:\{\{([^{}]+)\}\}|\$\{([^{}]+)\})\s*$")


def context_path(value: Any) -> str:
    """Strip a single wrapping placeholder: "{{triggerData.x}}" -> "triggerData.x"."""
    text = "" if value is None else str(value)
    match = _WHOLE_PLACEHOLDER.match(text)
    if match:
        return (match.group(1) or match.group(2)).strip()
    return text.strip()


def runtime_string(value: Any) -> str:
    """JS expression for a string that may still hold run-time placeholders."""
    text = "" if value is None else str(value)
    if "{{" in text or "${" in text:
        return f"resolveTemplate({js_literal(text)}, context)"
    return js_literal(text)


def runtime_value(value: Any) -> str:
    """JS expression for a mapping entry: a lone placeholder keeps the raw value type."""
    if isinstance(value, str):
        if _WHOLE_PLACEHOLDER.match(value):
            return f"getContextValue(context, {js_literal(context_path(value))})"
        return runtime_string(value)
    if isinstance(value, (dict, list)):
        return f"resolveObject({js_literal(value)}, context)"
    return js_literal(value)


_OPEN_SHEET = textwrap.dedent("""\
    let sheet;
    if (spreadsheetId) {
      const spreadsheet = SpreadsheetApp.openById(spreadsheetId);
      sheet = spreadsheet.getSheetByName(sheetName) || spreadsheet.getActiveSheet();
    } else {
      sheet = SpreadsheetApp.getActiveSheet();
    }""")


# ── Base template ─────────────────────────────────────────────────────────────

class NodeTemplate:
    """
    Base class; subclass and override the hooks you need.
    """

    kind: Optional[NodeKind] = None
    result_type: str = "unknown"
    status: str = "completed"

    def emit_body(self, node: "ScheduledNode", writer: CodeWriter, options: CompilerOptions) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not implement emit_body")

    def injection_params(self, node: "ScheduledNode", options: CompilerOptions) -> InjectionParams:
        return InjectionParams(rate_limiting=bool(options.include_rate_limiting))

    def secret_properties(self, node: "ScheduledNode", options: CompilerOptions) -> List[str]:
        return []

    def emit_result(self, writer: CodeWriter, *fields: Tuple[str, str]) -> None:
        """Write `return {type, <fields>, status};` with type first and status last."""
        writer.writeln("return {")
        writer.push()
        writer.writeln(f"type: {js_literal(self.result_type)},")
        for key, expr in fields:
            writer.writeln(f"{key}: {expr},")
        writer.writeln(f"status: {js_literal(self.status)}")
        writer.pop()
        writer.writeln("};")


# ── Triggers ──────────────────────────────────────────────────────────────────

class TimeTriggerTemplate(NodeTemplate):
    kind = NodeKind.TIME_TRIGGER
    result_type = "time_trigger"
    status = "triggered"

    def emit_body(self, node, writer, options):
        schedule = _get(node.config, "schedule", _get(node.config, "cron", "@daily"))
        timezone = _get(node.config, "timezone", options.timezone)
        writer.comment("Time trigger: runs on the installed schedule")
        self.emit_result(
            writer,
            ("schedule", js_literal(schedule)),
            ("timezone", js_literal(timezone)),
            ("triggeredAt", "new Date()"),
        )


class WebhookTriggerTemplate(NodeTemplate):
    kind = NodeKind.WEBHOOK_TRIGGER
    result_type = "webhook_trigger"
    status = "triggered"

    def emit_body(self, node, writer, options):
        writer.comment("Webhook trigger: request data arrives through doPost/doGet")
        writer.writeln("const request = context.triggerData || {};")
        self.emit_result(
            writer,
            ("method", "request.method || 'POST'"),
            ("headers", "request.headers || {}"),
            ("body", "request.body || {}"),
            ("query", "request.query || {}"),
        )


class _PollingTriggerTemplate(NodeTemplate):
    """Shared injection facts for triggers that poll for new items."""

    source = "items"

    def injection_params(self, node, options):
        ttl = _get(node.config, "dedupTtlHours", 24)
        try:
            ttl_hours = float(ttl)
        except (TypeError, ValueError):
            raise CompilationError(f"Node '{node.node_id}': 'dedupTtlHours' must be a number, got {ttl!r}") from None
        return InjectionParams(
            slug=self.source,
            rate_limiting=bool(options.include_rate_limiting),
            dedup_key=f"{self.source}:{node.node_id}",
            ttl_hours=ttl_hours,
        )


class GmailTriggerTemplate(_PollingTriggerTemplate):
    kind = NodeKind.GMAIL_TRIGGER
    result_type = "gmail_trigger"
    status = "triggered"
    source = "gmail"

    def emit_body(self, node, writer, options):
        writer.comment("Gmail trigger: collect messages matching the search query")
        writer.writeln(f"const query = {js_literal(_get(node.config, 'query', 'is:unread'))};")
        writer.writeln(f"const maxResults = {_int(node, 'maxResults', 10)};")
        writer.block(textwrap.dedent("""\
            const threads = GmailApp.search(query, 0, maxResults);
            let items = [];
            threads.forEach(function (thread) {
              thread.getMessages().forEach(function (message) {
                items.push({
                  id: message.getId(),
                  subject: message.getSubject(),
                  from: message.getFrom(),
                  to: message.getTo(),
                  date: message.getDate(),
                  body: message.getPlainBody(),
                  isUnread: message.isUnread(),
                  threadId: thread.getId()
                });
              });
            });"""))
        writer.slot(SlotKind.DEDUP)
        self.emit_result(
            writer,
            ("query", "query"),
            ("emailsFound", "items.length"),
            ("emails", "items"),
        )


class SheetsTriggerTemplate(_PollingTriggerTemplate):
    kind = NodeKind.SHEETS_TRIGGER
    result_type = "sheets_trigger"
    status = "triggered"
    source = "sheets"

    def emit_body(self, node, writer, options):
        writer.comment("Sheets trigger: collect rows, keyed by row number")
        writer.writeln(f"const spreadsheetId = {js_literal(_get(node.config, 'spreadsheetId', ''))};")
        writer.writeln(f"const sheetName = {js_literal(_get(node.config, 'sheetName', 'Sheet1'))};")
        writer.block(_OPEN_SHEET)
        writer.block(textwrap.dedent("""\
            const values = sheet.getDataRange().getValues();
            const headers = values.length > 0 ? values[0] : [];
            let items = values.slice(1).map(function (row, index) {
              const record = { id: sheetName + ':' + (index + 2) };
              headers.forEach(function (header, column) {
                record[header] = row[column];
              });
              return record;
            });"""))
        writer.slot(SlotKind.DEDUP)
        self.emit_result(
            writer,
            ("spreadsheetId", "spreadsheetId"),
            ("sheetName", "sheetName"),
            ("rowsFound", "items.length"),
            ("rows", "items"),
        )


# ── Google Workspace actions ──────────────────────────────────────────────────

class GmailSendTemplate(NodeTemplate):
    kind = NodeKind.GMAIL_SEND
    result_type = "gmail_send"
    status = "sent"

    def emit_body(self, node, writer, options):
        cfg = node.config
        writer.comment("Send email via Gmail")
        writer.writeln(f"const to = {runtime_string(_get(cfg, 'to', '{{triggerData.email}}'))};")
        writer.writeln(f"const subject = {runtime_string(_get(cfg, 'subject', 'Automation Notification'))};")
        writer.writeln(f"const body = {runtime_string(_get(cfg, 'body', 'This is an automated message.'))};")
        writer.writeln("const emailOptions = {")
        writer.push()
        writer.writeln("to: to,")
        writer.writeln("subject: subject,")
        writer.writeln("htmlBody: body" if config_flag(cfg, "htmlBody") else "body: body")
        writer.pop()
        writer.writeln("};")
        for key in ("cc", "bcc", "replyTo", "name"):
            if _get(cfg, key, None) is not None:
                writer.writeln(f"emailOptions.{key} = {runtime_string(cfg[key])};")
        if config_flag(cfg, "attachments"):
            writer.writeln("if (context.results.attachments) {")
            writer.writeln("  emailOptions.attachments = context.results.attachments;")
            writer.writeln("}")
        writer.writeln("MailApp.sendEmail(emailOptions);")
        self.emit_result(
            writer,
            ("to", "to"),
            ("subject", "subject"),
            ("sentAt", "new Date()"),
        )


class GmailReadTemplate(NodeTemplate):
    kind = NodeKind.GMAIL_READ
    result_type = "gmail_read"
    status = "completed"

    def emit_body(self, node, writer, options):
        writer.comment("Read emails from Gmail")
        writer.writeln(f"const query = {runtime_string(_get(node.config, 'query', 'is:unread'))};")
        writer.writeln(f"const maxResults = {_int(node, 'maxResults', 10)};")
        writer.writeln(f"const markAsRead = {js_literal(config_flag(node.config, 'markAsRead'))};")
        writer.block(textwrap.dedent("""\
            const threads = GmailApp.search(query, 0, maxResults);
            const emails = [];
            threads.forEach(function (thread) {
              thread.getMessages().forEach(function (message) {
                emails.push({
                  id: message.getId(),
                  subject: message.getSubject(),
                  from: message.getFrom(),
                  to: message.getTo(),
                  date: message.getDate(),
                  body: message.getPlainBody(),
                  htmlBody: message.getBody(),
                  isUnread: message.isUnread(),
                  threadId: thread.getId(),
                  labels: thread.getLabels().map(function (label) { return label.getName(); })
                });
                if (markAsRead && message.isUnread()) {
                  message.markRead();
                }
              });
            });"""))
        self.emit_result(
            writer,
            ("query", "query"),
            ("emailsRead", "emails.length"),
            ("emails", "emails"),
        )


class SheetsAppendTemplate(NodeTemplate):
    kind = NodeKind.SHEETS_APPEND
    result_type = "sheets_append"
    status = "completed"

    def emit_body(self, node, writer, options):
        cfg = node.config
        values = _get(cfg, "values", [])
        if not isinstance(values, list):
            raise CompilationError(f"Node '{node.node_id}': 'values' must be a list of rows")
        if values and not all(isinstance(row, list) for row in values):
            values = [values]

        writer.comment("Append rows to Google Sheets")
        writer.writeln(f"const spreadsheetId = {js_literal(_get(cfg, 'spreadsheetId', ''))};")
        writer.writeln(f"const sheetName = {js_literal(_get(cfg, 'sheetName', 'Sheet1'))};")
        writer.writeln(f"const rows = {js_literal(values)}.map(function (row) {{")
        writer.writeln("  return row.map(function (cell) { return resolveTemplate(String(cell), context); });")
        writer.writeln("});")
        if config_flag(cfg, "includeTimestamp"):
            writer.writeln("rows.forEach(function (row) { row.push(new Date().toISOString()); });")
        writer.block(_OPEN_SHEET)
        writer.writeln("if (rows.length > 0) {")
        writer.writeln("  sheet.getRange(sheet.getLastRow() + 1, 1, rows.length, rows[0].length).setValues(rows);")
        writer.writeln("}")
        self.emit_result(
            writer,
            ("spreadsheetId", "spreadsheetId"),
            ("sheetName", "sheetName"),
            ("rowsAdded", "rows.length"),
            ("lastRow", "sheet.getLastRow()"),
        )


class SheetsReadTemplate(NodeTemplate):
    kind = NodeKind.SHEETS_READ
    result_type = "sheets_read"
    status = "completed"

    def emit_body(self, node, writer, options):
        cfg = node.config
        writer.comment("Read data from Google Sheets")
        writer.writeln(f"const spreadsheetId = {js_literal(_get(cfg, 'spreadsheetId', ''))};")
        writer.writeln(f"const sheetName = {js_literal(_get(cfg, 'sheetName', 'Sheet1'))};")
        writer.writeln(f"const range = {js_literal(_get(cfg, 'range', 'A:Z'))};")
        writer.block(_OPEN_SHEET)
        writer.writeln("const values = sheet.getRange(range).getValues();")
        if config_flag(cfg, "hasHeaders"):
            writer.block(textwrap.dedent("""\
                const headers = values.length > 0 ? values[0] : [];
                const records = values.slice(1).map(function (row) {
                  const record = {};
                  headers.forEach(function (header, column) {
                    record[header] = row[column];
                  });
                  return record;
                });"""))
            fields = [("headers", "headers"), ("rowsRead", "records.length"), ("data", "records")]
        else:
            fields = [("rowsRead", "values.length"), ("data", "values")]
        self.emit_result(
            writer,
            ("spreadsheetId", "spreadsheetId"),
            ("sheetName", "sheetName"),
            *fields,
        )


class DriveCreateTemplate(NodeTemplate):
    kind = NodeKind.DRIVE_CREATE
    result_type = "drive_create"
    status = "created"

    def emit_body(self, node, writer, options):
        cfg = node.config
        writer.comment("Create a file in Google Drive")
        writer.writeln(f"const fileName = {runtime_string(_get(cfg, 'fileName', 'automation-file.txt'))};")
        writer.writeln(f"const content = {runtime_string(_get(cfg, 'content', 'Generated by automation'))};")
        writer.writeln(f"const mimeType = {js_literal(_get(cfg, 'mimeType', 'text/plain'))};")
        writer.writeln(f"const folderId = {js_literal(_get(cfg, 'folderId', ''))};")
        writer.block(textwrap.dedent("""\
            const file = folderId
              ? DriveApp.getFolderById(folderId).createFile(fileName, content, mimeType)
              : DriveApp.createFile(fileName, content, mimeType);"""))
        self.emit_result(
            writer,
            ("fileId", "file.getId()"),
            ("fileName", "fileName"),
            ("fileUrl", "file.getUrl()"),
            ("size", "file.getSize()"),
        )


# ── External APIs ─────────────────────────────────────────────────────────────

class _ConnectorTemplate(NodeTemplate):
    """Templates that call a third-party API and take auth/error/rateLimit slots."""

    slug = "http"
    connector_name = "HTTP"
    default_auth: Optional[str] = None

    def injection_params(self, node, options):
        cfg = node.config
        slug = str(_get(cfg, "connector", self.slug))
        limits = cfg.get("rateLimit") if isinstance(cfg.get("rateLimit"), Mapping) else {}
        return InjectionParams(
            slug=slug,
            connector_name=str(_get(cfg, "connectorName", self.connector_name if slug == self.slug else slug)),
            auth_type=_get(cfg, "authType", self.default_auth),
            api_key_header=str(_get(cfg, "apiKeyHeader", "X-API-Key")),
            token_property=_get(cfg, "tokenProperty", None),
            api_key_property=_get(cfg, "apiKeyProperty", None),
            username_property=_get(cfg, "usernameProperty", None),
            password_property=_get(cfg, "passwordProperty", None),
            access_token_property=_get(cfg, "accessTokenProperty", None),
            rate_limiting=bool(options.include_rate_limiting),
            requests_per_minute=_int(node, "requestsPerMinute", _int(node, "requestsPerMinute", 60), limits),
            window_ms=_int(node, "windowMs", 60000, limits),
        )

    def secret_properties(self, node, options):
        return secret_properties(self.injection_params(node, options))

    def emit_call(self, writer: CodeWriter, url_expr: str) -> None:
        writer.slot(SlotKind.RATE_LIMIT)
        writer.slot(SlotKind.AUTH)
        writer.writeln(f"const response = UrlFetchApp.fetch({url_expr}, options);")
        writer.slot(SlotKind.ERROR)
        writer.writeln("const responseData = safeJsonParse(response.getContentText(), response.getContentText());")


class HttpRequestTemplate(_ConnectorTemplate):
    kind = NodeKind.HTTP_REQUEST
    result_type = "http_request"
    status = "completed"

    def emit_body(self, node, writer, options):
        cfg = node.config
        method = str(_get(cfg, "method", "GET")).upper()
        headers = _get(cfg, "headers", {})
        writer.comment("HTTP request")
        writer.writeln(f"const url = {runtime_string(_get(cfg, 'url', 'https://api.example.com'))};")
        writer.writeln(f"const method = {js_literal(method)};")
        writer.writeln("const options = {")
        writer.push()
        writer.writeln("method: method,")
        writer.writeln(f"headers: resolveObject({js_literal(headers)}, context),")
        writer.writeln("muteHttpExceptions: true")
        writer.pop()
        writer.writeln("};")
        if method != "GET":
            payload = _get(cfg, "payload", _get(cfg, "body", {}))
            writer.writeln("options.contentType = 'application/json';")
            writer.writeln(f"options.payload = JSON.stringify(resolveObject({js_literal(payload)}, context));")
        self.emit_call(writer, "url")
        self.emit_result(
            writer,
            ("url", "url"),
            ("method", "method"),
            ("responseCode", "response.getResponseCode()"),
            ("responseData", "responseData"),
        )


class SlackPostMessageTemplate(_ConnectorTemplate):
    kind = NodeKind.SLACK_POST
    result_type = "slack_post_message"
    status = "sent"
    slug = "slack"
    connector_name = "Slack"
    default_auth = "bearer"

    def emit_body(self, node, writer, options):
        cfg = node.config
        writer.comment("Post a message to Slack")
        writer.writeln(f"const channel = {runtime_string(_get(cfg, 'channel', '#general'))};")
        writer.writeln(f"const text = {runtime_string(_get(cfg, 'text', _get(cfg, 'message', '')))};")
        writer.writeln("const message = { channel: channel, text: text };")
        for key in ("username", "iconEmoji", "threadTs"):
            if _get(cfg, key, None) is not None:
                snake = re.sub(r"([A-Z])", lambda m: "_" + m.group(1).lower(), key)
                writer.writeln(f"message.{snake} = {runtime_string(cfg[key])};")
        writer.writeln("const options = {")
        writer.push()
        writer.writeln("method: 'post',")
        writer.writeln("contentType: 'application/json',")
        writer.writeln("headers: {},")
        writer.writeln("payload: JSON.stringify(message),")
        writer.writeln("muteHttpExceptions: true")
        writer.pop()
        writer.writeln("};")
        self.emit_call(writer, js_literal("https://slack.com/api/chat.postMessage"))
        writer.writeln("if (responseData && responseData.ok === false) {")
        writer.writeln("  throw new Error('Slack API error: ' + responseData.error);")
        writer.writeln("}")
        self.emit_result(
            writer,
            ("channel", "channel"),
            ("ts", "responseData ? responseData.ts : null"),
            ("sentAt", "new Date()"),
        )


# ── Logic / transform / utility ───────────────────────────────────────────────

_OPERATORS: Dict[str, str] = {
    "==":         "leftValue == rightValue",
    "!=":         "leftValue != rightValue",
    ">":          "Number(leftValue) > Number(rightValue)",
    "<":          "Number(leftValue) < Number(rightValue)",
    ">=":         "Number(leftValue) >= Number(rightValue)",
    "<=":         "Number(leftValue) <= Number(rightValue)",
    "contains":   "String(leftValue).includes(String(rightValue))",
    "startsWith": "String(leftValue).startsWith(String(rightValue))",
    "endsWith":   "String(leftValue).endsWith(String(rightValue))",
}


class ConditionTemplate(NodeTemplate):
    kind = NodeKind.CONDITION
    result_type = "condition"
    status = "evaluated"

    def emit_body(self, node, writer, options):
        cfg = node.config
        operator = str(_get(cfg, "operator", "=="))
        expression = _OPERATORS.get(operator)
        if expression is None:
            logger.warning(f"Node '{node.node_id}': unknown operator '{operator}', using truthiness")
            expression = "Boolean(leftValue)"
        writer.comment("Conditional check")
        writer.writeln(f"const leftValue = getContextValue(context, {js_literal(context_path(_get(cfg, 'leftValue', '')))});")
        writer.writeln(f"const operator = {js_literal(operator)};")
        writer.writeln(f"const rightValue = {runtime_string(_get(cfg, 'rightValue', ''))};")
        writer.writeln(f"const result = {expression};")
        self.emit_result(
            writer,
            ("leftValue", "leftValue"),
            ("operator", "operator"),
            ("rightValue", "rightValue"),
            ("result", "result"),
        )


class DataMapperTemplate(NodeTemplate):
    kind = NodeKind.DATA_MAPPER
    result_type = "data_mapper"
    status = "transformed"

    def emit_body(self, node, writer, options):
        cfg = node.config
        mapping = _get(cfg, "mapping", {})
        if not isinstance(mapping, Mapping):
            raise CompilationError(f"Node '{node.node_id}': 'mapping' must be an object")
        writer.comment("Map fields into a new object")
        source = context_path(_get(cfg, "sourceField", ""))
        source_expr = f"getContextValue(context, {js_literal(source)})" if source else "null"
        writer.writeln(f"const sourceData = {source_expr};")
        writer.writeln("const transformedData = {};")
        for target, value in mapping.items():
            writer.writeln(f"transformedData[{js_literal(str(target))}] = {runtime_value(value)};")
        self.emit_result(
            writer,
            ("sourceData", "sourceData"),
            ("transformedData", "transformedData"),
        )


class DelayTemplate(NodeTemplate):
    kind = NodeKind.DELAY
    result_type = "delay"
    status = "completed"

    # Utilities.sleep() rejects anything above five minutes.
    MAX_DELAY_MS = 300000

    def emit_body(self, node, writer, options):
        total = _int(node, "delayMs", 1000) + _int(node, "delaySeconds", 0) * 1000
        if total > self.MAX_DELAY_MS:
            logger.warning(f"Node '{node.node_id}': delay of {total}ms capped at {self.MAX_DELAY_MS}ms")
            total = self.MAX_DELAY_MS
        writer.comment("Pause execution")
        writer.writeln(f"const delayMs = {max(total, 0)};")
        writer.writeln("if (delayMs > 0) {")
        writer.writeln("  Utilities.sleep(delayMs);")
        writer.writeln("}")
        self.emit_result(writer, ("delayMs", "delayMs"))


class LoggerTemplate(NodeTemplate):
    kind = NodeKind.LOGGER
    result_type = "logger"
    status = "completed"

    def emit_body(self, node, writer, options):
        cfg = node.config
        writer.comment("Write a log entry")
        writer.writeln(f"const message = {runtime_string(_get(cfg, 'message', 'Log entry'))};")
        writer.writeln(f"const level = {js_literal(str(_get(cfg, 'level', 'info')).lower())};")
        writer.writeln("const timestamp = new Date();")
        writer.writeln("Logger.log('[' + level.toUpperCase() + '] ' + timestamp.toISOString() + ': ' + message);")
        if config_flag(cfg, "saveToSheet"):
            spreadsheet = js_literal(_get(cfg, "logSpreadsheetId", ""))
            sheet = js_literal(_get(cfg, "logSheetName", "Logs"))
            writer.writeln("try {")
            writer.writeln(f"  const logSheet = SpreadsheetApp.openById({spreadsheet}).getSheetByName({sheet});")
            writer.writeln("  logSheet.appendRow([timestamp, level, message, context.correlationId]);")
            writer.writeln("} catch (e) {")
            writer.writeln("  Logger.log('Failed to save log to sheet: ' + e.toString());")
            writer.writeln("}")
        self.emit_result(
            writer,
            ("message", "message"),
            ("level", "level"),
            ("timestamp", "timestamp"),
        )


class UnknownNodeTemplate(NodeTemplate):
    """Fallback for tags outside NodeKind: a stub that reports itself as skipped."""

    status = "skipped"

    def emit_body(self, node, writer, options):
        logger.warning(f"Unknown node type '{node.tag}' on node '{node.node_id}'; emitting a skip stub")
        writer.writeln(f"Logger.log('Unknown node type: ' + {js_literal(node.tag)});")
        writer.writeln("return {")
        writer.push()
        writer.writeln(f"type: {js_literal(node.tag)},")
        writer.writeln("message: 'Unknown node type',")
        writer.writeln(f"status: {js_literal(self.status)}")
        writer.pop()
        writer.writeln("};")


# ── Registry ──────────────────────────────────────────────────────────────────

TEMPLATE_REGISTRY: Dict[NodeKind, NodeTemplate] = {
    NodeKind.TIME_TRIGGER:    TimeTriggerTemplate(),
    NodeKind.WEBHOOK_TRIGGER: WebhookTriggerTemplate(),
    NodeKind.GMAIL_TRIGGER:   GmailTriggerTemplate(),
    NodeKind.SHEETS_TRIGGER:  SheetsTriggerTemplate(),
    NodeKind.GMAIL_SEND:      GmailSendTemplate(),
    NodeKind.GMAIL_READ:      GmailReadTemplate(),
    NodeKind.SHEETS_APPEND:   SheetsAppendTemplate(),
    NodeKind.SHEETS_READ:     SheetsReadTemplate(),
    NodeKind.DRIVE_CREATE:    DriveCreateTemplate(),
    NodeKind.HTTP_REQUEST:    HttpRequestTemplate(),
    NodeKind.SLACK_POST:      SlackPostMessageTemplate(),
    NodeKind.CONDITION:       ConditionTemplate(),
    NodeKind.DATA_MAPPER:     DataMapperTemplate(),
    NodeKind.DELAY:           DelayTemplate(),
    NodeKind.LOGGER:          LoggerTemplate(),
}

_UNKNOWN_TEMPLATE = UnknownNodeTemplate()


def get_template(tag: Union[str, NodeKind, None]) -> NodeTemplate:
    kind = NodeKind.parse(tag)
    if kind is None:
        return _UNKNOWN_TEMPLATE
    return TEMPLATE_REGISTRY.get(kind, _UNKNOWN_TEMPLATE)


def supported_node_types() -> List[str]:
    return sorted(kind.value for kind in TEMPLATE_REGISTRY)


def template_stats() -> Dict[str, int]:
    """Number of supported tags per category prefix (trigger, action, ...)."""
    return dict(Counter(kind.category for kind in TEMPLATE_REGISTRY))


# ── Per-node synthesis ────────────────────────────────────────────────────────

class NodeCodeGenerator:
    """
    Turns one scheduled node into its `execute_<safeId>(context)` function.

    The template writes the body, then every slot it left is filled by the
    CrossCuttingInjector with the template's injection params.  Slots whose
    snippet is empty (rate limiting switched off, no auth configured) render
    to nothing.
    """

    def __init__(self, injector: Optional[CrossCuttingInjector] = None):
        self.injector = injector or CrossCuttingInjector()

    def build(self, node: Union["ScheduledNode", Node], options: CompilerOptions) -> CodeWriter:
        from .scheduler import ScheduledNode

        if isinstance(node, Node):
            node = ScheduledNode.from_node(node)
        template = get_template(node.tag)

        writer = CodeWriter()
        writer.writeln("/**")
        writer.writeln(f" * Node: {comment_text(node.node_id)}")
        writer.writeln(f" * Type: {comment_text(node.tag)}")
        writer.writeln(f" * {comment_text(node.description or 'No description')}")
        writer.writeln(" */")
        writer.writeln(f"function {node.func_name}(context) {{")
        writer.push()
        template.emit_body(node, writer, options)
        writer.pop()
        writer.writeln("}")

        params = template.injection_params(node, options)
        filled = self.injector.inject_all(writer, params)
        if filled:
            logger.debug(f"Node '{node.node_id}': injected {', '.join(k.value for k in filled)}")
        return writer

    def synthesize(self, node: Union["ScheduledNode", Node], options: CompilerOptions) -> str:
        return self.build(node, options).render()

    def secret_properties(self, node: "ScheduledNode", options: CompilerOptions) -> List[str]:
        return get_template(node.tag).secret_properties(node, options)


__all__ = [
    "NodeCodeGenerator",
    "NodeKind",
    "NodeTemplate",
    "TEMPLATE_REGISTRY",
    "UnknownNodeTemplate",
    "config_flag",
    "context_path",
    "get_template",
    "runtime_string",
    "runtime_value",
    "supported_node_types",
    "template_stats",
]
