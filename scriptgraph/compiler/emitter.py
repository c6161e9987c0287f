"""
scriptgraph Compiler — Code.js Emitter
=======================================
Converts an ExecutionPlan into the main Apps Script file.

Output structure
----------------
    /**
     * <workflow name>          header: name, description, id, version,
     * Generated: <timestamp>   the only line that depends on the clock
     */

    function executeWorkflow(triggerData) {
      const context = {triggerData, results, errors, startTime, correlationId};
      try {
        // one call per node, in execution order
        context.results["<id>"] = execute_<safeId>(context);
        ...
        return {success: true, results, errors, executionTime, correlationId};
      } catch (error) {
        <log, optional ERROR_NOTIFICATION_EMAIL mail>
        throw error;
      }
    }

    function execute_<safeId>(context) { ... }    one per node, graph order

Node call emission
------------------
With includeErrorHandling each call gets its own try/catch that records the
error in context.errors.  The run carries on unless the node's config says
`continueOnError: false`, in which case the catch re-throws and the
top-level handler takes over.  With includeLogging every call is narrated
through Logger.log().
"""

from __future__ import annotations

import datetime
from typing import List, Optional

from .ir import CompilerOptions
from .scheduler import ExecutionPlan, ScheduledNode
from .templates import NodeCodeGenerator
from .writer import CodeWriter, comment_text, js_literal

ENTRY_FUNCTION = "executeWorkflow"
ERROR_EMAIL_PROPERTY = "ERROR_NOTIFICATION_EMAIL"


# ── File header ───────────────────────────────────────────────────────────────

def _header(plan: ExecutionPlan, generated_at: datetime.datetime) -> List[str]:
    graph = plan.graph
    title = plan.options.project_name or graph.display_name
    return [
        "/**",
        f" * {comment_text(title)}",
        f" * {comment_text(graph.description or 'No description')}",
        " *",
        f" * Workflow: {comment_text(graph.display_name)}",
        f" * Workflow ID: {comment_text(graph.id or 'n/a')}",
        f" * Version: {comment_text(plan.options.version)}",
        f" * Generated: {generated_at.isoformat()}",
        " *",
        " * Produced by the scriptgraph compiler.",
        " * Do not edit by hand; recompile the workflow to regenerate.",
        " */",
        "",
    ]


# ── Node calls ────────────────────────────────────────────────────────────────

def _node_call(snode: ScheduledNode, options: CompilerOptions, w: CodeWriter) -> None:
    node_key = js_literal(snode.node_id)

    w.comment(f"Node: {comment_text(snode.node_id)} ({comment_text(snode.tag)})")
    if options.include_logging:
        w.writeln(f"Logger.log('Executing node: ' + {node_key});")

    if not options.include_error_handling:
        w.writeln(f"context.results[{node_key}] = {snode.func_name}(context);")
        if options.include_logging:
            w.writeln(f"Logger.log('Node completed: ' + {node_key});")
        return

    w.writeln("try {")
    w.push()
    w.writeln(f"context.results[{node_key}] = {snode.func_name}(context);")
    if options.include_logging:
        w.writeln(f"Logger.log('Node completed: ' + {node_key});")
    w.pop()
    w.writeln("} catch (nodeError) {")
    w.push()
    w.writeln(f"Logger.log('Node failed: ' + {node_key} + ' - ' + nodeError.toString());")
    w.writeln("context.errors.push({")
    w.writeln(f"  nodeId: {node_key},")
    w.writeln("  error: nodeError.toString(),")
    w.writeln("  timestamp: new Date()")
    w.writeln("});")
    if snode.continue_on_error:
        w.comment("continueOnError: carry on with the next node")
    else:
        w.comment("continueOnError is false: abort the run")
        w.writeln("throw nodeError;")
    w.pop()
    w.writeln("}")


def _failure_handler(plan: ExecutionPlan, w: CodeWriter) -> None:
    options = plan.options
    w.writeln("Logger.log('Workflow execution failed: ' + error.toString());")
    if options.include_error_handling:
        subject = js_literal(f"Workflow Execution Failed: {plan.graph.display_name}")
        w.comment("Operator notification")
        w.writeln("try {")
        w.push()
        w.writeln(
            "const errorNotificationEmail = PropertiesService.getScriptProperties()"
            f".getProperty({js_literal(ERROR_EMAIL_PROPERTY)});"
        )
        w.writeln("if (errorNotificationEmail) {")
        w.push()
        w.writeln("MailApp.sendEmail({")
        w.writeln("  to: errorNotificationEmail,")
        w.writeln(f"  subject: {subject},")
        w.writeln(
            "  body: 'Workflow execution failed at ' + new Date()"
            f" + {js_literal(chr(10) * 2 + 'Error: ')} + error.toString()"
            f" + {js_literal(chr(10) * 2 + 'Stack: ')} + error.stack"
        )
        w.writeln("});")
        w.pop()
        w.writeln("}")
        w.pop()
        w.writeln("} catch (notificationError) {")
        w.writeln("  Logger.log('Failed to send error notification: ' + notificationError.toString());")
        w.writeln("}")
    w.writeln("throw error;")


# ── Entry function ────────────────────────────────────────────────────────────

def _entry_function(plan: ExecutionPlan) -> List[str]:
    options = plan.options
    w = CodeWriter(indent=0)
    w.writeln("/**")
    w.writeln(" * Main workflow execution function")
    w.writeln(f" * Workflow: {comment_text(plan.graph.display_name)}")
    w.writeln(" */")
    w.writeln(f"function {ENTRY_FUNCTION}(triggerData) {{")
    w.push()
    w.writeln("triggerData = triggerData || {};")
    if options.include_logging:
        w.writeln("Logger.log('Starting workflow execution: ' + JSON.stringify(triggerData));")
    w.writeln("const context = {")
    w.writeln("  triggerData: triggerData,")
    w.writeln("  results: {},")
    w.writeln("  errors: [],")
    w.writeln("  startTime: new Date(),")
    w.writeln("  correlationId: Utilities.getUuid()")
    w.writeln("};")
    w.blank()
    w.writeln("try {")
    w.push()
    if options.include_logging:
        w.writeln("Logger.log('Execution context initialized: ' + context.correlationId);")

    if not plan.order:
        w.comment("No nodes to execute")
    for snode in plan.order:
        w.blank()
        _node_call(snode, options, w)

    w.blank()
    if options.include_logging:
        w.writeln("Logger.log('Workflow completed in ' + (new Date() - context.startTime) + 'ms');")
    w.writeln("return {")
    w.writeln("  success: true,")
    w.writeln("  results: context.results,")
    w.writeln("  errors: context.errors,")
    w.writeln("  executionTime: new Date() - context.startTime,")
    w.writeln("  correlationId: context.correlationId")
    w.writeln("};")
    w.pop()
    w.writeln("} catch (error) {")
    w.push()
    _failure_handler(plan, w)
    w.pop()
    w.writeln("}")
    w.pop()
    w.writeln("}")
    return w.lines()


# ── Public API ────────────────────────────────────────────────────────────────

def emit(
    plan: ExecutionPlan,
    generated_at: datetime.datetime,
    generator: Optional[NodeCodeGenerator] = None,
) -> str:
    """
    Emit the complete Code.js source for an ExecutionPlan.

    Args:
        plan:         Ordered, resolved nodes from Scheduler.build().
        generated_at: Timestamp written into the header comment.
        generator:    Per-node synthesiser; a default one is created if omitted.

    Returns:
        JavaScript source as a single string.
    """
    generator = generator or NodeCodeGenerator()

    lines: List[str] = []
    lines.extend(_header(plan, generated_at))
    lines.extend(_entry_function(plan))
    for snode in plan.nodes:
        lines.append("")
        lines.extend(generator.build(snode, plan.options).lines())

    return "\n".join(lines) + "\n"


__all__ = ["ENTRY_FUNCTION", "ERROR_EMAIL_PROPERTY", "emit"]
