"""Clinic Assistant: a role-aware conversational assistant for a dental clinic.

Architecture Overview
=====================

Each chat turn is a small **LangGraph** state machine with two nodes:

1. **chatbot** — Claude, given a role-tailored system instruction, the
   trimmed conversation history and the tool catalog, either answers or
   asks for a function call.

2. **tools** — every requested call goes through the ``ToolExecutor``:
   schema validation, the single authorization gate, scope override,
   redacted logging, the clinic backend query and (for sensitive tools)
   an audit record.

Routing: chatbot → (tool calls?) → tools → chatbot (loop until no tool calls → END),
bounded by ``MAX_FUNCTION_CALLS_PER_TURN``.

Key Design Decisions
--------------------
- **Authorization is data, not prose**: the catalog declares each tool's
  auth class; the gate decides, and scoped tools have the caller's own id
  forced over whatever the model supplied.
- **Untrusted input is screened** before it reaches the model, and the
  model is told that guests claiming elevated roles are not trusted.
- **No retries**: inference and clinic queries fail the turn with a short,
  non-leaking message.
- **History in the database** (SQLModel): signed-in users get titled
  conversations; guests get none.

Package Structure
-----------------
- ``clinic_assistant/agent.py`` — turn graph and the ``ClinicAssistant`` orchestrator
- ``clinic_assistant/config.py`` — centralized configuration
- ``clinic_assistant/prompts.py`` — role-tailored system instruction
- ``clinic_assistant/sanitizer.py`` — prompt-injection screening
- ``clinic_assistant/models.py`` / ``database.py`` — tables and engine
- ``clinic_assistant/tools/`` — catalog, authorization gate, executor
- ``clinic_assistant/services/`` — chat history, audit, clinic API client, metrics
- ``clinic_assistant/api/`` — FastAPI routes, schemas and rate limiting
- ``clinic_assistant/server.py`` / ``main.py`` — HTTP server and CLI
"""
