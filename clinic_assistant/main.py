"""CLI entry point for the clinic assistant.

A terminal chat for trying the assistant as a given caller.  For
production, use the FastAPI server (clinic_assistant/server.py).

Usage:
    python -m clinic_assistant.main                          # guest
    python -m clinic_assistant.main --role dentist --user-id 7 --name "Dr. Silva"
    python -m clinic_assistant.main --debug                  # show API calls
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from clinic_assistant.agent import ClinicAssistant
from clinic_assistant.database import create_db_engine
from clinic_assistant.services.audit import AuditSink
from clinic_assistant.services.clinic_client import get_clinic_client
from clinic_assistant.services.history import ChatHistoryService
from clinic_assistant.tools.authorization import CallerContext, Role
from clinic_assistant.tools.executor import ToolExecutor

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("clinic_assistant").setLevel(logging.DEBUG if debug else logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clinic assistant CLI")
    parser.add_argument("--debug", action="store_true", help="Show all log messages including HTTP requests")
    parser.add_argument("--role", choices=["guest", "dentist", "admin"], default="guest")
    parser.add_argument("--user-id", type=int, default=None, help="Signed-in user id (ignored for guests)")
    parser.add_argument("--name", default=None, help="Display name of the signed-in user")
    return parser


def caller_from_args(args: argparse.Namespace) -> CallerContext:
    if args.role == "guest":
        return CallerContext.guest()
    if args.user_id is None:
        raise SystemExit("--user-id is required for --role dentist/admin")
    return CallerContext(user_id=args.user_id, role=Role(args.role), name=args.name)


def main():
    """Run the interactive CLI chat loop."""
    args = build_parser().parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    caller = caller_from_args(args)
    engine = create_db_engine()
    history = ChatHistoryService(engine)
    client = get_clinic_client()
    assistant = ClinicAssistant(history, ToolExecutor(client, audit=AuditSink(engine)))

    print("\n" + "=" * 60)
    print("  Clinic Assistant - CLI Chat")
    print(f"  Signed in as: {caller.describe()}")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    conversation_id = None
    try:
        while True:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit", "q"):
                print("\nGoodbye!")
                break
            if user_input.lower() == "new":
                conversation_id = None
                print("\n>> New conversation started.\n")
                continue

            try:
                result = assistant.handle_chat(user_input, caller, conversation_id)
            except KeyboardInterrupt:
                print("\n>> Cancelled.\n")
                continue

            if result.success:
                conversation_id = result.conversation_id
                print(f"\nAssistant: {result.response}\n")
            else:
                print(f"\nAssistant: {result.error}\n")
    finally:
        client.close()


if __name__ == "__main__":
    main()
