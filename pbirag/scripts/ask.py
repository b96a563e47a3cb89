"""
pbirag - Command-line Chat
===========================
Runs questions through the same ``RAGManager`` the HTTP API uses,
without starting a server.  Handy for checking retrieval quality
against the index.

Usage:
    pbirag-ask "What is DAX?"          # one-shot
    pbirag-ask                         # interactive; /clear resets, /quit exits
    pbirag-ask --session-id demo --show-query
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pbirag-ask", description="Ask the PowerBI RAG assistant from the terminal.")
    parser.add_argument("question", nargs="?", default=None, help="Question to ask.  Omit for an interactive session.")
    parser.add_argument("--session-id", default=None, help="Conversation id (default: settings.DEFAULT_SESSION_ID).")
    parser.add_argument("--show-query", action="store_true", default=False, help="Print the rewritten standalone query.")
    return parser.parse_args(argv)


async def _ask_once(rag: object, question: str, session_id: str | None, show_query: bool) -> bool:
    from pbirag.src.core.errors import QuestionValidationError

    try:
        result = await rag.ask(question, session_id=session_id)  # type: ignore[attr-defined]
    except QuestionValidationError as exc:
        print(f"⚠️  {exc}")
        return False

    if not result.success:
        print(f"❌ {result.error}")
        return False

    if show_query:
        print(f"🔎 {result.transformed_query}")
    print()
    print(result.response)
    print()
    return True


async def _repl(rag: object, session_id: str | None, show_query: bool) -> None:
    print("PowerBI RAG — type /clear to reset the conversation, /quit to exit.")
    while True:
        try:
            line = (await asyncio.to_thread(input, "\n🙋 ")).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return

        if not line:
            continue
        if line in {"/quit", "/exit"}:
            return
        if line == "/clear":
            rag.history.clear(rag.resolve_session_id(session_id))  # type: ignore[attr-defined]
            print("History cleared.")
            continue
        await _ask_once(rag, line, session_id, show_query)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    try:
        from pbirag.src.core.rag_engine import RAGManager

        rag = RAGManager.from_settings()
    except Exception as exc:
        print("\n[FATAL] Could not initialise the RAG pipeline — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    if args.question is not None:
        ok = asyncio.run(_ask_once(rag, args.question, args.session_id, args.show_query))
        sys.exit(0 if ok else 1)

    asyncio.run(_repl(rag, args.session_id, args.show_query))


if __name__ == "__main__":
    main()
