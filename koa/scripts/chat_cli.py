"""
Koa - Terminal Chat
====================
Minimal REPL over ``ChatSession``: type how you feel, get a reply and a
mini practice card.  ``/quit`` or Ctrl-D exits.

Usage:
    koa-chat
    koa-chat --url http://localhost:8000/api/chat
"""

from __future__ import annotations

import argparse
import asyncio

import httpx

from koa.config.settings import settings
from koa.src.client.chat_session import ChatSession, ChatTurn


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="koa-chat", description="Koa — chat with your micro-mindfulness buddy.")
    parser.add_argument("--url", default=settings.API_URL, help=f"Chat endpoint (default: {settings.API_URL}).")
    return parser.parse_args()


def render_turn(turn: ChatTurn) -> str:
    """Format an assistant turn (and its practice card) for the terminal."""
    lines = [f"Koa: {turn.content}"]
    practice = turn.mini_practice
    if practice is not None:
        lines.append("")
        lines.append(f"  ✨ {practice.title} ({practice.duration}, {practice.energy_level} energy, {practice.environment})")
        for i, step in enumerate(practice.steps, 1):
            lines.append(f"    {i}. {step}")
        if practice.note:
            lines.append(f"  💭 {practice.note}")
    return "\n".join(lines)


async def _repl(url: str) -> None:
    async with httpx.AsyncClient() as http:
        session = ChatSession(http, url)
        print(render_turn(session.history[0]))

        while True:
            try:
                text = await asyncio.to_thread(input, "\nYou: ")
            except EOFError:
                break
            if text.strip() == "/quit":
                break

            turn = await session.send(text)
            if turn is not None:
                print(render_turn(turn))


def main() -> None:
    args = _parse_args()
    try:
        asyncio.run(_repl(args.url))
    except KeyboardInterrupt:
        pass
    print("\nTake care 🐨")


if __name__ == "__main__":
    main()
