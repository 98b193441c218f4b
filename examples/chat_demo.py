"""Minimal demonstration of one chat turn, optionally with an image attachment."""

import asyncio
import sys

from octabot import ChatSession


def _render(state, event):
    print(f"[{state.phase}] {type(event).__name__}")


async def main(question: str, image_path: str = None) -> None:
    session = ChatSession()
    session.subscribe(_render)
    if image_path:
        await session.drop_file(image_path)
        attachment = await session.wait_for_analysis()
        if attachment is not None:
            print("Caption:", attachment.caption)
            print("Text:", attachment.extracted_text)
    outcome = await session.send(question)
    for message in outcome.appended:
        print(f"{message.role}: {message.content}")
        if message.image_url:
            print(f"  image: {message.image_url}")
    await session.aclose()


if __name__ == "__main__":
    args = sys.argv[1:] or ["draw a cat"]
    asyncio.run(main(*args[:2]))
