"""Minimal demonstration of a streaming chat turn."""

from chat_core.api.service import get_default_engine

if __name__ == "__main__":
    engine = get_default_engine()
    if engine.error:
        print(engine.error)
    question = "Explain what a debounce timer is in two sentences."
    print("User:", question)
    print("AI: ", end="", flush=True)
    shown = 0
    for event in engine.send_message_stream(question):
        if event.kind == "delta":
            print(event.message.text[shown:], end="", flush=True)
            shown = len(event.message.text)
        elif event.kind in ("empty", "error"):
            print("\n" + (event.error or ""))
    print()
    print("Title:", engine.current_title())
