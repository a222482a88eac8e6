"""Console client for the company assistant, plus cache/API admin commands."""
import argparse
import json
import sys

from company_cache import build_cache
from config import get_config
from conversation import ConversationStore
from model_client import CompletionClient
from web_app import configure_logging

ERROR_REPLY = "Error processing your message. Please try again."


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with the company assistant from the terminal.")
    parser.add_argument("--test-connection", action="store_true",
                        help="Test the completion API and print the result as JSON.")
    parser.add_argument("--clear-cache", action="store_true",
                        help="Drop the cached company data and exit.")
    return parser.parse_args(argv)


def settings_from(config_class) -> dict:
    return {name: getattr(config_class, name) for name in dir(config_class) if name.isupper()}


def chat_loop(client: CompletionClient, read=input, write=print) -> int:
    store = ConversationStore({})
    write("💬 Company assistant (type 'exit' to quit, 'clear' to reset the conversation)\n")

    while True:
        try:
            user_input = read("You: ")
        except (EOFError, KeyboardInterrupt):
            break
        text = user_input.strip()
        if text.lower() == "exit":
            break
        if text.lower() == "clear":
            store.clear()
            write("History cleared.\n")
            continue
        if not text:
            continue

        reply = client.complete(text, store.all())
        if reply is None:
            write(f"Assistant: {ERROR_REPLY}\n")
            continue
        store.append_exchange(text, reply)
        write(f"Assistant: {reply}\n")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    config_class = get_config()
    settings = settings_from(config_class)
    configure_logging(settings.get("LOG_LEVEL", "WARNING"))

    cache = build_cache(settings)
    if args.clear_cache:
        cache.invalidate()
        print("Cache cleared")
        return 0

    problems = config_class.validate()
    if problems:
        for problem in problems:
            print(f"Configuration problem: {problem}", file=sys.stderr)
        return 1

    client = CompletionClient.from_config(settings, cache)
    if args.test_connection:
        print(json.dumps(client.test_connection(), indent=2))
        return 0
    return chat_loop(client)


if __name__ == "__main__":
    sys.exit(main())
