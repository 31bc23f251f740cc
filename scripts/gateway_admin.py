#!/usr/bin/env python3
"""Local administration for the completion gateway.

Usage:
  python scripts/gateway_admin.py gen-key
  python scripts/gateway_admin.py add-model --user-id u1 --provider openai --model-id gpt-4o-mini --name "GPT-4o mini" --api-key sk-...

Run after ``pip install -e .`` and ``alembic upgrade head``. The stored
credential is encrypted with ENCRYPTION_KEY; only its last 4 characters
are echoed.

Environment fallbacks:
  GATEWAY_USER_ID, GATEWAY_API_KEY
"""
from __future__ import annotations

import argparse
import base64
import json
import os
import sys


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Completion gateway administration")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("gen-key", help="Print a fresh base64 ENCRYPTION_KEY")

    add = sub.add_parser("add-model", help="Store a model configuration (and its API key)")
    add.add_argument("--user-id", default=os.getenv("GATEWAY_USER_ID"))
    add.add_argument("--provider", required=True)
    add.add_argument("--model-id", required=True, help="Provider-side model identifier")
    add.add_argument("--name", required=True)
    add.add_argument("--base-url")
    add.add_argument("--api-key", default=os.getenv("GATEWAY_API_KEY"))
    add.add_argument("--settings", help="JSON object of default generation settings")
    add.add_argument("--activate", action="store_true")
    return parser.parse_args()


def exit_with(message: str, code: int = 1) -> None:
    print(message, file=sys.stderr)
    raise SystemExit(code)


def gen_key() -> None:
    print(base64.b64encode(os.urandom(32)).decode("ascii"))


def add_model(args: argparse.Namespace) -> None:
    from gateway.auth import AesGcmCredentialStore, CredentialError, store_api_key
    from gateway.config import get_settings
    from gateway.db import get_session_factory
    from gateway.db.repositories import create_model, set_active_model
    from gateway.providers import ProviderKind

    if not args.user_id:
        exit_with("Missing user id (use --user-id or GATEWAY_USER_ID)")
    try:
        provider = ProviderKind(args.provider)
    except ValueError:
        exit_with(f"Unknown provider: {args.provider}")
    if not args.api_key and provider != ProviderKind.OLLAMA:
        exit_with("Missing API key (use --api-key or GATEWAY_API_KEY)")

    settings = None
    if args.settings:
        try:
            settings = json.loads(args.settings)
        except json.JSONDecodeError as exc:
            exit_with(f"--settings is not valid JSON: {exc}")
        if not isinstance(settings, dict):
            exit_with("--settings must be a JSON object")

    session = get_session_factory()()
    try:
        api_key_id = None
        if args.api_key:
            try:
                store = AesGcmCredentialStore.from_settings(get_settings())
            except CredentialError as exc:
                exit_with(str(exc))
            row = store_api_key(
                session, store, args.user_id, provider=provider.value, plaintext=args.api_key
            )
            api_key_id = row.id
            print(f"Stored API key ****{row.key_last4}")

        model = create_model(
            session,
            args.user_id,
            provider=provider.value,
            model_id=args.model_id,
            name=args.name,
            base_url=args.base_url,
            api_key_id=api_key_id,
            settings=settings,
        )
        if args.activate:
            set_active_model(session, args.user_id, model.id)
        print(f"Created model {model.id} ({model.name})")
    finally:
        session.close()


def main() -> None:
    args = parse_args()
    if args.command == "gen-key":
        gen_key()
    elif args.command == "add-model":
        add_model(args)


if __name__ == "__main__":
    main()
