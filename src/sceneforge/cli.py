"""Command-line interface."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import Any

from sceneforge.config import Settings, load_settings
from sceneforge.factory import build_checkpoints, build_controller, build_store
from sceneforge.failures import FailureEvent, FailureTag, SceneForgeError
from sceneforge.models.mock import MockChatModel
from sceneforge.state import ChatRequest


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SceneForge CLI")
    parser.add_argument("--settings", dest="settings", help="JSON or YAML settings file")
    parser.add_argument("--data-dir", dest="data_dir")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Run one invocation for a task")
    chat.add_argument("task_id", type=str)
    chat.add_argument("message", type=str)
    chat.add_argument("--context", dest="context", help="Context JSON, or a path to a JSON file")
    chat.add_argument("--mode", choices=["ask", "agent"], default="agent", dest="mode")
    chat.add_argument("--provider", dest="provider")
    chat.add_argument("--api-key", dest="api_key")
    chat.add_argument("--model", dest="model")
    chat.add_argument("--max-turns", type=int, dest="max_turns")
    chat.add_argument("--no-fallback", action="store_true", dest="no_fallback")
    chat.add_argument("--require-plan", action="store_true", dest="require_plan")
    chat.add_argument("--auto-approve", action="store_true", dest="auto_approve")
    chat.add_argument(
        "--mock-response",
        action="append",
        dest="mock_responses",
        help="Scripted model response; repeat for several turns",
    )

    checkpoint = subparsers.add_parser("checkpoint", help="Manage task checkpoints")
    checkpoint.add_argument("action", choices=["create", "list", "restore"])
    checkpoint.add_argument("task_id", type=str)
    checkpoint.add_argument("--note", dest="note")
    checkpoint.add_argument("--id", dest="checkpoint_id")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    data: dict[str, Any] = settings.model_dump()
    if args.data_dir:
        data["data_dir"] = args.data_dir
    if getattr(args, "no_fallback", False):
        data["enable_fallbacks"] = False
    if getattr(args, "require_plan", False):
        data["require_plan"] = True
    return Settings(**data)


def _load_context(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    if value.lstrip().startswith("{"):
        return json.loads(value)
    return json.loads(Path(value).read_text(encoding="utf-8"))


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _print_error(event: FailureEvent) -> int:
    _print({"error": event.tag.value, "message": event.reason, "details": event.details or {}})
    return 1


def run_chat(settings: Settings, args: argparse.Namespace) -> int:
    store = build_store(settings)
    controller = build_controller(settings, store=store)
    try:
        payload: dict[str, Any] = {
            "taskId": args.task_id,
            "message": args.message,
            "context": _load_context(args.context),
            "mode": args.mode,
            "maxTurns": args.max_turns,
            "modelOverride": args.model,
        }
        if args.provider or args.api_key:
            payload["provider"] = {"name": args.provider, "apiKey": args.api_key}
        if args.auto_approve:
            payload["autoApproval"] = True
        request = ChatRequest.model_validate(payload)
    except (OSError, ValueError) as exc:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors.
        return _print_error(FailureEvent(FailureTag.INVALID_REQUEST, str(exc)))
    model = MockChatModel(args.mock_responses) if args.mock_responses else None
    try:
        result = controller.run(request, model=model)
    except SceneForgeError as exc:
        return _print_error(exc.event())
    output = result.to_dict()
    chunks, _ = controller.stream.since(args.task_id, 0)
    output["stream"] = [chunk.text for chunk in chunks]
    _print(output)
    return 0


def run_checkpoint(settings: Settings, args: argparse.Namespace) -> int:
    store = build_store(settings)
    manager = build_checkpoints(settings, store)
    if args.action == "create":
        manifest = manager.create(args.task_id, note=args.note)
        _print({"id": manifest.id, "createdAt": manifest.created_at.isoformat()})
    elif args.action == "list":
        _print([summary.model_dump(mode="json") for summary in manager.list(args.task_id)])
    else:
        if not args.checkpoint_id:
            print("--id is required for restore", file=sys.stderr)
            return 2
        try:
            restored = manager.restore(args.task_id, args.checkpoint_id)
        except SceneForgeError as exc:
            return _print_error(exc.event())
        _print({"taskId": restored.task_id, "restored": args.checkpoint_id})
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = apply_overrides(load_settings(args.settings), args)
    if args.command == "chat":
        return run_chat(settings, args)
    return run_checkpoint(settings, args)


if __name__ == "__main__":
    sys.exit(main())
