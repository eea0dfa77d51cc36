"""CLI entry point for local-providers.

Headless provider detection and one-shot chat for agents (via run_command)
and human terminal use. Same ProviderManager the host application uses.

Entry point:
    local-providers providers [--json]
    local-providers models [--json]
    local-providers chat "prompt" [--provider NAME] [--stream]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from local_providers.adapters.base import ProviderError
from local_providers.adapters.schema import (
    DEFAULT_TIMEOUT_SECONDS,
    ProviderDetectionResult,
    RequestOptions,
    Turn,
)
from local_providers.config import ProviderConfig, load_config_from_env
from local_providers.manager import ProviderManager

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_PROVIDER = 2

START_A_BACKEND_HINT = (
    "To use local models, install and start one of the following:\n"
    "- Ollama: https://ollama.ai\n"
    "- LM Studio: https://lmstudio.ai\n"
    "- HuggingFace TGI: https://github.com/huggingface/text-generation-inference\n"
)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="local-providers",
        description="Detect and talk to local LLM providers.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--settings", default=None,
        help="JSON settings file (top-level 'providers' block or the block itself)",
    )
    sub = parser.add_subparsers(dest="command")

    # providers
    providers_p = sub.add_parser("providers", help="List local providers and their status")
    providers_p.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # models
    models_p = sub.add_parser("models", help="List models from available providers")
    models_p.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # chat
    chat_p = sub.add_parser("chat", help="Send one prompt to the active provider")
    chat_p.add_argument("prompt", help="User message")
    chat_p.add_argument("--provider", default=None, help="Provider name (default: active provider)")
    chat_p.add_argument("--stream", action="store_true", help="Stream the response")
    chat_p.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    chat_p.add_argument("--max-tokens", type=int, default=None, help="Max tokens to generate")
    chat_p.add_argument("--system", default=None, help="System prompt")
    chat_p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_SECONDS, help="Request timeout (seconds)")

    return parser


def _load_config(settings_path: Optional[str]) -> ProviderConfig:
    """Settings file wins over environment when given."""
    if settings_path:
        settings = json.loads(Path(settings_path).read_text())
        return ProviderConfig.from_settings(settings)
    return load_config_from_env()


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


def _format_providers_report(
    results: list[ProviderDetectionResult], preferred: str, active: Optional[str]
) -> str:
    lines = ["Local Model Providers", "", f"Preferred provider: {preferred}", ""]

    for result in results:
        status = "available" if result.available else "unavailable"
        lines.append(f"{result.name} [{status}]")
        if result.endpoint:
            lines.append(f"   Endpoint: {result.endpoint}")
        if result.available and result.models:
            lines.append(f"   Models: {len(result.models)} available")
            for model in result.models[:3]:
                lines.append(f"   - {model.display_name}")
            if len(result.models) > 3:
                lines.append(f"   ... and {len(result.models) - 3} more")
        elif result.available:
            lines.append("   Status: Running (no models detected)")
        else:
            lines.append("   Status: Not available")
        lines.append("")

    available = [r for r in results if r.available]
    if not available:
        lines.append("No local providers detected")
        lines.append("")
        lines.append(START_A_BACKEND_HINT)
    else:
        lines.append(f"{len(available)} provider(s) available")
        if active:
            lines.append(f"Active provider: {active}")

    return "\n".join(lines)


async def _cmd_providers(manager: ProviderManager, json_output: bool = False) -> int:
    """List providers with availability. Returns exit code."""
    results = await manager.detect_providers()
    active = None
    if any(r.available for r in results):
        provider = await manager.get_active_provider()
        active = provider.name if provider else None

    if json_output:
        json.dump(
            {
                "preferred": manager.config.preferred,
                "active": active,
                "providers": [r.model_dump() for r in results],
            },
            sys.stdout,
            indent=2,
        )
        sys.stdout.write("\n")
    else:
        print(_format_providers_report(results, manager.config.preferred, active))

    return EXIT_OK


async def _cmd_models(manager: ProviderManager, json_output: bool = False) -> int:
    """List models of every available provider. Returns exit code."""
    results = await manager.detect_providers()
    available = [r for r in results if r.available]

    if json_output:
        json.dump(
            {r.name: [m.model_dump() for m in r.models] for r in available},
            sys.stdout,
            indent=2,
        )
        sys.stdout.write("\n")
        return EXIT_OK

    if not available:
        print("No local providers available\n", file=sys.stderr)
        print(START_A_BACKEND_HINT, file=sys.stderr)
        return EXIT_NO_PROVIDER

    for result in available:
        print(f"{result.name}")
        print(f"   Endpoint: {result.endpoint or 'N/A'}")
        if not result.models:
            print("   No models detected")
            continue
        print(f"   Models ({len(result.models)}):")
        for model in result.models:
            vision = " [vision]" if model.supports_vision else ""
            stream = " [stream]" if model.supports_streaming else ""
            context = f" ({model.context_window} tokens)" if model.context_window else ""
            print(f"   - {model.display_name}{vision}{stream}{context}")

    return EXIT_OK


async def _cmd_chat(
    manager: ProviderManager,
    prompt: str,
    provider_name: Optional[str] = None,
    stream: bool = False,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    system_prompt: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> int:
    """Send one user turn and print the reply. Returns exit code."""
    if provider_name:
        provider = manager.get_provider(provider_name)
        if provider is None:
            print(f"Unknown or disabled provider: {provider_name}", file=sys.stderr)
            return EXIT_ERROR
    else:
        provider = await manager.get_active_provider()
        if provider is None:
            print("No local providers available\n", file=sys.stderr)
            print(START_A_BACKEND_HINT, file=sys.stderr)
            return EXIT_NO_PROVIDER

    options = RequestOptions(
        temperature=temperature,
        max_tokens=max_tokens,
        stream=stream,
        system_prompt=system_prompt,
        timeout_seconds=timeout,
    )
    conversation = [Turn.user(prompt)]
    logger.debug(f"Sending chat turn to '{provider.name}' (stream={stream})")

    try:
        if stream and provider.supports_streaming:
            async for chunk in provider.send_stream_request(conversation, options):
                sys.stdout.write(chunk.text)
                sys.stdout.flush()
                for call in chunk.function_calls:
                    sys.stdout.write(f"\n[Function Call: {call.name}] {json.dumps(call.args)}\n")
            sys.stdout.write("\n")
        else:
            response = await provider.send_request(conversation, options)
            if response.text:
                print(response.text)
            for call in response.function_calls:
                print(f"[Function Call: {call.name}] {json.dumps(call.args)}")
    except ProviderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    return EXIT_OK


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    from dotenv import load_dotenv
    load_dotenv()

    manager = ProviderManager(_load_config(args.settings))

    # Dispatch
    if args.command == "providers":
        code = asyncio.run(_cmd_providers(manager, json_output=args.json_output))
    elif args.command == "models":
        code = asyncio.run(_cmd_models(manager, json_output=args.json_output))
    elif args.command == "chat":
        code = asyncio.run(_cmd_chat(
            manager,
            prompt=args.prompt,
            provider_name=args.provider,
            stream=args.stream,
            temperature=args.temperature,
            max_tokens=args.max_tokens,
            system_prompt=args.system,
            timeout=args.timeout,
        ))
    else:
        parser.print_help()
        code = EXIT_ERROR

    sys.exit(code)


if __name__ == "__main__":
    main()
