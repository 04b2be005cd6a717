"""Shared LLM calling utilities.

Centralizes every Claude invocation behind :func:`call_claude` with two
backends:

1. Anthropic API (preferred, uses ``ANTHROPIC_API_KEY``)
2. Subprocess ``claude -p`` (used when no key is set, or when
   ``ECHOJOURNAL_USE_CLI=1``)
"""

from __future__ import annotations

import logging
import os
import re
import subprocess

import anthropic

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base error for LLM calls."""


_MODEL_MAP: dict[str, str] = {
    "sonnet": "claude-sonnet-4-5",
    "haiku": "claude-haiku-4-5",
    "opus": "claude-opus-4-1",
}

_DEFAULT_MODEL = "claude-sonnet-4-5"


def _resolve_model(model: str | None) -> str:
    """Resolve a short model name to an API model ID."""
    if model is None:
        return _DEFAULT_MODEL
    return _MODEL_MAP.get(model, model)


def _call_anthropic_api(
    system_prompt: str,
    user_prompt: str,
    *,
    api_key: str,
    model: str | None = None,
    timeout: int = 120,
    max_tokens: int = 1024,
    label: str = "generation",
) -> str:
    """Call Claude via the Anthropic API."""
    client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
    resolved_model = _resolve_model(model)

    logger.debug("Calling Anthropic API model=%s (%s)", resolved_model, label)

    kwargs: dict[str, object] = {
        "model": resolved_model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": user_prompt or system_prompt}],
    }
    if user_prompt.strip() and system_prompt.strip():
        kwargs["system"] = system_prompt

    response = client.messages.create(**kwargs)  # type: ignore[arg-type]

    text_parts: list[str] = []
    for block in response.content:
        if block.type == "text":
            text_parts.append(block.text)

    result = "".join(text_parts).strip()
    if not result:
        raise LLMError(f"Anthropic API returned empty response (label={label})")
    return result


def _call_subprocess(
    system_prompt: str,
    user_prompt: str,
    *,
    model: str | None = None,
    timeout: int = 120,
    label: str = "generation",
) -> str:
    """Call Claude via the ``claude -p`` CLI."""
    cmd = ["claude", "-p"]
    if model:
        cmd.extend(["--model", model])

    full_prompt = f"{system_prompt}\n\n{user_prompt}"

    # Filter CLAUDECODE so the CLI does not treat this as a nested session
    env = {k: v for k, v in os.environ.items() if k != "CLAUDECODE"}

    logger.debug("Calling Claude CLI subprocess (%s)", label)

    try:
        result = subprocess.run(
            cmd,
            input=full_prompt,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except FileNotFoundError as exc:
        raise LLMError(f"Claude CLI not found on PATH (label={label})") from exc
    except subprocess.TimeoutExpired as exc:
        raise LLMError(f"Claude CLI timed out after {timeout}s (label={label})") from exc
    except OSError as exc:
        raise LLMError(f"Failed to run Claude CLI (label={label}): {exc}") from exc

    if result.returncode != 0:
        raise LLMError(
            f"Claude CLI exited {result.returncode} (label={label}): {result.stderr[:500]}"
        )

    output = result.stdout.strip()
    if not output:
        raise LLMError(f"Claude CLI returned empty output (label={label})")
    return output


def call_claude(
    system_prompt: str,
    user_prompt: str,
    *,
    model: str | None = None,
    timeout: int = 120,
    max_tokens: int = 1024,
    label: str = "generation",
) -> str:
    """Call Claude and return the response text.

    Args:
        system_prompt: System prompt for the LLM.
        user_prompt: User/content prompt.
        model: Optional model override (e.g. "sonnet", "haiku").
        timeout: Timeout in seconds.
        max_tokens: Response token cap (API backend only).
        label: Label for logging.

    Returns:
        The LLM response text (stripped).

    Raises:
        LLMError: On any failure. No retries are attempted.
    """
    use_cli = os.environ.get("ECHOJOURNAL_USE_CLI", "").strip() == "1"
    api_key = os.environ.get("ANTHROPIC_API_KEY", "").strip()

    if api_key and not use_cli:
        try:
            return _call_anthropic_api(
                system_prompt,
                user_prompt,
                api_key=api_key,
                model=model,
                timeout=timeout,
                max_tokens=max_tokens,
                label=label,
            )
        except LLMError:
            raise
        except Exception as exc:
            raise LLMError(f"Anthropic API failed (label={label}): {exc}") from exc

    return _call_subprocess(
        system_prompt,
        user_prompt,
        model=model,
        timeout=timeout,
        label=label,
    )


_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences from LLM JSON output.

    Falls back to slicing out the first JSON object or array found in
    the text.
    """
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    candidates: list[tuple[int, str, str]] = []
    brace_start = text.find("{")
    bracket_start = text.find("[")
    if brace_start != -1:
        candidates.append((brace_start, "{", "}"))
    if bracket_start != -1:
        candidates.append((bracket_start, "[", "]"))

    # Earliest delimiter wins
    candidates.sort()

    for start, _open, close in candidates:
        end = text.rfind(close)
        if end > start:
            return text[start : end + 1]

    return text
