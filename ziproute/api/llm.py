"""LLM helper functions for ZipRoute.

Pulls delivery/visit addresses out of pasted e-mails, messages and notes
via OpenAI Chat Completions with a forced function call, resolving vague
references ("the office") against the user's bookmarks.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import openai
from openai import OpenAI

from ziproute.api.config import get_openai_api_key, get_openai_model_name
from ziproute.api.errors import AddressExtractionError
from ziproute.api.models import ExtractedAddress

logger = logging.getLogger(__name__)

_client: OpenAI | None = None

# ---------------------------------------------------------------------------
# Tool schema
# ---------------------------------------------------------------------------

EXTRACT_TOOL = {
    "type": "function",
    "function": {
        "name": "extract_addresses",
        "description": "Return the extracted addresses from the text.",
        "parameters": {
            "type": "object",
            "properties": {
                "addresses": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "address": {"type": "string", "description": "Full street address or location"},
                            "label": {"type": "string", "description": "Short label like bookmark nickname or street name"},
                            "is_start": {"type": "boolean", "description": "Whether this is indicated as the starting point"},
                        },
                        "required": ["address", "label", "is_start"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["addresses"],
            "additionalProperties": False,
        },
    },
}


def _get_client() -> OpenAI:
    """Return a cached OpenAI client instance."""
    global _client
    if _client is None:
        _client = OpenAI(api_key=get_openai_api_key())
    return _client


# ---------------------------------------------------------------------------
# Prompt construction helpers
# ---------------------------------------------------------------------------

def _build_system_prompt(bookmarks: Sequence[Dict[str, str]]) -> str:
    bookmark_list = "\n".join(
        f'"{b.get("nickname", "")}" -> {b.get("address", "")}' for b in bookmarks or []
    )

    bookmark_section = ""
    if bookmark_list:
        bookmark_section = (
            f"The user has these saved bookmarks:\n{bookmark_list}\n\n"
            "IMPORTANT: If any text in the message matches or closely resembles a bookmark "
            "nickname (e.g. \"office\", \"warehouse A\", \"mom's house\"), use the bookmark's "
            "full address instead.\n\n"
        )

    return (
        "You are an address extraction assistant for a route planning app.\n\n"
        "Given unstructured text (emails, messages, notes), extract all delivery/visit "
        "addresses or location references.\n\n"
        f"{bookmark_section}"
        "Rules:\n"
        "- Extract ONLY addresses/locations, not names or phone numbers\n"
        "- Return full addresses when available\n"
        "- If a location is vague (e.g. \"the office\"), try to match it to a bookmark\n"
        "- Return addresses in the order they appear in the text\n"
        "- If no addresses are found, return an empty array\n"
        "- The first address should be the starting point if one is clearly indicated "
        "(e.g. \"leaving from...\", \"starting at...\")"
    )


def _parse_tool_call(message: Any) -> List[ExtractedAddress]:
    """Extract the address list from the model's forced tool call."""
    tool_calls = getattr(message, "tool_calls", None) or []
    if not tool_calls:
        return []

    try:
        payload = json.loads(tool_calls[0].function.arguments)
    except (json.JSONDecodeError, AttributeError) as exc:
        logger.error("Failed to parse extraction tool call: %s", exc)
        raise AddressExtractionError("Failed to extract addresses. Please try again.") from exc

    addresses = []
    for item in payload.get("addresses") or []:
        address = (item.get("address") or "").strip()
        if not address:
            continue
        addresses.append(ExtractedAddress(
            address=address,
            label=(item.get("label") or "").strip(),
            is_start=bool(item.get("is_start")),
        ))
    return addresses


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_addresses(text: str,
                      bookmarks: Optional[Sequence[Dict[str, str]]] = None,
                      client: Optional[OpenAI] = None) -> List[ExtractedAddress]:
    """Return the addresses found in free text, in the order they appear."""
    if not text or not isinstance(text, str) or not text.strip():
        raise ValueError("text is required")

    messages = [
        {"role": "system", "content": _build_system_prompt(bookmarks or [])},
        {"role": "user", "content": text},
    ]

    model = get_openai_model_name()
    logger.debug("Calling OpenAI ChatCompletion: model=%s chars=%d bookmarks=%d",
                 model, len(text), len(bookmarks or []))

    try:
        response = (client or _get_client()).chat.completions.create(
            model=model,
            messages=messages,
            tools=[EXTRACT_TOOL],
            tool_choice={"type": "function", "function": {"name": "extract_addresses"}},
            temperature=0,
        )
    except openai.RateLimitError as exc:
        raise AddressExtractionError("Rate limit hit. Please wait a moment and try again.") from exc
    except openai.OpenAIError as exc:
        logger.error("Address extraction call failed: %s", exc)
        raise AddressExtractionError("Failed to extract addresses. Please try again.") from exc

    addresses = _parse_tool_call(response.choices[0].message)
    logger.info("Extracted %d addresses", len(addresses))
    return addresses


def seed_fields(addresses: Sequence[ExtractedAddress]) -> Tuple[str, List[str]]:
    """Split extracted addresses into the start field and destination fields.

    An address flagged as the start wins; otherwise the first one is used.
    """
    start = next((a for a in addresses if a.is_start), None)
    rest = [a for a in addresses if a is not start]

    if start is None and rest:
        start = rest.pop(0)

    return (start.address if start else ""), [a.address for a in rest]
