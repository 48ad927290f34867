"""Model alias and chat mode resolution.

Single source of truth for the product-level model names handed out by the
routing policy and for the chat mode names the transport layer sends.
"""

from __future__ import annotations

import difflib

from loguru import logger

# Short or product name → "provider/model" identifier.
# Keep sorted by short name for readability.
MODEL_ALIASES: dict[str, str] = {
    "claude": "claude/claude-3-5-sonnet-20241022",
    "claude-3-5-haiku": "claude/claude-3-5-haiku-20241022",
    "claude-3-5-sonnet": "claude/claude-3-5-sonnet-20241022",
    "gemini": "gemini/gemini-2.0-flash-exp",
    "gemini-2.0-flash": "gemini/gemini-2.0-flash",
    "gemini-2.0-flash-exp": "gemini/gemini-2.0-flash-exp",
    "gpt-4o": "openai/gpt-4o",
    "gpt-4o-mini": "openai/gpt-4o-mini",
    "luca-audit-expert": "openai/gpt-4o",
    "luca-financial-expert": "openai/gpt-4o",
    "luca-tax-expert": "openai/gpt-4o",
    "sonar": "perplexity/sonar",
    "sonar-pro": "perplexity/sonar-pro",
}

# Provider → model used when the routed model belongs to another provider.
PROVIDER_DEFAULT_MODELS: dict[str, str] = {
    "azure-openai": "gpt-4o",
    "claude": "claude-3-5-sonnet-20241022",
    "gemini": "gemini-2.0-flash-exp",
    "openai": "gpt-4o",
    "perplexity": "sonar-pro",
}

# Providers that serve the same model family.
_PROVIDER_FAMILIES: dict[str, str] = {
    "azure-openai": "openai",
}

CHAT_MODES = ("standard", "deep-research", "checklist", "workflow", "audit-plan", "calculation")

# Legacy / alternative name → canonical chat mode.
CHAT_MODE_ALIASES: dict[str, str] = {
    "audit": "audit-plan",
    "calculate": "calculation",
    "research": "deep-research",
    **{mode: mode for mode in CHAT_MODES},
}


def _alias_key(name: str) -> str:
    """'Claude 3.5 Sonnet', 'claude_3_5_sonnet' and 'claude-3-5-sonnet' share one key."""
    return "".join(ch for ch in name.lower() if ch.isalnum())


# Separator-free key → entry in MODEL_ALIASES.
_ALIAS_KEYS: dict[str, str] = {_alias_key(name): name for name in MODEL_ALIASES}


def resolve_model(raw: str) -> tuple[str | None, str | None]:
    """Map a routed or user-supplied model name onto a provider-qualified id.

    The failover chain uses the provider half of the result to decide which
    providers can serve the model as-is. Names already carrying a provider
    prefix pass through untouched. On failure the second element is a
    message naming close or known aliases instead of the alias key.
    """
    if not raw:
        return None, None
    if "/" in raw:
        return raw, raw

    lowered = raw.lower()
    if lowered in MODEL_ALIASES:
        return MODEL_ALIASES[lowered], lowered

    key = _alias_key(raw)
    if key in _ALIAS_KEYS:
        name = _ALIAS_KEYS[key]
        return MODEL_ALIASES[name], name

    # Near misses
    close = [_ALIAS_KEYS[k] for k in difflib.get_close_matches(key, _ALIAS_KEYS, n=2, cutoff=0.8)]
    if len(close) == 1:
        return MODEL_ALIASES[close[0]], close[0]
    if close:
        return None, f"Ambiguous model '{raw}'. Did you mean: {', '.join(close)}?"

    return None, f"Unknown model '{raw}'. Known names: {', '.join(sorted(MODEL_ALIASES))}"


def model_for_provider(model: str, provider: str) -> str:
    """Pick the model id to send to ``provider`` for a routed ``model``.

    A routed model is only forwarded to providers of its own family; other
    providers in the fallback chain get their configured default.
    """
    full_id, _ = resolve_model(model)
    if full_id is None:
        return PROVIDER_DEFAULT_MODELS.get(provider, model)

    owner, _, model_id = full_id.partition("/")
    family = _PROVIDER_FAMILIES.get(provider, provider)
    if owner == family:
        return model_id
    return PROVIDER_DEFAULT_MODELS.get(provider, model_id)


def normalize_chat_mode(chat_mode: str | None) -> str:
    """Map a raw chat mode (possibly legacy or empty) to its canonical name."""
    if not chat_mode:
        return "standard"

    canonical = CHAT_MODE_ALIASES.get(chat_mode.lower())
    if canonical:
        return canonical

    logger.warning(f"Unknown chat mode '{chat_mode}', defaulting to 'standard'")
    return "standard"


def is_professional_mode(chat_mode: str | None) -> bool:
    return normalize_chat_mode(chat_mode) != "standard"
