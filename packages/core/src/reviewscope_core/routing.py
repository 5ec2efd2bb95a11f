"""Model routing and LLM credential resolution.

Routing never raises. When no provider is usable it returns a route whose
model is ``"none"`` and the caller skips AI work.

Credential resolution is modelled as a typed result instead of exceptions:
the tenant's own key is tried first, and the server keys are an explicit
second attempt that the caller may forbid (plans that require a custom key).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, Iterable, Sequence, TypeVar, Union

from reviewscope_core.complexity import COMPLEX, TRIVIAL
from reviewscope_core.utils.secrets import mask_secret

if TYPE_CHECKING:
    from reviewscope_store.models import Installation

logger = logging.getLogger(__name__)

NO_MODEL = "none"
DEFAULT_PREFERENCE = ("anthropic", "openai")


@dataclass(frozen=True)
class ModelSpec:
    provider: str
    name: str
    cost_per_mtok: float  # input tokens, USD
    context_budget: int
    strong: bool


MODELS: tuple[ModelSpec, ...] = (
    ModelSpec("anthropic", "claude-3-5-haiku-latest", 0.80, 6_000, strong=False),
    ModelSpec("anthropic", "claude-sonnet-4-20250514", 3.00, 20_000, strong=True),
    ModelSpec("openai", "gpt-4o-mini", 0.15, 9_000, strong=False),
    ModelSpec("openai", "gpt-4o", 2.50, 20_000, strong=True),
)
_TRIVIAL_BUDGET_FACTOR = 2 / 3


@dataclass(frozen=True)
class ModelRoute:
    provider: str | None
    model: str
    context_budget: int
    reason: str

    @property
    def is_none(self) -> bool:
        return self.model == NO_MODEL


def _ordered(available: Iterable[str], preference: Sequence[str]) -> list[str]:
    avail = set(available)
    ordered = [p for p in preference if p in avail]
    ordered += sorted(avail - set(ordered))
    return ordered


def select_model(
    available: Iterable[str],
    tier: str,
    preference: Sequence[str] = DEFAULT_PREFERENCE,
    override: str | None = None,
) -> ModelRoute:
    """Map available providers and a complexity tier onto a concrete model.

    - no provider                → model "none"
    - override naming a known model of an available provider wins
    - trivial / simple           → cheapest known model across available providers
    - complex                    → strongest model of the first preferred provider
    """
    providers = _ordered(available, preference)
    known = [m for m in MODELS if m.provider in providers]
    if not known:
        return ModelRoute(provider=None, model=NO_MODEL, context_budget=0, reason="No API keys configured")

    if override:
        for m in known:
            if m.name == override:
                return ModelRoute(m.provider, m.name, m.context_budget, f"Explicit model override: {m.name}")
        logger.warning("Ignoring model override %r: not a known model of an available provider.", override)

    if tier == COMPLEX:
        first = providers[0]
        spec = next((m for m in known if m.provider == first and m.strong), None)
        if spec is not None:
            return ModelRoute(spec.provider, spec.name, spec.context_budget, f"Complex changes: using {spec.name}")

    # Ties on cost go to the preferred provider.
    candidates = [m for m in known if not m.strong] or known
    spec = min(
        candidates,
        key=lambda m: (m.cost_per_mtok, providers.index(m.provider)),
    )
    budget = spec.context_budget
    if tier == TRIVIAL:
        budget = int(budget * _TRIVIAL_BUDGET_FACTOR)
    return ModelRoute(spec.provider, spec.name, budget, f"{tier.capitalize()} changes: {spec.name} sufficient")


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class Credentials:
    source: str  # "custom" | "server"
    keys: dict[str, str] = field(default_factory=dict)

    @property
    def providers(self) -> list[str]:
        return list(self.keys)


def _custom_credentials(installation: Installation | None) -> Result[Credentials]:
    if installation is None or not installation.has_custom_key:
        return Err("No custom API key configured")
    if installation.provider not in {m.provider for m in MODELS}:
        return Err(f"Unsupported custom key provider: {installation.provider!r}")
    logger.info(
        "Using custom %s key for installation %s (%s)",
        installation.provider,
        installation.installation_id,
        mask_secret(installation.api_key),
    )
    return Ok(Credentials(source="custom", keys={installation.provider: installation.api_key}))


def _server_credentials(server_keys: dict[str, str | None], preference: Sequence[str]) -> Result[Credentials]:
    keys = {p: server_keys[p] for p in _ordered([p for p, k in server_keys.items() if k], preference)}
    if not keys:
        return Err("No LLM API key configured (ANTHROPIC_API_KEY or OPENAI_API_KEY)")
    for provider, key in keys.items():
        logger.info("Using server %s key (%s)", provider, mask_secret(key))
    return Ok(Credentials(source="server", keys=keys))


def resolve_credentials(
    installation: Installation | None,
    server_keys: dict[str, str | None],
    preference: Sequence[str] = DEFAULT_PREFERENCE,
    allow_server_keys: bool = True,
) -> Result[Credentials]:
    custom = _custom_credentials(installation)
    if isinstance(custom, Ok):
        return custom
    if not allow_server_keys:
        return Err(f"{custom.reason}; this plan requires a custom key")
    logger.debug("%s; trying server keys.", custom.reason)
    return _server_credentials(server_keys, preference)
