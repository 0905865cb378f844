"""Dial configuration: the ten adjustable generation parameters.

Concrete dials have fixed enumerated domains and start pre-confirmed with a
default. Conceptual dials are null (or empty, for themes) until the user sets
them. Every write goes through a tagged `DialUpdate` so the value domain is
tied to the dial id by the type, not by a runtime switch:

    update = parse_dial_update("tone", "grim")     → ToneUpdate
    dials = set_dial(dials, update)

All functions here are pure: they return a new DialSet and never mutate the
one passed in. Invalid input raises DialValidationError and leaves the caller's
DialSet untouched.

Persisted dial sets from older versions go through migrate_dials(), which maps
free-text conceptual values to the nearest option by keyword and replaces
out-of-domain numbers with defaults.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from .idset import OrderedIdSet

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

PartySize = Literal[2, 3, 4, 5]
PartyTier = Literal[1, 2, 3, 4]
SceneCount = Literal[3, 4, 5, 6]
SessionLength = Literal["2-3 hours", "3-4 hours", "4-5 hours"]
Tone = Literal["grim", "serious", "balanced", "lighthearted", "whimsical"]
NPCDensity = Literal["sparse", "moderate", "rich"]
Lethality = Literal["heroic", "standard", "dangerous", "brutal"]
EmotionalRegister = Literal["thrilling", "tense", "heartfelt", "bittersweet", "epic"]
Pillar = Literal["combat", "exploration", "social"]
Theme = Literal[
    "redemption",
    "sacrifice",
    "identity",
    "power-corruption",
    "nature-civilization",
    "trust-betrayal",
    "found-family",
    "legacy",
    "survival",
    "justice-mercy",
]
DialId = Literal[
    "party_size",
    "party_tier",
    "scene_count",
    "session_length",
    "tone",
    "pillar_balance",
    "npc_density",
    "lethality",
    "emotional_register",
    "themes",
]

MAX_THEMES = 3

PARTY_SIZES: tuple[int, ...] = (2, 3, 4, 5)
PARTY_TIERS: tuple[int, ...] = (1, 2, 3, 4)
SCENE_COUNTS: tuple[int, ...] = (3, 4, 5, 6)
SESSION_LENGTHS: tuple[str, ...] = ("2-3 hours", "3-4 hours", "4-5 hours")
TONES: tuple[str, ...] = ("grim", "serious", "balanced", "lighthearted", "whimsical")
NPC_DENSITIES: tuple[str, ...] = ("sparse", "moderate", "rich")
LETHALITIES: tuple[str, ...] = ("heroic", "standard", "dangerous", "brutal")
EMOTIONAL_REGISTERS: tuple[str, ...] = (
    "thrilling", "tense", "heartfelt", "bittersweet", "epic",
)
PILLARS: tuple[str, ...] = ("combat", "exploration", "social")
THEMES: tuple[str, ...] = (
    "redemption",
    "sacrifice",
    "identity",
    "power-corruption",
    "nature-civilization",
    "trust-betrayal",
    "found-family",
    "legacy",
    "survival",
    "justice-mercy",
)

CONCRETE_DIALS: tuple[str, ...] = ("party_size", "party_tier", "scene_count", "session_length")
CONCEPTUAL_DIALS: tuple[str, ...] = (
    "tone", "pillar_balance", "npc_density", "lethality", "emotional_register", "themes",
)
DIAL_IDS: tuple[str, ...] = CONCRETE_DIALS + CONCEPTUAL_DIALS

CONCRETE_DEFAULTS: dict[str, Any] = {
    "party_size": 4,
    "party_tier": 1,
    "scene_count": 4,
    "session_length": "3-4 hours",
}

# Pre-camelCase persisted keys → current field names.
_LEGACY_KEYS: dict[str, str] = {
    "partySize": "party_size",
    "partyTier": "party_tier",
    "sceneCount": "scene_count",
    "sessionLength": "session_length",
    "pillarBalance": "pillar_balance",
    "npcDensity": "npc_density",
    "emotionalRegister": "emotional_register",
    "confirmedDials": "confirmed_dials",
}


class DialValidationError(ValueError):
    """A dial id or value outside its domain."""

    def __init__(self, dial_id: str, value: Any, reason: str = "") -> None:
        self.dial_id = dial_id
        self.value = value
        msg = f"Invalid value for dial '{dial_id}': {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class PillarBalance(BaseModel):
    """Priority order of the three play pillars; each pillar appears once."""

    model_config = ConfigDict(frozen=True)

    primary: Pillar
    secondary: Pillar
    tertiary: Pillar

    @model_validator(mode="after")
    def _distinct(self) -> PillarBalance:
        if len({self.primary, self.secondary, self.tertiary}) != 3:
            raise ValueError("pillar balance must rank three distinct pillars")
        return self


DEFAULT_PILLAR_BALANCE = PillarBalance(
    primary="combat", secondary="exploration", tertiary="social",
)

Themes = Annotated[list[Theme], Field(max_length=MAX_THEMES)]


def _check_unique(themes: list[str]) -> list[str]:
    if len(set(themes)) != len(themes):
        raise ValueError("themes must not repeat")
    return themes


class DialSet(BaseModel):
    party_size: PartySize = 4
    party_tier: PartyTier = 1
    scene_count: SceneCount = 4
    session_length: SessionLength = "3-4 hours"

    tone: Tone | None = None
    pillar_balance: PillarBalance | None = None
    npc_density: NPCDensity | None = None
    lethality: Lethality | None = None
    emotional_register: EmotionalRegister | None = None
    themes: Themes = Field(default_factory=list)

    confirmed_dials: OrderedIdSet = Field(
        default_factory=lambda: OrderedIdSet(CONCRETE_DIALS)
    )

    _unique_themes = field_validator("themes")(_check_unique)

    @field_validator("confirmed_dials")
    @classmethod
    def _known_ids(cls, v: OrderedIdSet) -> OrderedIdSet:
        unknown = [d for d in v if d not in DIAL_IDS]
        if unknown:
            raise ValueError(f"unknown dial ids: {unknown}")
        return v


# ---------------------------------------------------------------------------
# Tagged updates (one variant per dial)
# ---------------------------------------------------------------------------

class _Update(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PartySizeUpdate(_Update):
    dial: Literal["party_size"] = "party_size"
    value: PartySize


class PartyTierUpdate(_Update):
    dial: Literal["party_tier"] = "party_tier"
    value: PartyTier


class SceneCountUpdate(_Update):
    dial: Literal["scene_count"] = "scene_count"
    value: SceneCount


class SessionLengthUpdate(_Update):
    dial: Literal["session_length"] = "session_length"
    value: SessionLength


class ToneUpdate(_Update):
    dial: Literal["tone"] = "tone"
    value: Tone | None


class PillarBalanceUpdate(_Update):
    dial: Literal["pillar_balance"] = "pillar_balance"
    value: PillarBalance | None


class NPCDensityUpdate(_Update):
    dial: Literal["npc_density"] = "npc_density"
    value: NPCDensity | None


class LethalityUpdate(_Update):
    dial: Literal["lethality"] = "lethality"
    value: Lethality | None


class EmotionalRegisterUpdate(_Update):
    dial: Literal["emotional_register"] = "emotional_register"
    value: EmotionalRegister | None


class ThemesUpdate(_Update):
    dial: Literal["themes"] = "themes"
    value: Themes

    _unique = field_validator("value")(_check_unique)


DialUpdate = Annotated[
    Union[
        PartySizeUpdate,
        PartyTierUpdate,
        SceneCountUpdate,
        SessionLengthUpdate,
        ToneUpdate,
        PillarBalanceUpdate,
        NPCDensityUpdate,
        LethalityUpdate,
        EmotionalRegisterUpdate,
        ThemesUpdate,
    ],
    Field(discriminator="dial"),
]

_update_adapter: TypeAdapter[DialUpdate] = TypeAdapter(DialUpdate)


def parse_dial_update(dial_id: str, value: Any) -> DialUpdate:
    """Build the tagged update for `dial_id`, validating `value` against its domain."""
    if dial_id not in DIAL_IDS:
        raise DialValidationError(dial_id, value, "unknown dial")
    try:
        return _update_adapter.validate_python({"dial": dial_id, "value": value})
    except ValidationError as e:
        raise DialValidationError(dial_id, value, e.errors()[0]["msg"]) from e


def _require_dial_id(dial_id: str) -> None:
    if dial_id not in DIAL_IDS:
        raise DialValidationError(dial_id, None, "unknown dial")


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def set_dial(dials: DialSet, update: DialUpdate) -> DialSet:
    """Apply a validated update. Confirmation state is unchanged."""
    return dials.model_copy(update={update.dial: update.value})


def set_dial_value(dials: DialSet, dial_id: str, value: Any) -> DialSet:
    return set_dial(dials, parse_dial_update(dial_id, value))


def confirm_dial(dials: DialSet, dial_id: str) -> DialSet:
    _require_dial_id(dial_id)
    confirmed = dials.confirmed_dials.add(dial_id)
    if confirmed is dials.confirmed_dials:
        return dials
    return dials.model_copy(update={"confirmed_dials": confirmed})


def unconfirm_dial(dials: DialSet, dial_id: str) -> DialSet:
    _require_dial_id(dial_id)
    confirmed = dials.confirmed_dials.discard(dial_id)
    if confirmed is dials.confirmed_dials:
        return dials
    return dials.model_copy(update={"confirmed_dials": confirmed})


def reset_dial(dials: DialSet, dial_id: str) -> DialSet:
    """Concrete dials return to their confirmed default; conceptual dials clear."""
    _require_dial_id(dial_id)
    if dial_id in CONCRETE_DIALS:
        return dials.model_copy(update={
            dial_id: CONCRETE_DEFAULTS[dial_id],
            "confirmed_dials": dials.confirmed_dials.add(dial_id),
        })
    empty: Any = [] if dial_id == "themes" else None
    return dials.model_copy(update={
        dial_id: empty,
        "confirmed_dials": dials.confirmed_dials.discard(dial_id),
    })


def reset_dials() -> DialSet:
    return DialSet()


def add_theme(dials: DialSet, theme: str) -> DialSet:
    if theme not in THEMES:
        raise DialValidationError("themes", theme, "unknown theme")
    if theme in dials.themes:
        raise DialValidationError("themes", theme, "already selected")
    if len(dials.themes) >= MAX_THEMES:
        raise DialValidationError("themes", theme, f"at most {MAX_THEMES} themes")
    return dials.model_copy(update={"themes": [*dials.themes, theme]})


def remove_theme(dials: DialSet, theme: str) -> DialSet:
    if theme not in dials.themes:
        return dials
    return dials.model_copy(update={"themes": [t for t in dials.themes if t != theme]})


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

def required_dials_complete(dials: DialSet) -> bool:
    return all(d in dials.confirmed_dials for d in CONCRETE_DIALS)


def unconfirmed_dials(dials: DialSet) -> list[str]:
    return [d for d in DIAL_IDS if d not in dials.confirmed_dials]


def completion_percentage(dials: DialSet) -> int:
    return round(len(dials.confirmed_dials) / len(DIAL_IDS) * 100)


def themes_at_max(dials: DialSet) -> bool:
    return len(dials.themes) >= MAX_THEMES


def dials_summary(dials: DialSet) -> dict[str, Any]:
    data = dials.model_dump(mode="json")
    return {
        "concrete": {d: data[d] for d in CONCRETE_DIALS},
        "conceptual": {d: data[d] for d in CONCEPTUAL_DIALS},
        "confirmed_count": len(dials.confirmed_dials),
    }


# ---------------------------------------------------------------------------
# Migration of persisted dial sets
# ---------------------------------------------------------------------------

# Checked in order; first keyword found in the lowercased text wins.
_KEYWORDS: dict[str, list[tuple[tuple[str, ...], str]]] = {
    "tone": [
        (("grim", "dark"), "grim"),
        (("serious", "dramatic"), "serious"),
        (("light", "fun"), "lighthearted"),
        (("whimsical", "playful", "comedic"), "whimsical"),
        (("balanced", "middle"), "balanced"),
    ],
    "npc_density": [
        (("sparse", "few", "low"), "sparse"),
        (("rich", "many", "high"), "rich"),
        (("moderate", "balanced", "middle"), "moderate"),
    ],
    "lethality": [
        (("heroic", "safe", "forgiving"), "heroic"),
        (("brutal", "deadly", "lethal"), "brutal"),
        (("dangerous", "tactical"), "dangerous"),
        (("standard", "balanced", "middle"), "standard"),
    ],
    "emotional_register": [
        (("thrill", "exciting", "action"), "thrilling"),
        (("tense", "suspense"), "tense"),
        (("heartfelt", "emotional", "touching"), "heartfelt"),
        (("bittersweet", "melancholy"), "bittersweet"),
        (("epic", "grand", "heroic"), "epic"),
    ],
}

_OPTIONS: dict[str, tuple[str, ...]] = {
    "tone": TONES,
    "npc_density": NPC_DENSITIES,
    "lethality": LETHALITIES,
    "emotional_register": EMOTIONAL_REGISTERS,
}


def map_legacy_value(dial_id: str, value: Any) -> str | None:
    """Map a persisted conceptual value to an option, or None when nothing matches."""
    if not isinstance(value, str) or not value:
        return None
    if value in _OPTIONS[dial_id]:
        return value
    text = value.lower()
    for keywords, option in _KEYWORDS[dial_id]:
        if any(k in text for k in keywords):
            return option
    return None


def _in_domain(value: Any, domain: tuple[Any, ...], default: Any) -> Any:
    # bool is an int subclass; True must not pass for 1
    if isinstance(value, bool) or value not in domain:
        return default
    return value


def migrate_dials(raw: dict[str, Any] | None) -> DialSet:
    """Rebuild a DialSet from persisted data of any version."""
    if not raw:
        return DialSet()
    data = {_LEGACY_KEYS.get(k, k): v for k, v in raw.items()}

    party_size = data.get("party_size")
    if party_size == 6:
        party_size = 5

    pillar: PillarBalance | None = None
    if data.get("pillar_balance") is not None:
        try:
            pillar = PillarBalance.model_validate(data["pillar_balance"])
        except ValidationError:
            logger.warning("Dropping invalid pillar balance: %r", data["pillar_balance"])
    elif "combatExplorationBalance" in data:
        pillar = DEFAULT_PILLAR_BALANCE

    themes: list[str] = []
    for theme in data.get("themes") or []:
        if theme in THEMES and theme not in themes:
            themes.append(theme)

    confirmed_raw = data.get("confirmed_dials")
    if confirmed_raw is None:
        confirmed = OrderedIdSet(CONCRETE_DIALS)
    else:
        confirmed = OrderedIdSet(
            d for d in (_LEGACY_KEYS.get(c, c) for c in confirmed_raw) if d in DIAL_IDS
        )

    conceptual = {d: map_legacy_value(d, data.get(d)) for d in _OPTIONS}
    for dial_id, mapped in conceptual.items():
        if data.get(dial_id) is not None and mapped != data.get(dial_id):
            logger.debug("Migrated %s %r → %r", dial_id, data.get(dial_id), mapped)

    return DialSet(
        party_size=_in_domain(party_size, PARTY_SIZES, CONCRETE_DEFAULTS["party_size"]),
        party_tier=_in_domain(data.get("party_tier"), PARTY_TIERS, CONCRETE_DEFAULTS["party_tier"]),
        scene_count=_in_domain(data.get("scene_count"), SCENE_COUNTS, CONCRETE_DEFAULTS["scene_count"]),
        session_length=_in_domain(
            data.get("session_length"), SESSION_LENGTHS, CONCRETE_DEFAULTS["session_length"],
        ),
        pillar_balance=pillar,
        themes=themes[:MAX_THEMES],
        confirmed_dials=confirmed,
        **conceptual,
    )
