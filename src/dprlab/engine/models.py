from __future__ import annotations
from typing import Dict, List, Literal, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, computed_field

ABILITY_KEYS = ("str", "dex", "con", "int", "wis", "cha")

class WeaponCategory(str, Enum):
    SIMPLE = "simple"
    MARTIAL = "martial"

class WeaponKind(str, Enum):
    MELEE = "melee"
    RANGED = "ranged"

CasterType = Literal["full", "half", "pact", "none"]
DamageType = Literal["bludgeoning", "piercing", "slashing", "fire", "cold", "radiant",
                     "necrotic", "force", "lightning", "thunder", "poison", "psychic", "acid"]

POLEARM_IDS = {"glaive", "halberd", "quarterstaff", "spear", "pike"}

class DamageDice(BaseModel):
    count: int = 1
    die: int = 6
    bonus: int = 0
    type: DamageType = "slashing"

    @property
    def expected(self) -> float:
        return self.count * (self.die + 1) / 2 + self.bonus

class WeaponRange(BaseModel):
    normal: int
    long: int

class Weapon(BaseModel):
    id: str
    name: str
    type: Literal["weapon"] = "weapon"
    category: WeaponCategory = WeaponCategory.SIMPLE
    kind: WeaponKind = WeaponKind.MELEE
    damage: List[DamageDice] = Field(default_factory=lambda: [DamageDice()])
    versatile_damage: Optional[DamageDice] = None
    properties: List[str] = Field(default_factory=list)
    range: Optional[WeaponRange] = None

    @computed_field
    @property
    def is_ranged(self) -> bool:
        return self.kind == WeaponKind.RANGED

    @property
    def primary_dice(self) -> DamageDice:
        return self.damage[0]

    def has(self, prop: str) -> bool:
        return prop in self.properties

# ---- class catalog ----

class ClassFeature(BaseModel):
    id: str
    name: str
    rules_key: Optional[str] = None

class SubclassDefinition(BaseModel):
    id: str
    name: str
    features: Dict[int, List[ClassFeature]] = Field(default_factory=dict)

class ClassDefinition(BaseModel):
    id: str
    name: str
    type: Literal["class"] = "class"
    hit_die: int = 8
    caster: CasterType = "none"
    primary_ability: str = "str"
    extra_attack_level: Optional[int] = None
    asi_levels: List[int] = Field(default_factory=lambda: [4, 8, 12, 16, 19])
    power_spikes: List[int] = Field(default_factory=list)
    features: Dict[int, List[ClassFeature]] = Field(default_factory=dict)
    subclasses: Dict[str, SubclassDefinition] = Field(default_factory=dict)

    def features_up_to(self, class_level: int, subclass_id: Optional[str] = None) -> List[ClassFeature]:
        out: List[ClassFeature] = []
        for lvl in sorted(self.features):
            if lvl <= class_level:
                out.extend(self.features[lvl])
        sub = self.subclasses.get(subclass_id) if subclass_id else None
        if sub:
            for lvl in sorted(sub.features):
                if lvl <= class_level:
                    out.extend(sub.features[lvl])
        return out

    def features_at(self, class_level: int, subclass_id: Optional[str] = None) -> List[ClassFeature]:
        out = list(self.features.get(class_level, []))
        sub = self.subclasses.get(subclass_id) if subclass_id else None
        if sub:
            out.extend(sub.features.get(class_level, []))
        return out

class FeatDefinition(BaseModel):
    id: str
    name: str
    type: Literal["feat"] = "feat"
    description: str = ""
    power_attack: bool = False

class BuffDefinition(BaseModel):
    id: str
    name: str
    type: Literal["buff"] = "buff"
    description: str = ""
    concentration: bool = False
    action_cost: Literal["action", "bonus", "reaction", "none"] = "action"
    allowed_round0: bool = False
    spell_level: int = 0

# ---- build description ----

class AbilityScores(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    str_: int = Field(10, validation_alias=AliasChoices("str_", "str", "STR"))
    dex: int = Field(10, validation_alias=AliasChoices("dex", "DEX"))
    con: int = Field(10, validation_alias=AliasChoices("con", "CON"))
    int_: int = Field(10, validation_alias=AliasChoices("int_", "int", "INT"))
    wis: int = Field(10, validation_alias=AliasChoices("wis", "WIS"))
    cha: int = Field(10, validation_alias=AliasChoices("cha", "CHA"))

    def get(self, name: str) -> int:
        key = name.lower()
        key = "str_" if key == "str" else ("int_" if key == "int" else key)
        return getattr(self, key)

    def mod(self, name: str) -> int:
        return (self.get(name) - 10) // 2

    def with_increases(self, increases: Dict[str, int]) -> "AbilityScores":
        data = {k: self.get(k) for k in ABILITY_KEYS}
        for k, v in increases.items():
            k = k.lower()
            if k in data:
                data[k] = min(20, data[k] + v)
        return AbilityScores(**data)

class WeaponTraining(BaseModel):
    attack_bonus: int = 0
    damage_bonus: int = 0

class LevelEntry(BaseModel):
    level: int = Field(ge=1, le=20)
    class_id: str
    subclass_id: Optional[str] = None
    fighting_style: Optional[str] = None
    asi_or_feat: Optional[Literal["asi", "feat"]] = None
    feat_id: Optional[str] = None
    ability_increases: Dict[str, int] = Field(default_factory=dict)
    features: List[str] = Field(default_factory=list)

class Build(BaseModel):
    id: str = "build"
    name: str = "Unnamed Build"
    race: str = "human"
    ability_scores: AbilityScores = Field(default_factory=AbilityScores)
    level_timeline: List[LevelEntry] = Field(default_factory=list)
    current_level: Optional[int] = None
    main_hand_weapon: Optional[str] = None
    ranged_weapon: Optional[str] = None
    weapon_enhancement_bonus: int = 0
    active_buffs: List[str] = Field(default_factory=list)
    round0_buffs: List[str] = Field(default_factory=list)
    weapon_training: Dict[str, WeaponTraining] = Field(default_factory=dict)

    @property
    def level(self) -> int:
        if self.current_level:
            return self.current_level
        return max((e.level for e in self.level_timeline), default=1)

    def entries_up_to(self, level: int) -> List[LevelEntry]:
        return [e for e in sorted(self.level_timeline, key=lambda e: e.level) if e.level <= level]

    def class_levels(self, level: Optional[int] = None) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for e in self.entries_up_to(level or self.level):
            out[e.class_id] = out.get(e.class_id, 0) + 1
        return out

    def subclass_for(self, class_id: str) -> Optional[str]:
        for e in self.level_timeline:
            if e.class_id == class_id and e.subclass_id:
                return e.subclass_id
        return None

    def abilities_at(self, level: Optional[int] = None) -> AbilityScores:
        scores = self.ability_scores
        for e in self.entries_up_to(level or self.level):
            if e.ability_increases:
                scores = scores.with_increases(e.ability_increases)
        return scores
