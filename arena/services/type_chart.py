from collections.abc import Iterable

# Attack type -> defender type -> multiplier. Missing pairs are neutral (1.0).
TYPE_CHART: dict[str, dict[str, float]] = {
    "normal": {"rock": 0.5, "ghost": 0.0, "steel": 0.5},
    "fire": {
        "fire": 0.5,
        "water": 0.5,
        "grass": 2.0,
        "ice": 2.0,
        "bug": 2.0,
        "rock": 0.5,
        "dragon": 0.5,
        "steel": 2.0,
    },
    "water": {
        "fire": 2.0,
        "water": 0.5,
        "grass": 0.5,
        "ground": 2.0,
        "rock": 2.0,
        "dragon": 0.5,
    },
    "electric": {
        "water": 2.0,
        "electric": 0.5,
        "grass": 0.5,
        "ground": 0.0,
        "flying": 2.0,
        "dragon": 0.5,
    },
    "grass": {
        "fire": 0.5,
        "water": 2.0,
        "grass": 0.5,
        "poison": 0.5,
        "ground": 2.0,
        "flying": 0.5,
        "bug": 0.5,
        "rock": 2.0,
        "dragon": 0.5,
        "steel": 0.5,
    },
    "ice": {
        "fire": 0.5,
        "water": 0.5,
        "grass": 2.0,
        "ice": 0.5,
        "ground": 2.0,
        "flying": 2.0,
        "dragon": 2.0,
        "steel": 0.5,
    },
    "fighting": {
        "normal": 2.0,
        "ice": 2.0,
        "poison": 0.5,
        "flying": 0.5,
        "psychic": 0.5,
        "bug": 0.5,
        "rock": 2.0,
        "ghost": 0.0,
        "dark": 2.0,
        "steel": 2.0,
        "fairy": 0.5,
    },
    "poison": {
        "grass": 2.0,
        "poison": 0.5,
        "ground": 0.5,
        "rock": 0.5,
        "ghost": 0.5,
        "steel": 0.0,
        "fairy": 2.0,
    },
    "ground": {
        "fire": 2.0,
        "electric": 2.0,
        "grass": 0.5,
        "poison": 2.0,
        "flying": 0.0,
        "bug": 0.5,
        "rock": 2.0,
        "steel": 2.0,
    },
    "flying": {
        "electric": 0.5,
        "grass": 2.0,
        "fighting": 2.0,
        "bug": 2.0,
        "rock": 0.5,
        "steel": 0.5,
    },
    "psychic": {"fighting": 2.0, "poison": 2.0, "psychic": 0.5, "dark": 0.0, "steel": 0.5},
    "bug": {
        "fire": 0.5,
        "grass": 2.0,
        "fighting": 0.5,
        "poison": 0.5,
        "flying": 0.5,
        "psychic": 2.0,
        "ghost": 0.5,
        "dark": 2.0,
        "steel": 0.5,
        "fairy": 0.5,
    },
    "rock": {
        "fire": 2.0,
        "ice": 2.0,
        "fighting": 0.5,
        "ground": 0.5,
        "flying": 2.0,
        "bug": 2.0,
        "steel": 0.5,
    },
    "ghost": {"normal": 0.0, "psychic": 2.0, "ghost": 2.0, "dark": 0.5},
    "dragon": {"dragon": 2.0, "steel": 0.5, "fairy": 0.0},
    "dark": {"fighting": 0.5, "psychic": 2.0, "ghost": 2.0, "dark": 0.5, "fairy": 0.5},
    "steel": {
        "fire": 0.5,
        "water": 0.5,
        "electric": 0.5,
        "ice": 2.0,
        "rock": 2.0,
        "steel": 0.5,
        "fairy": 2.0,
    },
    "fairy": {
        "fire": 0.5,
        "fighting": 2.0,
        "poison": 0.5,
        "dragon": 2.0,
        "dark": 2.0,
        "steel": 0.5,
    },
}

LEGENDARY_NAMES = frozenset(
    {
        "articuno",
        "zapdos",
        "moltres",
        "mewtwo",
        "raikou",
        "entei",
        "suicune",
        "lugia",
        "ho-oh",
        "regirock",
        "regice",
        "registeel",
        "latias",
        "latios",
        "kyogre",
        "groudon",
        "rayquaza",
        "uxie",
        "mesprit",
        "azelf",
        "dialga",
        "palkia",
        "heatran",
        "regigigas",
        "giratina",
        "cresselia",
        "cobalion",
        "terrakion",
        "virizion",
        "tornadus",
        "thundurus",
        "reshiram",
        "zekrom",
        "landorus",
        "kyurem",
        "xerneas",
        "yveltal",
        "zygarde",
        "tapu-koko",
        "tapu-lele",
        "tapu-bulu",
        "tapu-fini",
        "cosmog",
        "cosmoem",
        "solgaleo",
        "lunala",
        "necrozma",
        "zamazenta",
        "zacian",
        "eternatus",
        "kubfu",
        "urshifu",
        "regieleki",
        "regidrago",
        "glastrier",
        "spectrier",
        "calyrex",
        "enamorus",
        "ting-lu",
        "chien-pao",
        "wo-chien",
        "chi-yu",
        "koraidon",
        "miraidon",
        "ogerpon",
    }
)

MYTHICAL_NAMES = frozenset(
    {
        "mew",
        "celebi",
        "jirachi",
        "deoxys",
        "phione",
        "manaphy",
        "darkrai",
        "shaymin",
        "arceus",
        "victini",
        "keldeo",
        "meloetta",
        "genesect",
        "diancie",
        "hoopa",
        "volcanion",
        "magearna",
        "marshadow",
        "zeraora",
        "meltan",
        "melmetal",
        "zarude",
    }
)

LEGENDARY_FACTOR = 2.0


def type_effectiveness(attack_type: str, defender_types: Iterable[str]) -> float:
    """Product of the chart multipliers against every defender type."""
    row = TYPE_CHART.get(attack_type.lower(), {})
    multiplier = 1.0
    for defender_type in defender_types:
        multiplier *= row.get(defender_type.lower(), 1.0)
    return multiplier


def is_legendary_or_mythical(name: str) -> bool:
    key = name.lower()
    return key in LEGENDARY_NAMES or key in MYTHICAL_NAMES


def damage_multiplier(
    attack_type: str,
    defender_types: Iterable[str],
    attacker_name: str,
    *,
    attacker_flagged: bool = False,
) -> float:
    """Full multiplier used by damage: type product times the legendary factor.

    The factor applies when the attacker is flagged in the catalog or known by name.
    """
    multiplier = type_effectiveness(attack_type, defender_types)
    if attacker_flagged or is_legendary_or_mythical(attacker_name):
        multiplier *= LEGENDARY_FACTOR
    return multiplier
