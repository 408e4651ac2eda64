from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

import pycountry

_SEGMENT_SEPARATOR_PATTERN = re.compile(r"[/,|]")
_NON_LETTER_PATTERN = re.compile(r"[^a-z ]")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_TWO_LETTER_PATTERN = re.compile(r"[a-z]{2}")
_THREE_LETTER_PATTERN = re.compile(r"[a-z]{3}")

# Codes outside ISO 3166-1 that flag services still serve.
EXTRA_ALPHA2_CODES: frozenset[str] = frozenset({"xk"})

COUNTRY_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "usa": "us",
        "us of a": "us",
        "america": "us",
        "united states of america": "us",
        "uk": "gb",
        "britain": "gb",
        "great britain": "gb",
        "england": "gb",
        "scotland": "gb",
        "wales": "gb",
        "northern ireland": "gb",
        "uae": "ae",
        "emirates": "ae",
        "russia": "ru",
        "iran": "ir",
        "syria": "sy",
        "north korea": "kp",
        "dprk": "kp",
        "south korea": "kr",
        "korea": "kr",
        "vietnam": "vn",
        "laos": "la",
        "taiwan": "tw",
        "moldova": "md",
        "bolivia": "bo",
        "venezuela": "ve",
        "tanzania": "tz",
        "palestine": "ps",
        "turkey": "tr",
        "turkiye": "tr",
        "czech republic": "cz",
        "holland": "nl",
        "the netherlands": "nl",
        "ivory coast": "ci",
        "cape verde": "cv",
        "macedonia": "mk",
        "brunei": "bn",
        "burma": "mm",
        "swaziland": "sz",
        "vatican": "va",
        "vatican city": "va",
        "micronesia": "fm",
        "congo": "cg",
        "drc": "cd",
        "dr congo": "cd",
        "kosovo": "xk",
        "hong kong": "hk",
        "macau": "mo",
        "prc": "cn",
        "ksa": "sa",
    }
)

DEMONYMS: Mapping[str, str] = MappingProxyType(
    {
        "afghan": "af",
        "albanian": "al",
        "algerian": "dz",
        "american": "us",
        "andorran": "ad",
        "angolan": "ao",
        "argentine": "ar",
        "argentinian": "ar",
        "armenian": "am",
        "australian": "au",
        "austrian": "at",
        "azerbaijani": "az",
        "azeri": "az",
        "bahraini": "bh",
        "bangladeshi": "bd",
        "belarusian": "by",
        "belgian": "be",
        "bolivian": "bo",
        "bosnian": "ba",
        "brazilian": "br",
        "british": "gb",
        "briton": "gb",
        "bulgarian": "bg",
        "cambodian": "kh",
        "cameroonian": "cm",
        "canadian": "ca",
        "chilean": "cl",
        "chinese": "cn",
        "colombian": "co",
        "croatian": "hr",
        "cuban": "cu",
        "cypriot": "cy",
        "czech": "cz",
        "danish": "dk",
        "dane": "dk",
        "dominican": "do",
        "dutch": "nl",
        "ecuadorian": "ec",
        "egyptian": "eg",
        "emirati": "ae",
        "english": "gb",
        "estonian": "ee",
        "ethiopian": "et",
        "filipino": "ph",
        "finnish": "fi",
        "finn": "fi",
        "french": "fr",
        "georgian": "ge",
        "german": "de",
        "ghanaian": "gh",
        "greek": "gr",
        "guatemalan": "gt",
        "honduran": "hn",
        "hungarian": "hu",
        "icelandic": "is",
        "indian": "in",
        "indonesian": "id",
        "iranian": "ir",
        "iraqi": "iq",
        "irish": "ie",
        "israeli": "il",
        "italian": "it",
        "ivorian": "ci",
        "jamaican": "jm",
        "japanese": "jp",
        "jordanian": "jo",
        "kazakh": "kz",
        "kazakhstani": "kz",
        "kenyan": "ke",
        "korean": "kr",
        "south korean": "kr",
        "north korean": "kp",
        "kosovar": "xk",
        "kuwaiti": "kw",
        "kyrgyz": "kg",
        "lao": "la",
        "laotian": "la",
        "latvian": "lv",
        "lebanese": "lb",
        "libyan": "ly",
        "lithuanian": "lt",
        "luxembourgish": "lu",
        "macedonian": "mk",
        "malaysian": "my",
        "maltese": "mt",
        "mexican": "mx",
        "moldovan": "md",
        "mongolian": "mn",
        "montenegrin": "me",
        "moroccan": "ma",
        "nepalese": "np",
        "nepali": "np",
        "new zealander": "nz",
        "nicaraguan": "ni",
        "nigerian": "ng",
        "norwegian": "no",
        "omani": "om",
        "pakistani": "pk",
        "palestinian": "ps",
        "panamanian": "pa",
        "paraguayan": "py",
        "peruvian": "pe",
        "polish": "pl",
        "pole": "pl",
        "portuguese": "pt",
        "qatari": "qa",
        "romanian": "ro",
        "russian": "ru",
        "rwandan": "rw",
        "salvadoran": "sv",
        "saudi": "sa",
        "saudi arabian": "sa",
        "scottish": "gb",
        "senegalese": "sn",
        "serbian": "rs",
        "singaporean": "sg",
        "slovak": "sk",
        "slovenian": "si",
        "somali": "so",
        "south african": "za",
        "spanish": "es",
        "sri lankan": "lk",
        "sudanese": "sd",
        "swedish": "se",
        "swede": "se",
        "swiss": "ch",
        "syrian": "sy",
        "taiwanese": "tw",
        "tajik": "tj",
        "tanzanian": "tz",
        "thai": "th",
        "tunisian": "tn",
        "turkish": "tr",
        "turk": "tr",
        "turkmen": "tm",
        "ugandan": "ug",
        "ukrainian": "ua",
        "uruguayan": "uy",
        "uzbek": "uz",
        "venezuelan": "ve",
        "vietnamese": "vn",
        "welsh": "gb",
        "yemeni": "ye",
        "zambian": "zm",
        "zimbabwean": "zw",
    }
)


def normalize_origin_key(value: str) -> str:
    """Lowercase ASCII letters and single spaces only (accents folded)."""
    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    lettered = _NON_LETTER_PATTERN.sub("", folded.lower())
    return _WHITESPACE_PATTERN.sub(" ", lettered).strip()


@dataclass(frozen=True)
class CountryTables:
    alpha2_codes: frozenset[str]
    alpha3_to_alpha2: Mapping[str, str]
    names_to_alpha2: Mapping[str, str]
    aliases: Mapping[str, str]
    demonyms: Mapping[str, str]


def build_country_tables() -> CountryTables:
    alpha2_codes: set[str] = set(EXTRA_ALPHA2_CODES)
    alpha3_to_alpha2: dict[str, str] = {}
    names_to_alpha2: dict[str, str] = {}
    for country in pycountry.countries:
        alpha2 = country.alpha_2.lower()
        alpha2_codes.add(alpha2)
        alpha3_to_alpha2[country.alpha_3.lower()] = alpha2
        for name in _country_names(country):
            key = normalize_origin_key(name)
            if key:
                names_to_alpha2.setdefault(key, alpha2)
    return CountryTables(
        alpha2_codes=frozenset(alpha2_codes),
        alpha3_to_alpha2=MappingProxyType(alpha3_to_alpha2),
        names_to_alpha2=MappingProxyType(names_to_alpha2),
        aliases=COUNTRY_ALIASES,
        demonyms=DEMONYMS,
    )


def _country_names(country: object) -> Iterable[str]:
    for attribute in ("name", "common_name", "official_name"):
        value = getattr(country, attribute, None)
        if isinstance(value, str) and value:
            yield value


class CountryResolver:
    """Free-text origin to lowercase ISO 3166-1 alpha-2 code.

    Only the first segment of a `/`, `,` or `|` separated list is considered.
    Lookups run in order, first hit wins:

    1. known two-letter code
    2. ISO alpha-3 code
    3. informal alias ("usa", "uk", "uae", ...)
    4. English country name
    5. demonym, retried without a trailing "s" ("Americans")

    Tables are built once and never mutated, so one instance can be shared.
    """

    def __init__(self, tables: CountryTables | None = None) -> None:
        self._tables = tables if tables is not None else build_country_tables()

    def resolve(self, origin: str | None) -> str | None:
        primary = _primary_segment(origin)
        if primary is None:
            return None
        tables = self._tables

        if _TWO_LETTER_PATTERN.fullmatch(primary) and primary in tables.alpha2_codes:
            return primary
        if _THREE_LETTER_PATTERN.fullmatch(primary):
            alpha2 = tables.alpha3_to_alpha2.get(primary)
            if alpha2 is not None:
                return alpha2

        aliased = tables.aliases.get(primary)
        if aliased is not None:
            return aliased

        named = tables.names_to_alpha2.get(primary)
        if named is not None:
            return named

        demonym = tables.demonyms.get(primary)
        if demonym is None and primary.endswith("s"):
            demonym = tables.demonyms.get(primary[:-1])
        return demonym


def _primary_segment(origin: str | None) -> str | None:
    if not origin:
        return None
    first = _SEGMENT_SEPARATOR_PATTERN.split(origin, maxsplit=1)[0]
    primary = normalize_origin_key(first)
    return primary or None
