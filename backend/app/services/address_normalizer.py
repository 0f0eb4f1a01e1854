"""
Address normalization for Taiwan addresses.

Normalizes the various ways people type Taiwan addresses into one compact
form that geocoders handle well. For example all of

    台北市大安區忠孝東路四段 123 號
    台北市 大安區 忠孝東路4段123號
    No.123, Sec.4, Zhongxiao E. Rd., Da'an Dist., Taipei

normalize to 台北市大安區忠孝東路四段123號.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

CHINESE_DIGITS = ['零', '一', '二', '三', '四', '五', '六', '七', '八', '九', '十']
CHINESE_VALUES = {c: i for i, c in enumerate(CHINESE_DIGITS)}

CITIES = (
    '台北市', '新北市', '桃園市', '台中市', '台南市', '高雄市', '基隆市', '新竹市',
    '嘉義市', '新竹縣', '苗栗縣', '彰化縣', '南投縣', '雲林縣', '嘉義縣', '屏東縣',
    '宜蘭縣', '花蓮縣', '台東縣', '澎湖縣', '金門縣', '連江縣',
)

# Romanized names seen in English-formatted addresses
CITY_NAMES = {
    'taipei': '台北市',
    'new taipei': '新北市',
    'taoyuan': '桃園市',
    'taichung': '台中市',
    'tainan': '台南市',
    'kaohsiung': '高雄市',
    'keelung': '基隆市',
    'hsinchu': '新竹市',
    'chiayi': '嘉義市',
}

PHRASES = {
    # Taipei districts
    "da'an": '大安',
    'daan': '大安',
    'zhongshan': '中山',
    'zhongzheng': '中正',
    'xinyi': '信義',
    'songshan': '松山',
    'wanhua': '萬華',
    'datong': '大同',
    'neihu': '內湖',
    'nangang': '南港',
    'shilin': '士林',
    'beitou': '北投',
    'wenshan': '文山',
    # Major street names
    'zhongxiao': '忠孝',
    'heping': '和平',
    'minsheng': '民生',
    'minquan': '民權',
    'nanjing': '南京',
    "ren'ai": '仁愛',
    'renai': '仁愛',
    'dunhua': '敦化',
    'fuxing': '復興',
    'roosevelt': '羅斯福',
    'songjiang': '松江',
    'bade': '八德',
    "chang'an": '長安',
    'civic': '市民',
    # Directions
    'east': '東',
    'e.': '東',
    'west': '西',
    'w.': '西',
    'south': '南',
    's.': '南',
    'north': '北',
    'n.': '北',
    # Component suffixes
    'road': '路',
    'rd.': '路',
    'rd': '路',
    'street': '街',
    'st.': '街',
    'st': '街',
    'boulevard': '大道',
    'blvd.': '大道',
    'blvd': '大道',
    'district': '區',
    'dist.': '區',
    'dist': '區',
    'city': '市',
    'county': '縣',
}


def _city_phrases():
    phrases = {}
    for name, city in CITY_NAMES.items():
        phrases[f'{name} city'] = city
        phrases[f'{name} county'] = city[:-1] + '縣'
        phrases[name] = city[:-1]
    return phrases


_PHRASE_PATTERNS = [
    (re.compile(r"(?<![A-Za-z0-9'])" + re.escape(english) + r"(?![A-Za-z'])", re.IGNORECASE), chinese)
    for english, chinese in sorted({**PHRASES, **_city_phrases()}.items(), key=lambda item: -len(item[0]))
]

# No. 123, Sec. 4, Lane 10, Alley 5, 5F
_NUMBERED_PATTERN = re.compile(
    r'(?<![A-Za-z0-9])(?:'
    r'No\.?\s*(?P<number>\d+)(?:-(?P<sub>\d+))?'
    r'|Sec(?:tion)?\.?\s*(?P<section>\d+)'
    r'|(?:Lane|Ln\.?)\s*(?P<lane>\d+)'
    r'|(?:Alley|Aly\.?)\s*(?P<alley>\d+)'
    r'|(?P<floor>\d+)(?:st|nd|rd|th)?\s*(?:Floor|Fl\.?|F)(?![A-Za-z])'
    r')',
    re.IGNORECASE,
)

_COUNTRY_PATTERN = re.compile(r'^(?:Taiwan(?:\s*\(R\.O\.C\.\))?|R\.O\.C\.?)$', re.IGNORECASE)

_FULL_WIDTH = str.maketrans('０１２３４５６７８９，－', '0123456789,-')

_CJK = r'㐀-鿿'
_PARSE_PATTERN = re.compile(
    r'^(?P<city>' + '|'.join(CITIES) + r')?'
    r'(?P<district>[^\s\d]{1,3}?[區鄉鎮市])?'
    r'(?P<village>[^\s\d]{1,3}?[村里])?'
    r'(?P<street>[^\s\d]+?(?:路|街|大道)(?P<section>[一二三四五六七八九十]+段)?)?'
    r'(?:(?P<lane>\d+)巷)?'
    r'(?:(?P<alley>\d+)弄)?'
    r'(?:(?P<number>\d+(?:之\d+)?)號)?'
    r'(?P<rest>.*)$'
)

# Position of each component in Chinese order; untranslated text goes last
CITY_RANK, DISTRICT_RANK, STREET_RANK = 0, 1, 2
SECTION_RANK, LANE_RANK, ALLEY_RANK, NUMBER_RANK, FLOOR_RANK = 3, 4, 5, 6, 7
UNKNOWN_RANK = 9


def arabic_to_chinese(num: int) -> str:
    """Convert 0-99 to Chinese numerals; larger numbers stay Arabic."""
    if num <= 10:
        return CHINESE_DIGITS[num]
    if num < 20:
        return '十' + CHINESE_DIGITS[num % 10]
    if num < 100:
        tens, ones = divmod(num, 10)
        return CHINESE_DIGITS[tens] + '十' + (CHINESE_DIGITS[ones] if ones else '')
    return str(num)


def chinese_to_arabic(chinese: str) -> str:
    """Convert a Chinese numeral below 100 to Arabic; anything else is returned as-is."""
    if chinese in CHINESE_VALUES:
        return str(CHINESE_VALUES[chinese])

    match = re.match(r'^十([一二三四五六七八九])$', chinese)
    if match:
        return str(10 + CHINESE_VALUES[match.group(1)])

    match = re.match(r'^([一二三四五六七八九])十([一二三四五六七八九]?)$', chinese)
    if match:
        tens = CHINESE_VALUES[match.group(1)] * 10
        ones = CHINESE_VALUES[match.group(2)] if match.group(2) else 0
        return str(tens + ones)

    return chinese


def _compact(text: str) -> str:
    return re.sub(rf'\s*([{_CJK}])\s*', r'\1', text).strip()


def _numbered_component(match) -> Tuple[int, str]:
    if match.group('number'):
        suffix = f"之{match.group('sub')}" if match.group('sub') else ''
        return NUMBER_RANK, f"{match.group('number')}{suffix}號"
    if match.group('section'):
        return SECTION_RANK, f"{match.group('section')}段"
    if match.group('lane'):
        return LANE_RANK, f"{match.group('lane')}巷"
    if match.group('alley'):
        return ALLEY_RANK, f"{match.group('alley')}弄"
    return FLOOR_RANK, f"{match.group('floor')}樓"


def _translate_phrases(text: str) -> str:
    for pattern, chinese in _PHRASE_PATTERNS:
        text = pattern.sub(chinese, text)
    return text


def _translate_english_terms(text: str) -> str:
    """Replace English address terms in place, keeping the surrounding text."""
    text = _NUMBERED_PATTERN.sub(lambda m: f" {_numbered_component(m)[1]} ", text)
    return _translate_phrases(text)


def _name_component(text: str) -> List[Tuple[int, str]]:
    text = text.strip()
    if not text:
        return []

    # "Taipei City 106" -> city name without postal code
    city_part = re.sub(r'(City|County)\s*\d{3,6}$', r'\1', text, flags=re.IGNORECASE)
    if not city_part.lower().endswith('county'):
        city_key = re.sub(r'\s+City$', '', city_part, flags=re.IGNORECASE).lower()
        if city_key in CITY_NAMES:
            return [(CITY_RANK, CITY_NAMES[city_key])]

    translated = _compact(_translate_phrases(text))
    if translated.endswith(('市', '縣')):
        rank = CITY_RANK
    elif translated.endswith(('區', '鄉', '鎮')):
        rank = DISTRICT_RANK
    elif translated.endswith(('路', '街', '大道')):
        rank = STREET_RANK
    else:
        rank = UNKNOWN_RANK
    return [(rank, translated)]


def _english_components(part: str) -> List[Tuple[int, str]]:
    """Split one comma-separated part of an English address into ranked components."""
    part = part.strip()
    if _COUNTRY_PATTERN.match(part):
        return []

    components = []
    position = 0
    for match in _NUMBERED_PATTERN.finditer(part):
        components.extend(_name_component(part[position:match.start()]))
        components.append(_numbered_component(match))
        position = match.end()
    components.extend(_name_component(part[position:]))
    return components


def _translate_english_address(address: str) -> str:
    """English addresses run smallest-to-largest; Chinese runs the other way."""
    components = []
    for part in reversed([p for p in address.split(',') if p.strip()]):
        components.extend(_english_components(part))
    components.sort(key=lambda component: component[0])
    return ' '.join(text for _, text in components)


def normalize_taiwan_address(address: str) -> str:
    """
    Normalize a Taiwan address to a consistent compact form.

    Steps:
    1. Fold full-width digits, 臺 to 台, and collapse whitespace
    2. Translate English terms wherever they appear; comma-separated
       English addresses are also reordered into Chinese component order
    3. Write section numbers up to ten in Chinese (4段 -> 四段); building
       numbers stay Arabic
    4. Drop the spaces around Chinese characters and trailing commas
    """
    normalized = address.translate(_FULL_WIDTH).replace('臺', '台').strip()
    normalized = re.sub(r'\s+', ' ', normalized)

    if re.search('[A-Za-z]', normalized):
        if ',' in normalized and not re.search(f'[{_CJK}]', normalized):
            normalized = _translate_english_address(normalized)
        else:
            normalized = _translate_english_terms(normalized)

    def _section(match):
        num = int(match.group(1))
        if num <= 10:
            return arabic_to_chinese(num) + '段'
        return match.group(0)

    normalized = re.sub(r'(\d+)\s*段', _section, normalized)

    normalized = _compact(normalized)
    normalized = re.sub(r'\s+', ' ', normalized)
    normalized = re.sub(r'[,，、\s]+$', '', normalized)

    return normalized.strip()


@dataclass
class ParsedAddress:
    """Components extracted from a normalized address."""
    normalized: str
    city: Optional[str] = None
    district: Optional[str] = None
    street: Optional[str] = None
    section: Optional[int] = None
    lane: Optional[str] = None
    alley: Optional[str] = None
    building_number: Optional[str] = None


def parse_taiwan_address(address: str) -> ParsedAddress:
    """Split an address into city, district, street and building number."""
    normalized = normalize_taiwan_address(address)
    parsed = ParsedAddress(normalized=normalized)

    match = _PARSE_PATTERN.match(normalized)
    if not match:
        return parsed

    parsed.city = match.group('city')
    parsed.district = match.group('district')
    parsed.street = match.group('street')
    parsed.lane = match.group('lane')
    parsed.alley = match.group('alley')
    parsed.building_number = match.group('number')

    section = match.group('section')
    if section:
        value = chinese_to_arabic(section[:-1])
        parsed.section = int(value) if value.isdigit() else None

    return parsed


def generate_geocoding_candidates(address: str) -> List[str]:
    """
    Geocoding queries for an address, most specific first.

    1. Full normalized address
    2. Normalized address with a ", Taiwan" suffix
    3. City + district + street + building number (floor and lane dropped)
    4. City + district + street
    5. District + street with a ", Taiwan" suffix
    """
    parsed = parse_taiwan_address(address)
    candidates = [parsed.normalized]

    if '台灣' not in parsed.normalized and 'taiwan' not in parsed.normalized.lower():
        candidates.append(f"{parsed.normalized}, Taiwan")

    if parsed.city and parsed.district and parsed.street and parsed.building_number:
        candidates.append(f"{parsed.city}{parsed.district}{parsed.street}{parsed.building_number}號")

    if parsed.city and parsed.district and parsed.street:
        candidates.append(f"{parsed.city}{parsed.district}{parsed.street}")

    if parsed.district and parsed.street:
        candidates.append(f"{parsed.district}{parsed.street}, Taiwan")

    unique = []
    for candidate in candidates:
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique
