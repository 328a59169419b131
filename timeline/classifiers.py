"""
Category / event-type classification and Japanese date parsing for official site scans.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Optional, Tuple

DEFAULT_CATEGORY = "party_hq"
DEFAULT_EVENT_TYPE = "other"
NATIONWIDE_CODE = "48"
NATIONWIDE_LABEL = "全国どこでも"

CATEGORY_MAP = {
    "党務": "party_hq",
    "政策": "policy",
    "国会": "parliament",
    "選挙": "election",
    "党宣言": "party_declaration",
    "お知らせ": "announcement",
    "国民民主プレス": "national_democratic_press_outer",
    "その他": "other",
}

# First match wins; each rule is (event type, title keywords, surrounding-text keywords).
EVENT_TYPE_RULES = (
    ("candidate_recruitment", ("候補者募集",), ("候補者募集",)),
    ("street_campaign_support", ("街頭", "集会"), ("街頭", "集会")),
    ("poster_posting", ("ポスティング",), ("ポスティング",)),
    ("poster_display", ("ポスター",), ("ポスター掲示",)),
    ("indoor_work", ("室内",), ("室内",)),
    ("citizen_campus", ("キャンパス",), ("キャンパス",)),
    ("town_meeting", ("タウンミーティング", "会議"), ("タウンミーティング", "懇談")),
    ("off_meeting", ("オフ会",), ("オフ会",)),
    ("indoor_event_support", ("ボランティア",), ("ボランティア",)),
)

DATE_PATTERNS = (
    re.compile(r"(\d{4})\.(\d{1,2})\.(\d{1,2})"),
    re.compile(r"(\d{4})年(\d{1,2})月(\d{1,2})日"),
    re.compile(r"(\d{4})/(\d{1,2})/(\d{1,2})"),
    re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})"),
)

PREFECTURES = (
    ("北海道", "01"), ("青森", "02"), ("岩手", "03"), ("宮城", "04"), ("秋田", "05"),
    ("山形", "06"), ("福島", "07"), ("茨城", "08"), ("栃木", "09"), ("群馬", "10"),
    ("埼玉", "11"), ("千葉", "12"), ("東京", "13"), ("神奈川", "14"), ("新潟", "15"),
    ("富山", "16"), ("石川", "17"), ("福井", "18"), ("山梨", "19"), ("長野", "20"),
    ("岐阜", "21"), ("静岡", "22"), ("愛知", "23"), ("三重", "24"), ("滋賀", "25"),
    ("京都", "26"), ("大阪", "27"), ("兵庫", "28"), ("奈良", "29"), ("和歌山", "30"),
    ("鳥取", "31"), ("島根", "32"), ("岡山", "33"), ("広島", "34"), ("山口", "35"),
    ("徳島", "36"), ("香川", "37"), ("愛媛", "38"), ("高知", "39"), ("福岡", "40"),
    ("佐賀", "41"), ("長崎", "42"), ("熊本", "43"), ("大分", "44"), ("宮崎", "45"),
    ("鹿児島", "46"), ("沖縄", "47"),
)


def classify_category(label: Optional[str]) -> str:
    """Exact label match, then substring match, then the party_hq default."""
    if not label:
        return DEFAULT_CATEGORY
    label = label.strip()
    if label in CATEGORY_MAP:
        return CATEGORY_MAP[label]
    for key, value in CATEGORY_MAP.items():
        if key in label:
            return value
    return DEFAULT_CATEGORY


def classify_event_type(title: Optional[str], text: Optional[str] = None) -> str:
    title_lower = (title or "").lower()
    text_lower = (text or "").lower()
    for event_type, title_keys, text_keys in EVENT_TYPE_RULES:
        if any(key in title_lower for key in title_keys) or any(key in text_lower for key in text_keys):
            return event_type
    return DEFAULT_EVENT_TYPE


def parse_date(text: Optional[str]) -> Optional[date]:
    """
    Try each supported pattern in order. Returns None when nothing matches or the
    first match is not a real calendar date.
    """
    if not text:
        return None
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def detect_prefecture(text: Optional[str]) -> Tuple[str, Optional[str]]:
    """(prefecture code, location label); nationwide when no prefecture is named."""
    text = text or ""
    if "全国" in text:
        return NATIONWIDE_CODE, NATIONWIDE_LABEL
    for name, code in PREFECTURES:
        if name in text:
            return code, name
    return NATIONWIDE_CODE, None
