"""
Booking Service: 科目アイコン表

科目名から表示用アイコン (Font Awesome のクラス名) を引く固定テーブル。
"""

DEFAULT_ICON = "fa-book-open"

SUBJECT_ICONS: dict[str, str] = {
    "math": "fa-calculator",
    "english": "fa-book",
    "science": "fa-flask",
    "music": "fa-music",
    "art": "fa-palette",
    "drama": "fa-masks-theater",
    "dance": "fa-person-running",
    "coding": "fa-laptop-code",
    "history": "fa-landmark",
    "geography": "fa-earth-europe",
    "football": "fa-futbol",
    "swimming": "fa-person-swimming",
    "chess": "fa-chess",
    "languages": "fa-language",
}


def icon_for_subject(subject: str) -> str:
    """大文字小文字と前後の空白を無視して引く。未知の科目は DEFAULT_ICON。"""
    return SUBJECT_ICONS.get(subject.strip().lower(), DEFAULT_ICON)
