"""Stop-word lists by language code."""

from __future__ import annotations

# Alias for the Hebrew stop-word list.
_YID = (
    "אבל", "או", "אולי", "אותה", "אותו", "אותי", "אותך", "אותם", "אותן",
    "אותנו", "אז", "אחר", "אחרות", "אחרי", "אחריכן", "אחרים", "אחרת", "אי",
    "איזה", "איך", "אין", "איפה", "איתה", "איתו", "איתי", "איתך", "איתכם",
    "איתכן", "איתם", "איתן", "איתנו", "אך", "אל", "אלה", "אלו", "אם",
    "אנחנו", "אני", "אס", "אף", "אצל", "אשר", "את", "אתה", "אתכם", "אתכן",
    "אתם", "אתן", "באיזומידה", "באמצע", "באמצעות", "בגלל", "בין", "בלי",
    "במידה", "במקוםשבו", "ברם", "בשביל", "בשעהש", "בתוך", "גם", "דרך",
    "הוא", "היא", "היה", "היכן", "היתה", "היתי", "הם", "הן", "הנה",
    "הסיבהשבגללה", "הרי", "ואילו", "ואת", "זאת", "זה", "זות", "יהיה",
    "יוכל", "יוכלו", "יותרמדי", "יכול", "יכולה", "יכולות", "יכולים", "יכל",
    "יכלה", "יכלו", "יש", "כאן", "כאשר", "כולם", "כולן", "כזה", "כי",
    "כיצד", "כך", "ככה", "כל", "כלל", "כמו", "כן", "כפי", "כש", "לא", "לאו",
    "לאיזותכלית", "לאן", "לבין", "לה", "להיות", "להם", "להן", "לו", "לי",
    "לכם", "לכן", "למה", "למטה", "למעלה", "למקוםשבו", "למרות", "לנו",
    "לעבר", "לעיכן", "לפיכך", "לפני", "מאד", "מאחורי", "מאיזוסיבה", "מאין",
    "מאיפה", "מבלי", "מבעד", "מדוע", "מה", "מהיכן", "מול", "מחוץ", "מי",
    "מכאן", "מכיוון", "מלבד", "מן", "מנין", "מסוגל", "מעט", "מעטים", "מעל",
    "מצד", "מקוםבו", "מתחת", "מתי", "נגד", "נגר", "נו", "עד", "עז", "על",
    "עלי", "עליה", "עליהם", "עליהן", "עליו", "עליך", "עליכם", "עלינו", "עם",
    "עצמה", "עצמהם", "עצמהן", "עצמו", "עצמי", "עצמם", "עצמן", "עצמנו", "פה",
    "רק", "שוב", "של", "שלה", "שלהם", "שלהן", "שלו", "שלי", "שלך", "שלכה",
    "שלכם", "שלכן", "שלנו", "שם", "תהיה", "תחת",
)

_ZUL = (
    "futhi", "kahle", "kakhulu", "kanye", "khona", "kodwa", "kungani",
    "kusho", "la", "lakhe", "lapho", "mina", "ngesikhathi", "nje", "phansi",
    "phezulu", "u", "ukuba", "ukuthi", "ukuze", "uma", "wahamba", "wakhe",
    "wami", "wase", "wathi", "yakhe", "zakhe", "zonke",
)

_STOPWORDS: dict[str, frozenset[str]] = {
    "yid": frozenset(_YID),
    "zul": frozenset(_ZUL),
}


def stopwords_for(lang: str) -> frozenset[str]:
    """Return the stop words of a language, by its ISO 639-3 code."""
    try:
        return _STOPWORDS[lang]
    except KeyError:
        raise ValueError(f"no stop words for language: {lang!r}") from None


def is_stopword(word: str, lang: str) -> bool:
    """Tell whether ``word`` is a stop word in ``lang``."""
    return word in stopwords_for(lang)