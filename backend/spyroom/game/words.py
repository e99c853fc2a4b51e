from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    words: tuple[str, ...]


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category("food", "الأكل", ("الكسكس", "الطاجين", "الحريرة", "البيتزا", "البرغر", "السلطة", "الملوخية", "الكباب", "الفتة", "المحشي", "الرز", "اللحم")),
    Category("animals", "الحيوانات", ("الفيل", "الدلفين", "البطريق", "الأسد", "النمر", "الزرافة", "الغزال", "القرود", "الطاووس", "الفراشة", "السلحفاة", "الكنغر")),
    Category("cities", "المدن", ("الدار البيضاء", "الرباط", "فاس", "مراكش", "أكادير", "طنجة", "مكناس", "وجدة", "تطوان", "الخميسات", "بني ملال", "تازة")),
    Category("colors", "الألوان", ("الأحمر", "الأزرق", "الأخضر", "الأصفر", "الوردي", "البرتقالي", "البنفسجي", "الأسود", "الأبيض", "الرمادي", "الذهبي", "الفضي")),
    Category("countries", "البلدان", ("المغرب", "مصر", "فرنسا", "إسبانيا", "أمريكا", "إنجلترا", "ألمانيا", "إيطاليا", "اليابان", "الصين", "البرازيل", "كندا")),
    Category("sports", "الرياضة", ("كرة القدم", "كرة السلة", "التنس", "السباحة", "الجري", "ركوب الدراجة", "الملاكمة", "الكاراتيه", "الجمباز", "كرة اليد", "البيسبول", "الهوكي")),
    Category("jobs", "المهن", ("الطبيب", "المعلم", "المهندس", "الشرطي", "النجار", "الخباز", "المحامي", "المحاسب", "الممرض", "الطيار", "الطباخ")),
    Category("tools", "الأدوات", ("المطرقة", "المفك", "المقص", "المفتاح", "الكماشة", "المنشار", "البراغي", "المسامير", "الخيط", "الإبرة", "الغراء", "الورق")),
    Category("transport", "المواصلات", ("السيارة", "الطائرة", "القطار", "الحافلة", "الدراجة", "الدراجة النارية", "الطائرة الشراعية", "الغواصة", "القطار السريع", "الترام", "المترو", "الطائرة الورقية")),
    Category("fruits", "الفواكه", ("التفاح", "الموز", "البرتقال", "العنب", "الفراولة", "الأناناس", "المانجو", "الخوخ", "الكمثرى", "الكرز", "الليمون", "الرمان")),
    Category("vegetables", "الخضروات", ("الطماطم", "الخيار", "الجزر", "البطاطس", "البصل", "الثوم", "الملفوف", "الخس", "السبانخ", "الفلفل", "القرنبيط", "الباذنجان")),
    Category("clothes", "الملابس", ("القميص", "البنطلون", "الفستان", "الحذاء", "القبعة", "القفازات", "الجاكيت", "السترة", "السراويل", "البلوزة", "الكنزة", "الحزام")),
)


class WordBank:
    """Read-only category -> words lookup consumed by the game."""

    def __init__(self, categories: list[Category] | tuple[Category, ...] = DEFAULT_CATEGORIES) -> None:
        self._categories: dict[str, Category] = {}
        for category in categories:
            if not category.words:
                raise ValueError(f"category {category.id!r} has no words")
            self._categories[category.id] = category

    @classmethod
    def from_json(cls, path: str | Path) -> "WordBank":
        """Load ``{"<id>": {"name": "...", "words": ["...", ...]}, ...}``."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        categories = []
        for category_id, entry in raw.items():
            words = tuple(w.strip() for w in entry.get("words", []) if isinstance(w, str) and w.strip())
            categories.append(Category(str(category_id), str(entry.get("name") or category_id), words))
        return cls(categories)

    def get(self, category_id: str) -> Category | None:
        return self._categories.get(category_id)

    def categories(self) -> list[Category]:
        return list(self._categories.values())

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._categories

    def __len__(self) -> int:
        return len(self._categories)


def pick_word(category: Category, rng: random.Random) -> str:
    return rng.choice(category.words)
