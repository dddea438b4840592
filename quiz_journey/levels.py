"""
Catalog of the fixed topic levels of the journey.

Levels 1-100 form the basic tier and 101-200 the advanced tier. Each of the
fifty themes appears once per stage, with the stage setting the difficulty.
"""
import logging
from typing import Dict, List, Optional, Tuple

from .models import Difficulty, Level

logger = logging.getLogger(__name__)

LEVEL_COUNT = 200
BASIC_TIER = "basic"
ADVANCED_TIER = "advanced"

LEVEL_THEMES: List[Tuple[str, str]] = [
    ("أركان الإسلام", "الشهادتان والصلاة والزكاة والصوم والحج"),
    ("أركان الإيمان", "الإيمان بالله وملائكته وكتبه ورسله واليوم الآخر والقدر"),
    ("أسماء الله الحسنى", "معاني أسماء الله وصفاته وآثارها في حياة المسلم"),
    ("الطهارة", "الوضوء والغسل والتيمم وأحكام المياه والنجاسات"),
    ("الصلاة", "شروط الصلاة وأركانها وواجباتها وسننها ومبطلاتها"),
    ("الصيام", "أحكام صيام رمضان والصيام المستحب ومفسدات الصوم"),
    ("الزكاة", "أنصبة الزكاة ومصارفها وزكاة الفطر"),
    ("الحج والعمرة", "مناسك الحج والعمرة وأركانهما وواجباتهما"),
    ("مولد النبي ونشأته", "نسب النبي ﷺ ومولده ورضاعته وكفالته"),
    ("البعثة والدعوة في مكة", "نزول الوحي والدعوة السرية والجهرية وأذى قريش"),
    ("الهجرة إلى الحبشة", "هجرة المسلمين الأولى والثانية إلى الحبشة وموقف النجاشي"),
    ("الإسراء والمعراج", "رحلة الإسراء والمعراج وفرض الصلاة"),
    ("الهجرة النبوية", "الهجرة إلى المدينة وأحداثها وبناء المسجد النبوي"),
    ("غزوة بدر", "أسباب غزوة بدر وأحداثها ونتائجها"),
    ("غزوة أحد", "أحداث غزوة أحد ودروسها"),
    ("غزوة الخندق", "حفر الخندق وتحزب الأحزاب ونقض بني قريظة للعهد"),
    ("صلح الحديبية", "بنود صلح الحديبية وبيعة الرضوان وآثار الصلح"),
    ("فتح مكة", "أسباب فتح مكة وأحداثه والعفو العام"),
    ("حجة الوداع ووفاة النبي", "خطبة الوداع ومرض النبي ﷺ ووفاته"),
    ("قصة آدم عليه السلام", "خلق آدم وسجود الملائكة وهبوطه إلى الأرض"),
    ("قصة نوح عليه السلام", "دعوة نوح لقومه والطوفان والسفينة"),
    ("قصة إبراهيم عليه السلام", "دعوة إبراهيم وتحطيم الأصنام وبناء الكعبة"),
    ("قصة يوسف عليه السلام", "رؤيا يوسف وإخوته ومحنته في مصر"),
    ("قصة موسى عليه السلام", "موسى وفرعون وبنو إسرائيل والخروج من مصر"),
    ("قصة عيسى عليه السلام", "مريم وميلاد عيسى ومعجزاته ورفعه"),
    ("أنبياء آخرون", "هود وصالح وشعيب ولوط ويونس وأيوب وداود وسليمان"),
    ("أبو بكر الصديق", "سيرة أبي بكر وخلافته وحروب الردة"),
    ("عمر بن الخطاب", "إسلام عمر وخلافته والفتوحات وتنظيم الدولة"),
    ("عثمان بن عفان", "سيرة عثمان وجمع القرآن والفتنة"),
    ("علي بن أبي طالب", "سيرة علي وخلافته وأحداثها"),
    ("العشرة المبشرون بالجنة", "سير الصحابة المبشرين بالجنة وفضائلهم"),
    ("أمهات المؤمنين", "زوجات النبي ﷺ وسيرهن وفضائلهن"),
    ("الصحابيات", "سير الصحابيات الجليلات ومواقفهن"),
    ("علوم القرآن", "نزول القرآن وجمعه والمكي والمدني وأسباب النزول"),
    ("سور القرآن الكريم", "أسماء السور وترتيبها وموضوعاتها"),
    ("التجويد", "أحكام النون الساكنة والتنوين والمدود والمخارج"),
    ("التفسير", "تفسير آيات مختارة وأشهر كتب التفسير والمفسرين"),
    ("الحديث النبوي", "أشهر كتب الحديث ورواتها ومصطلح الحديث"),
    ("الأربعون النووية", "أحاديث الأربعين النووية ومعانيها"),
    ("الأخلاق الإسلامية", "الصدق والأمانة وبر الوالدين وحسن الجوار"),
    ("الآداب الإسلامية", "آداب الطعام والسلام والاستئذان والمجلس"),
    ("الأذكار والأدعية", "أذكار الصباح والمساء والأدعية المأثورة"),
    ("المعاملات", "أحكام البيع والربا والدين والوقف"),
    ("الأسرة في الإسلام", "أحكام النكاح وحقوق الزوجين والمواريث"),
    ("الدولة الأموية", "قيام الدولة الأموية وخلفاؤها وفتوحاتها"),
    ("الدولة العباسية", "قيام الدولة العباسية وازدهار العلوم"),
    ("الأندلس", "فتح الأندلس وحضارتها وسقوطها"),
    ("الحروب الصليبية", "الحملات الصليبية وصلاح الدين وتحرير القدس"),
    ("الدولة العثمانية", "نشأة الدولة العثمانية وفتح القسطنطينية"),
    ("علماء الإسلام", "الأئمة الأربعة وكبار العلماء وإسهاماتهم"),
]

# (label, focus, difficulty) for each pass over the themes
STAGES: List[Tuple[str, str, Difficulty]] = [
    ("المرحلة الأولى", "أساسيات ومفاهيم عامة", Difficulty.EASY),
    ("المرحلة الثانية", "تفاصيل وأحداث مهمة", Difficulty.MEDIUM),
    ("المرحلة الثالثة", "مسائل متقدمة وربط بين الأحداث", Difficulty.MEDIUM),
    ("المرحلة الرابعة", "دقائق وتفاصيل للمتعمقين", Difficulty.HARD),
]


def build_levels() -> List[Level]:
    """Expand the themes and stages into the ordered list of levels."""
    levels = []
    for stage_label, focus, difficulty in STAGES:
        for title, description in LEVEL_THEMES:
            levels.append(Level(
                id=len(levels) + 1,
                title=f"{title} - {stage_label}",
                difficulty=difficulty,
                description=f"{description}. التركيز: {focus}"
            ))
    return levels


class LevelCatalog:
    """Lookup and search over the fixed levels."""

    BASIC_RANGE = (1, 100)
    ADVANCED_RANGE = (101, 200)

    def __init__(self, levels: Optional[List[Level]] = None):
        self._levels = levels if levels is not None else build_levels()
        self._by_id: Dict[int, Level] = {level.id: level for level in self._levels}
        logger.debug(f"Level catalog loaded with {len(self._levels)} levels")

    def __len__(self) -> int:
        return len(self._levels)

    def all(self) -> List[Level]:
        return list(self._levels)

    def get(self, level_id: int) -> Optional[Level]:
        return self._by_id.get(level_id)

    def tier(self, name: str) -> List[Level]:
        """
        Get the levels of one tier.

        Args:
            name: "basic" (levels 1-100) or "advanced" (levels 101-200)
        """
        if name == BASIC_TIER:
            low, high = self.BASIC_RANGE
        elif name == ADVANCED_TIER:
            low, high = self.ADVANCED_RANGE
        else:
            raise ValueError(f"Unknown tier: {name}")
        return [level for level in self._levels if low <= level.id <= high]

    def search(self, query: str) -> List[Level]:
        """Case-insensitive search over titles and descriptions."""
        if not query or not query.strip():
            return self.all()
        needle = query.strip().lower()
        return [
            level for level in self._levels
            if needle in level.title.lower() or needle in level.description.lower()
        ]
