"""
Prompt and response-schema builders for the question generator.
"""
from typing import Any, Dict, Optional

from .models import Difficulty


QUESTION_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "question": {
                "type": "STRING",
                "description": "نص السؤال باللغة العربية",
            },
            "options": {
                "type": "ARRAY",
                "items": {"type": "STRING"},
                "description": "قائمة من أربعة خيارات محتملة باللغة العربية. يجب أن تكون واحدة منها صحيحة.",
            },
            "correctAnswer": {
                "type": "STRING",
                "description": "نص الإجابة الصحيحة من قائمة الخيارات.",
            },
        },
        "required": ["question", "options", "correctAnswer"],
    },
}

_OUTPUT_INSTRUCTIONS = """
الرجاء تنسيق الإخراج كـ JSON فقط، بدون أي نص إضافي قبله أو بعده.
يجب أن يتوافق الإخراج تمامًا مع مخطط JSON المحدد."""


def build_topic_prompt(title: str, description: str, difficulty: Difficulty, count: int) -> str:
    return f"""أنت خبير في العلوم الإسلامية ومصمم ألعاب تعليمية.
مهمتك هي إنشاء {count} أسئلة اختيار من متعدد باللغة العربية.
الموضوع المحدد هو: '{title}'.
وصف الموضوع هو: '{description}'.
مستوى الصعوبة المطلوب هو: '{difficulty.value}'.

إرشادات هامة:
1. يجب أن تكون جميع الأسئلة مرتبطة بشكل مباشر بالموضوع المحدد ووصفه.
2. يجب أن يكون لكل سؤال أربعة خيارات، وإجابة واحدة صحيحة فقط.
3. تأكد من أن الأسئلة متنوعة وواضحة ومناسبة لمستوى الصعوبة المحدد.
4. استخدم معلومات من مصادر إسلامية موثوقة مثل القرآن الكريم، والسنة النبوية الصحيحة، وكتب السيرة المعتبرة.
{_OUTPUT_INSTRUCTIONS}"""


def build_random_prompt(difficulty: Difficulty, count: int) -> str:
    return f"""أنت خبير في العلوم الإسلامية ومصمم ألعاب تعليمية.
مهمتك هي إنشاء {count} أسئلة اختيار من متعدد عشوائية ومتنوعة باللغة العربية.
مستوى الصعوبة المطلوب هو: '{difficulty.value}'.

إرشادات هامة:
1. يجب أن تغطي الأسئلة مجموعة واسعة من المواضيع الإسلامية مثل: (السيرة النبوية، قصص الأنبياء، الصحابة، الفقه، العقيدة، علوم القرآن، التاريخ الإسلامي).
2. يجب أن يكون لكل سؤال أربعة خيارات، وإجابة واحدة صحيحة فقط.
3. تأكد من أن الأسئلة متنوعة وواضحة ومناسبة لمستوى الصعوبة المحدد.
4. استخدم معلومات من مصادر إسلامية موثوقة.
{_OUTPUT_INSTRUCTIONS}"""


def build_prompt(
    difficulty: Difficulty,
    count: int,
    topic_title: Optional[str] = None,
    topic_description: Optional[str] = None
) -> str:
    """Pick the themed or unthemed prompt depending on whether a topic is given."""
    if topic_title:
        return build_topic_prompt(topic_title, topic_description or "", difficulty, count)
    return build_random_prompt(difficulty, count)


def build_generation_config() -> Dict[str, Any]:
    """Generation config sent alongside the prompt to request JSON output."""
    return {
        "responseMimeType": "application/json",
        "responseSchema": QUESTION_RESPONSE_SCHEMA,
    }
