"""LLM-powered Malaysian tax relief classification for receipt expenses."""

import logging
import re
from decimal import Decimal

from litellm import acompletion

from ledgerscan.config import Settings, settings as default_settings
from ledgerscan.errors import ApiConfigurationError, EmptyResponseError, UpstreamError

logger = logging.getLogger(__name__)

NON_CLAIMABLE = "Non-claimable"

# Relief categories, numbered as the model is asked to answer
TAX_RELIEF_CATEGORIES = [
    "Individual and dependent relatives",
    "Expenses for parents (medical, dental, carer)",
    "Basic supporting equipment for disabled",
    "Disabled individual",
    "Education fees (law, accounting, technical, etc)",
    "Medical expenses (serious disease, fertility, vaccination, dental)",
    "Medical exams & COVID tests",
    "Child intellectual disability expenses",
    "Lifestyle - books, gadgets, internet, skills",
    "Lifestyle - sports equipment, facility, training",
    "Breastfeeding equipment",
    "Childcare fees",
    "SSPN education savings",
    "Spouse / alimony",
    "Disabled spouse",
    "Children",
    "Life insurance, EPF",
    "Annuity & PRS",
    "Education/medical insurance",
    "SOCSO",
    "EV charging expenses",
]

SYSTEM_PROMPT = (
    "You are a Malaysian tax consultant AI. Classify expenses based on these tax relief categories:\n\n"
    + "\n".join(f"{number}. {name}" for number, name in enumerate(TAX_RELIEF_CATEGORIES, start=1))
    + f'\n\nReturn ONLY the category number (1-{len(TAX_RELIEF_CATEGORIES)}) for the expense. '
    f'If it doesn\'t qualify, return "{NON_CLAIMABLE}".'
)


def _build_prompt(merchant: str, items: str, amount: Decimal) -> str:
    return f"""Merchant: {merchant}
Items: {items}
Amount: RM{amount}

Which tax relief category does this fall under? Return only the category number or "{NON_CLAIMABLE}"."""


def parse_category(answer: str) -> int | str:
    """
    Interpret the model's answer.

    Returns:
        The category number when the answer starts with one in range,
        otherwise the stripped answer text
    """
    answer = answer.strip()
    match = re.match(r"^(\d+)", answer)
    if match:
        number = int(match.group(1))
        if 1 <= number <= len(TAX_RELIEF_CATEGORIES):
            return number
    return answer


async def classify_expense(
    merchant: str, items: str, amount: Decimal, settings: Settings | None = None
) -> int | str:
    """
    Ask the model which tax relief category an expense falls under.

    Raises:
        ApiConfigurationError: If the API URL or key is not set
        UpstreamError: If the call fails
        EmptyResponseError: If the model returns no text
    """
    settings = settings or default_settings
    if not settings.api_configured:
        raise ApiConfigurationError("API configuration missing (VISION_API_URL or VISION_API_KEY)")

    try:
        response = await acompletion(
            model=f"openai/{settings.vision_model}",
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _build_prompt(merchant, items, amount)},
            ],
            api_base=settings.vision_api_url,
            api_key=settings.vision_api_key,
            temperature=0.1,
            timeout=settings.vision_timeout,
        )
    except Exception as e:
        status_code = getattr(e, "status_code", None)
        logger.error(f"Tax relief classification failed: {e}")
        raise UpstreamError(f"Tax relief classification failed: {e}", status_code=status_code)

    choices = getattr(response, "choices", None) or []
    content = choices[0].message.content if choices else None
    if not isinstance(content, str) or not content.strip():
        raise EmptyResponseError("No content returned for tax relief classification")

    category = parse_category(content)
    logger.info(f"Tax relief for {merchant}: {category}")
    return category
