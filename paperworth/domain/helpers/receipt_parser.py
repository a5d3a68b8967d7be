# paperworth/domain/helpers/receipt_parser.py
import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

UNKNOWN_MERCHANT = "Unknown Merchant"
UNKNOWN_DATE = "Unknown Date"
DEFAULT_CATEGORY = "Others"

# Lower-case substrings recognised in the receipt header
KNOWN_MERCHANTS = (
    "cold storage",
    "fairprice",
    "ntuc",
    "mcdonald",
    "giant",
    "sheng siong",
    "burger king",
    "kfc",
    "subway",
    "starbucks",
    "uniqlo",
    "guardian",
    "watsons",
)

# Ordered: the first category with a matching substring wins.
# Keys are matched against the merchant name lower-cased with whitespace removed.
CATEGORY_KEYWORDS = (
    ("Groceries", ("coldstorage", "fairprice", "ntuc", "giant", "shengsiong")),
    (
        "Fast Food",
        ("mcdonald", "burgerking", "kfc", "subway", "wingstop", "wing", "jollibee"),
    ),
    ("Cafes", ("starbucks", "coffeebean", "toastbox", "yakun", "cafe")),
    ("Retail", ("uniqlo", "zara", "hm", "cottonon")),
    ("Healthcare", ("guardian", "watsons", "unity", "pharmacy")),
)

LINE_AMOUNT_RE = re.compile(r"\$(\d+\.\d{2})")
LABELLED_TOTAL_RE = re.compile(
    r"\b(TOTAL|AMOUNT|SUM|DUE)\s*:?\s*\$?\s*(\d+[.,]\d{2})", re.IGNORECASE
)
TRAILING_LABEL_TOTAL_RE = re.compile(
    r"\$(\d+[.,]\d{2})\s*\b(TOTAL|AMOUNT|SUM|DUE)", re.IGNORECASE
)

LABELLED_DATE_RE = re.compile(
    r"\b(date|date of purchase|txn date)\s*:?\s*(\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4})",
    re.IGNORECASE,
)
DAY_FIRST_DATE_RE = re.compile(r"(\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4})")
YEAR_FIRST_DATE_RE = re.compile(r"(\d{4}[/.-]\d{1,2}[/.-]\d{1,2})")

ITEM_WITH_QTY_RE = re.compile(r"(\d+)\s+x\s+(.+?)\s+\$(\d+\.\d{2})")
ITEM_RE = re.compile(r"(.+?)\s+\$(\d+\.\d{2})")
SKIP_ITEM_WORDS = ("total", "subtotal", "tax", "discount", "change")


def _non_empty_lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def extract_merchant_name(text: str) -> str:
    lines = _non_empty_lines(text)
    for line in lines[:5]:
        lowered = line.lower()
        if any(name in lowered for name in KNOWN_MERCHANTS):
            return line
    if lines:
        return lines[0]
    return UNKNOWN_MERCHANT


def _parse_amount(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return None


def extract_total_amount(text: str) -> float:
    # A "total" line near the bottom is the most reliable signal.
    lines = text.splitlines()
    for line in reversed(lines[-10:]):
        lowered = line.lower()
        if "total" in lowered and "subtotal" not in lowered:
            match = LINE_AMOUNT_RE.search(lowered)
            if match:
                return float(match.group(1))

    match = LABELLED_TOTAL_RE.search(text)
    if match:
        amount = _parse_amount(match.group(2))
        if amount is not None:
            return amount

    match = TRAILING_LABEL_TOTAL_RE.search(text)
    if match:
        amount = _parse_amount(match.group(1))
        if amount is not None:
            return amount

    return 0.0


def extract_date(text: str) -> str:
    match = LABELLED_DATE_RE.search(text)
    if match:
        return match.group(2)
    match = DAY_FIRST_DATE_RE.search(text)
    if match:
        return match.group(1)
    match = YEAR_FIRST_DATE_RE.search(text)
    if match:
        return match.group(1)
    return UNKNOWN_DATE


def normalize_merchant(merchant: str) -> str:
    return re.sub(r"\s+", "", merchant.lower())


def determine_category(merchant: Optional[str]) -> str:
    if not merchant:
        return DEFAULT_CATEGORY
    clean = normalize_merchant(merchant)
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in clean for k in keywords):
            return category
    logger.debug("Merchant not categorized: %s (cleaned: %s)", merchant, clean)
    return DEFAULT_CATEGORY


def _should_skip_item(name: str) -> bool:
    lowered = name.lower()
    return len(name) < 2 or any(word in lowered for word in SKIP_ITEM_WORDS)


def extract_items(text: str) -> List[Dict[str, Any]]:
    items = []
    for line in text.splitlines():
        qty_match = ITEM_WITH_QTY_RE.search(line)
        if qty_match:
            name = qty_match.group(2).strip()
            if not _should_skip_item(name):
                items.append(
                    {
                        "name": name,
                        "price": float(qty_match.group(3)),
                        "quantity": int(qty_match.group(1)),
                    }
                )
            continue

        match = ITEM_RE.search(line)
        if match:
            name = match.group(1).strip()
            if _should_skip_item(name):
                continue
            items.append({"name": name, "price": float(match.group(2)), "quantity": 1})
    return items


def extract_receipt_fields(text: str) -> Dict[str, Any]:
    """
    Turn raw OCR text into the structured fields shown to the user for
    confirmation. ``items`` is only present when at least one line item was found.
    """
    merchant = extract_merchant_name(text)
    data = {
        "fullText": text,
        "merchantName": merchant,
        "totalAmount": extract_total_amount(text),
        "date": extract_date(text),
        "category": determine_category(merchant),
    }
    items = extract_items(text)
    if items:
        data["items"] = items
    return data
