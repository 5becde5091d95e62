# Backend/trust_desk/services/trust_policy.py
from decimal import Decimal

from trust_desk.domain.models import Category, PolicyFlag, Severity

GENERAL_SUPPORT_MONTHLY_CAP = Decimal("5000")
LARGE_PURCHASE_REVIEW_THRESHOLD = Decimal("20000")

PROHIBITED_CATEGORIES = {
    Category.INVESTMENT: "Speculative investments",
    Category.VEHICLE: "Luxury vehicles",
}

PROHIBITED_KEYWORDS = (
    "speculative",
    "luxury",
    "angel invest",
    "crypto",
    "gambling",
    "tesla",
    "ferrari",
    "lamborghini",
    "porsche",
    "rolex",
    "gucci",
)

KNOWN_BENEFICIARIES = ("Sam Miller", "Katie Miller")

FLAG_SEVERITY = {
    PolicyFlag.PROHIBITED: Severity.BLOCKED,
    PolicyFlag.OVER_LIMIT: Severity.WARNING,
    PolicyFlag.REQUIRES_REVIEW: Severity.WARNING,
    PolicyFlag.UNKNOWN_BENEFICIARY: Severity.WARNING,
    PolicyFlag.EXCEEDS_MONTHLY_CAP: Severity.WARNING,
}

FLAG_LABELS = {
    PolicyFlag.PROHIBITED: "Prohibited",
    PolicyFlag.OVER_LIMIT: "Over Limit",
    PolicyFlag.REQUIRES_REVIEW: "Requires Review",
    PolicyFlag.UNKNOWN_BENEFICIARY: "Unknown Beneficiary",
    PolicyFlag.EXCEEDS_MONTHLY_CAP: "Exceeds Monthly Cap",
}

POLICY_RULES = {
    "education": {
        "label": "Education",
        "description": "Fully covered. Includes tuition, materials, academic travel.",
    },
    "medical": {
        "label": "Medical",
        "description": "Fully covered.",
    },
    "general_support": {
        "label": "General Support",
        "description": f"Capped at ${GENERAL_SUPPORT_MONTHLY_CAP:,}/month per beneficiary.",
    },
    "large_purchase": {
        "label": "Large Purchases",
        "description": f"Over ${LARGE_PURCHASE_REVIEW_THRESHOLD:,} requires high-priority review.",
    },
    "prohibited": {
        "label": "Prohibited",
        "description": "No speculative investments, luxury vehicles, or luxury goods.",
        "categories": [category.value for category in PROHIBITED_CATEGORIES],
        "keywords": list(PROHIBITED_KEYWORDS),
    },
}
