"""Category vocabularies and display metadata."""

TRANSACTION_CATEGORIES = (
    # expense
    "Food", "Food & Drink", "Transport", "Shopping", "Entertainment",
    "Bills", "Bills & Utilities", "Health", "Education", "Travel",
    "Groceries", "Rent", "Other", "Others",
    # income
    "Salary", "Business", "Investment", "Freelance", "Gift", "Work",
    "Transfer",
)

BUDGET_CATEGORIES = (
    "Food", "Food & Drink", "Transport", "Shopping", "Entertainment",
    "Bills", "Bills & Utilities", "Health", "Education", "Travel",
    "Groceries", "Rent", "Overall", "Others",
)

SUBSCRIPTION_CATEGORIES = (
    "Entertainment", "Bills", "Utilities", "EMI", "Loans", "Shopping", "Other",
)

GOAL_CATEGORIES = (
    "emergency_fund", "vacation", "vehicle", "home", "education",
    "investment", "wedding", "electronics", "other",
)

# Strict lists used when an LLM proposes a category for a scanned receipt.
VALID_EXPENSE_CATEGORIES = (
    "Food", "Transport", "Shopping", "Entertainment", "Bills", "Health",
    "Education", "Travel", "Groceries", "Rent", "Other",
)
VALID_INCOME_CATEGORIES = (
    "Salary", "Business", "Investment", "Freelance", "Gift", "Other",
)

DEFAULT_METADATA = {"icon": "ellipsis-horizontal-outline", "color": "#6B7280"}

CATEGORY_METADATA = {
    "Food": {"icon": "fast-food-outline", "color": "#EF4444"},
    "Transport": {"icon": "car-outline", "color": "#F59E0B"},
    "Shopping": {"icon": "cart-outline", "color": "#8B5CF6"},
    "Entertainment": {"icon": "game-controller-outline", "color": "#EC4899"},
    "Bills": {"icon": "receipt-outline", "color": "#14B8A6"},
    "Health": {"icon": "medical-outline", "color": "#EF4444"},
    "Education": {"icon": "school-outline", "color": "#3B82F6"},
    "Travel": {"icon": "airplane-outline", "color": "#06B6D4"},
    "Groceries": {"icon": "basket-outline", "color": "#10B981"},
    "Rent": {"icon": "home-outline", "color": "#6366F1"},
    "Other": DEFAULT_METADATA,
    "Salary": {"icon": "cash-outline", "color": "#10B981"},
    "Business": {"icon": "briefcase-outline", "color": "#3B82F6"},
    "Investment": {"icon": "trending-up-outline", "color": "#8B5CF6"},
    "Freelance": {"icon": "laptop-outline", "color": "#06B6D4"},
    "Gift": {"icon": "gift-outline", "color": "#EC4899"},
}


def normalize_category(category, txn_type="expense"):
    """Return `category` if it is on the strict list for `txn_type`, else "Other"."""
    allowed = VALID_INCOME_CATEGORIES if txn_type == "income" else VALID_EXPENSE_CATEGORIES
    return category if category in allowed else "Other"


def category_metadata(category, txn_type="expense"):
    return dict(CATEGORY_METADATA.get(normalize_category(category, txn_type), DEFAULT_METADATA))


def category_key(category: str) -> str:
    """'Food & Drink' -> 'food_drink', used as a column key in trend charts."""
    return category.lower().replace(" & ", "_").replace(" ", "_")
