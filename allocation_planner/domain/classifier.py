"""Rule-based transaction classification

Provider category labels and merchant text are mapped once into the closed
`CategoryTag` vocabulary by `tag_transaction`; everything downstream works on
tags. None of these functions raise: missing or odd category data falls through
to text heuristics, and no signal at all defaults an outflow to discretionary
and an inflow to excluded.
"""

import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from allocation_planner.domain.models import (
    Account,
    CategoryTag,
    Classification,
    ExpenseCategory,
    Transaction,
    TransactionClass,
    TransferStatus,
)

Tag = CategoryTag

INCOME_TAGS = frozenset(
    {
        Tag.INCOME_WAGES,
        Tag.INCOME_INTEREST,
        Tag.INCOME_DIVIDENDS,
        Tag.INCOME_TAX_REFUND,
        Tag.INCOME_UNEMPLOYMENT,
        Tag.INCOME_BENEFITS,
    }
)

TRANSFER_TAGS = frozenset({Tag.TRANSFER_ACCOUNT, Tag.TRANSFER_SAVINGS, Tag.TRANSFER_OTHER})

DEBT_PAYMENT_TAGS = frozenset({Tag.LOAN_PAYMENT, Tag.CREDIT_CARD_PAYMENT})

ESSENTIAL_TAGS = frozenset(
    {
        Tag.RENT,
        Tag.MORTGAGE,
        Tag.UTILITIES,
        Tag.INSURANCE,
        Tag.GROCERIES,
        Tag.LOAN_PAYMENT,
        Tag.CREDIT_CARD_PAYMENT,
        Tag.BANK_FEES,
        Tag.MEDICAL,
        Tag.CHILDCARE,
        Tag.EDUCATION,
        Tag.TRANSPORTATION,
        Tag.SUBSCRIPTION,
    }
)

# Tags that are rarely mislabelled; confidence is floored
UNAMBIGUOUS_TAGS = frozenset({Tag.RENT, Tag.MORTGAGE, Tag.UTILITIES})

# Payment rails that hide what the money was for; confidence is capped
PAYMENT_RAIL_TAGS = frozenset({Tag.PEER_TO_PEER, Tag.ATM})

UNAMBIGUOUS_CONFIDENCE_FLOOR = 0.9
PAYMENT_RAIL_CONFIDENCE_CAP = 0.6
REVIEW_CONFIDENCE = 0.3
TRANSFER_MATCH_WINDOW_DAYS = 3

_CATEGORY_BY_TAG: Dict[CategoryTag, ExpenseCategory] = {
    Tag.RENT: ExpenseCategory.HOUSING,
    Tag.MORTGAGE: ExpenseCategory.HOUSING,
    Tag.GROCERIES: ExpenseCategory.FOOD,
    Tag.TRANSPORTATION: ExpenseCategory.TRANSPORTATION,
    Tag.UTILITIES: ExpenseCategory.UTILITIES,
    Tag.INSURANCE: ExpenseCategory.INSURANCE,
    Tag.SUBSCRIPTION: ExpenseCategory.SUBSCRIPTIONS,
    Tag.MEDICAL: ExpenseCategory.HEALTHCARE,
    Tag.BANK_FEES: ExpenseCategory.OTHER,
    Tag.CHILDCARE: ExpenseCategory.OTHER,
    Tag.EDUCATION: ExpenseCategory.OTHER,
}

# --- Label vocabulary ------------------------------------------------------------

# Provider primary categories; detailed labels carry them as a prefix
_PRIMARY_TAGS: Dict[str, CategoryTag] = {
    "INCOME": Tag.UNKNOWN,
    "TRANSFER_IN": Tag.TRANSFER_OTHER,
    "TRANSFER_OUT": Tag.TRANSFER_OTHER,
    "LOAN_PAYMENTS": Tag.LOAN_PAYMENT,
    "BANK_FEES": Tag.BANK_FEES,
    "RENT_AND_UTILITIES": Tag.UTILITIES,
    "FOOD_AND_DRINK": Tag.DINING,
    "MEDICAL": Tag.MEDICAL,
    "TRANSPORTATION": Tag.TRANSPORTATION,
    "TRAVEL": Tag.TRAVEL,
    "ENTERTAINMENT": Tag.ENTERTAINMENT,
    "GENERAL_MERCHANDISE": Tag.SHOPPING,
    "PERSONAL_CARE": Tag.SHOPPING,
    "HOME_IMPROVEMENT": Tag.SHOPPING,
    "GENERAL_SERVICES": Tag.UNKNOWN,
    "GOVERNMENT_AND_NON_PROFIT": Tag.UNKNOWN,
}

# Ordered: first phrase found in the label wins
_LABEL_RULES: Tuple[Tuple[Tuple[str, ...], CategoryTag], ...] = (
    (("ACCOUNT", "TRANSFER"), Tag.TRANSFER_ACCOUNT),
    (("INTERNAL", "TRANSFER"), Tag.TRANSFER_ACCOUNT),
    (("TAX", "REFUND"), Tag.INCOME_TAX_REFUND),
    (("UNEMPLOYMENT",), Tag.INCOME_UNEMPLOYMENT),
    (("SOCIAL", "SECURITY"), Tag.INCOME_BENEFITS),
    (("PENSION",), Tag.INCOME_BENEFITS),
    (("DIVIDENDS",), Tag.INCOME_DIVIDENDS),
    (("DIVIDEND",), Tag.INCOME_DIVIDENDS),
    (("INTEREST", "CHARGE"), Tag.BANK_FEES),
    (("INTEREST", "EARNED"), Tag.INCOME_INTEREST),
    (("INTEREST",), Tag.INCOME_INTEREST),
    (("WAGES",), Tag.INCOME_WAGES),
    (("PAYROLL",), Tag.INCOME_WAGES),
    (("SALARY",), Tag.INCOME_WAGES),
    (("DIRECT", "DEPOSIT"), Tag.INCOME_WAGES),
    (("INVESTMENT",), Tag.TRANSFER_INVESTMENT),
    (("RETIREMENT",), Tag.TRANSFER_INVESTMENT),
    (("BROKERAGE",), Tag.TRANSFER_INVESTMENT),
    (("401K",), Tag.TRANSFER_INVESTMENT),
    (("SAVINGS",), Tag.TRANSFER_SAVINGS),
    (("CREDIT", "CARD"), Tag.CREDIT_CARD_PAYMENT),
    (("MORTGAGE",), Tag.MORTGAGE),
    (("RENT",), Tag.RENT),
    (("GAS", "AND", "ELECTRICITY"), Tag.UTILITIES),
    (("UTILITIES",), Tag.UTILITIES),
    (("WATER",), Tag.UTILITIES),
    (("INTERNET",), Tag.UTILITIES),
    (("TELEPHONE",), Tag.UTILITIES),
    (("SEWAGE",), Tag.UTILITIES),
    (("INSURANCE",), Tag.INSURANCE),
    (("GROCERIES",), Tag.GROCERIES),
    (("SUPERMARKETS",), Tag.GROCERIES),
    (("PHARMACIES",), Tag.MEDICAL),
    (("PHARMACY",), Tag.MEDICAL),
    (("MEDICAL",), Tag.MEDICAL),
    (("DENTAL",), Tag.MEDICAL),
    (("HEALTHCARE",), Tag.MEDICAL),
    (("CHILDCARE",), Tag.CHILDCARE),
    (("DAYCARE",), Tag.CHILDCARE),
    (("EDUCATION",), Tag.EDUCATION),
    (("TUITION",), Tag.EDUCATION),
    (("FEES",), Tag.BANK_FEES),
    (("FEE",), Tag.BANK_FEES),
    (("OVERDRAFT",), Tag.BANK_FEES),
    (("ATM",), Tag.ATM),
    (("WITHDRAWAL",), Tag.ATM),
    (("TAXIS",), Tag.TRAVEL),
    (("GAS",), Tag.TRANSPORTATION),
    (("PUBLIC", "TRANSIT"), Tag.TRANSPORTATION),
    (("PARKING",), Tag.TRANSPORTATION),
    (("TOLLS",), Tag.TRANSPORTATION),
    (("SUBSCRIPTION",), Tag.SUBSCRIPTION),
    (("RESTAURANT",), Tag.DINING),
    (("RESTAURANTS",), Tag.DINING),
    (("COFFEE",), Tag.DINING),
    (("FAST", "FOOD"), Tag.DINING),
    (("LOAN",), Tag.LOAN_PAYMENT),
    (("LOANS",), Tag.LOAN_PAYMENT),
    (("TRANSFER",), Tag.TRANSFER_OTHER),
)

# --- Text vocabulary -------------------------------------------------------------

_PAYMENT_RAIL_TEXT: Tuple[Tuple[re.Pattern, CategoryTag], ...] = (
    (re.compile(r"\b(venmo|zelle|cash ?app|paypal|apple cash)\b"), Tag.PEER_TO_PEER),
    (re.compile(r"\b(atm|cash withdrawal)\b"), Tag.ATM),
)

_TEXT_RULES: Tuple[Tuple[re.Pattern, CategoryTag], ...] = (
    (re.compile(r"\b(payroll|direct dep\w*|salary|paycheck)\b"), Tag.INCOME_WAGES),
    (re.compile(r"\b(tax refund|irs treas\w*|tax ref)\b"), Tag.INCOME_TAX_REFUND),
    (re.compile(r"\bunemployment\b"), Tag.INCOME_UNEMPLOYMENT),
    (re.compile(r"\b(ssa treas\w*|social security)\b"), Tag.INCOME_BENEFITS),
    (re.compile(r"\bdividends?\b"), Tag.INCOME_DIVIDENDS),
    (re.compile(r"\binterest (paid|earned|payment)\b"), Tag.INCOME_INTEREST),
    (re.compile(r"\b(credit card|card payment|cardmember)\b.*\bpayment\b|\bpayment thank you\b"), Tag.CREDIT_CARD_PAYMENT),
    (re.compile(r"\b(student loan|auto loan|loan payment|navient|nelnet|sallie mae)\b"), Tag.LOAN_PAYMENT),
    (re.compile(r"\bmortgage\b"), Tag.MORTGAGE),
    (re.compile(r"\b(rent|property management|apartments?)\b"), Tag.RENT),
    (re.compile(r"\b(electric\w*|utility|utilities|water|pg&e|comcast|xfinity|spectrum|verizon|at&t|t-mobile)\b"), Tag.UTILITIES),
    (re.compile(r"\b(insurance|geico|state farm|progressive|allstate)\b"), Tag.INSURANCE),
    (re.compile(r"\b(grocery|groceries|supermarket|whole foods|safeway|kroger|trader joe'?s|aldi|publix)\b"), Tag.GROCERIES),
    (re.compile(r"\b(pharmacy|cvs|walgreens|medical|dental|clinic|hospital)\b"), Tag.MEDICAL),
    (re.compile(r"\b(daycare|childcare|child care)\b"), Tag.CHILDCARE),
    (re.compile(r"\b(tuition|school)\b"), Tag.EDUCATION),
    (re.compile(r"\b(overdraft|service fee|maintenance fee|late fee)\b"), Tag.BANK_FEES),
    (re.compile(r"\b(shell|chevron|exxon|gas station|fuel|transit|metro|parking)\b"), Tag.TRANSPORTATION),
    (re.compile(r"\b(subscription|membership)\b"), Tag.SUBSCRIPTION),
    (re.compile(r"\b(restaurant|cafe|coffee|starbucks|doordash|grubhub|uber eats)\b"), Tag.DINING),
    (re.compile(r"\b(airline|hotel|airbnb|uber|lyft)\b"), Tag.TRAVEL),
    (re.compile(r"\b(amazon|target|walmart)\b"), Tag.SHOPPING),
    (re.compile(r"\b(transfer|xfer|trnsfr)\b"), Tag.TRANSFER_OTHER),
)

_INCOME_TEXT = re.compile(
    r"\b(payroll|direct dep\w*|salary|interest|dividends?|tax refund|irs treas\w*"
    r"|unemployment|social security|ssa treas\w*)\b"
)

# Known gap: brokerages not on this list are only caught through category labels
_BROKERAGE_TEXT = re.compile(
    r"\b(vanguard|fidelity|schwab|betterment|wealthfront|robinhood|e\*?trade|ameritrade"
    r"|merrill|edward jones|acorns|stash|m1 finance|empower|tiaa|interactive brokers)\b"
)

_CONTRIBUTION_TEXT = re.compile(r"\b(contribution|contrib|transfer|deposit|buy|purchase)\b")

_RECURRING_TEXT = re.compile(r"\b(monthly|subscription|membership|bill ?pay|recurring)\b")

_TRANSFER_TEXT = re.compile(r"\b(transfer|xfer|trnsfr)\b")


def _labels(transaction: Transaction) -> Tuple[str, ...]:
    labels = transaction.category_labels or ()
    return tuple(label for label in labels if isinstance(label, str) and label.strip())


def _tokens(label: str) -> List[str]:
    return [token for token in re.split(r"[^A-Z0-9]+", label.upper()) if token]


def _has_phrase(tokens: List[str], phrase: Tuple[str, ...]) -> bool:
    width = len(phrase)
    return any(tuple(tokens[i : i + width]) == phrase for i in range(len(tokens) - width + 1))


def _tag_label(label: str) -> CategoryTag:
    tokens = _tokens(label)
    if not tokens:
        return Tag.UNKNOWN

    normalized = "_".join(tokens)
    primary_tag = None
    for primary, tag in _PRIMARY_TAGS.items():
        if normalized == primary or normalized.startswith(primary + "_"):
            primary_tag = tag
            tokens = tokens[len(primary.split("_")) :]
            break

    for phrase, tag in _LABEL_RULES:
        if _has_phrase(tokens, phrase):
            return tag

    return primary_tag if primary_tag is not None else Tag.UNKNOWN


def _label_tag(transaction: Transaction) -> CategoryTag:
    for label in _labels(transaction):
        tag = _tag_label(label)
        if tag != Tag.UNKNOWN:
            return tag
    return Tag.UNKNOWN


def _text_tag(transaction: Transaction) -> CategoryTag:
    text = transaction.text
    for pattern, tag in _TEXT_RULES:
        if pattern.search(text):
            return tag
    return Tag.UNKNOWN


def _payment_rail_tag(transaction: Transaction) -> Optional[CategoryTag]:
    text = transaction.text
    for pattern, tag in _PAYMENT_RAIL_TEXT:
        if pattern.search(text):
            return tag
    label_tag = _label_tag(transaction)
    return label_tag if label_tag in PAYMENT_RAIL_TAGS else None


def tag_transaction(transaction: Transaction) -> CategoryTag:
    """Map provider labels, then merchant text, onto the closed tag vocabulary"""
    rail = _payment_rail_tag(transaction)
    if rail is not None:
        return rail

    tag = _label_tag(transaction)
    if tag != Tag.UNKNOWN:
        return tag
    return _text_tag(transaction)


def _has_transfer_label(transaction: Transaction) -> bool:
    return any("TRANSFER" in _tokens(label) for label in _labels(transaction))


def is_recurring(transaction: Transaction) -> bool:
    return bool(_RECURRING_TEXT.search(transaction.text))


def is_payment_rail(transaction: Transaction) -> bool:
    return _payment_rail_tag(transaction) is not None


# --- Context for transfer matching ---------------------------------------------


class ClassificationContext:
    """Full transaction set + accounts, used to pair both legs of a transfer"""

    def __init__(
        self,
        transactions: Iterable[Transaction] = (),
        accounts: Iterable[Account] = (),
        window_days: int = TRANSFER_MATCH_WINDOW_DAYS,
    ):
        self.window_days = window_days
        self._accounts: Dict[str, Account] = {account.id: account for account in accounts}
        self._by_amount: Dict[int, List[Transaction]] = defaultdict(list)
        for transaction in transactions:
            self._by_amount[abs(transaction.amount_cents)].append(transaction)
        self.has_mortgage_account = any(
            account.is_debt and account.is_mortgage for account in self._accounts.values()
        )

    def counterpart(self, transaction: Transaction) -> Optional[Transaction]:
        """Opposite-signed leg of equal size in another account, closest in time"""
        candidates = [
            other
            for other in self._by_amount.get(abs(transaction.amount_cents), ())
            if other.id != transaction.id
            and other.account_id != transaction.account_id
            and (other.amount_cents > 0) != (transaction.amount_cents > 0)
            and abs((other.date - transaction.date).days) <= self.window_days
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda other: (abs((other.date - transaction.date).days), other.id))

    def same_institution(self, first_account_id: str, second_account_id: str) -> bool:
        first = self._accounts.get(first_account_id)
        second = self._accounts.get(second_account_id)
        if first is None or second is None:
            return False
        if first.institution_id is None or second.institution_id is None:
            return False
        return first.institution_id == second.institution_id


_EMPTY_CONTEXT = ClassificationContext()


# --- Predicates ----------------------------------------------------------------


def is_investment_contribution(transaction: Transaction) -> bool:
    """Retirement/brokerage movement, in either direction"""
    if any(_tag_label(label) == Tag.TRANSFER_INVESTMENT for label in _labels(transaction)):
        return True

    text = transaction.text
    if _BROKERAGE_TEXT.search(text) and _CONTRIBUTION_TEXT.search(text):
        return True

    merchant = (transaction.merchant_name or "").lower()
    return transaction.is_outflow and bool(_BROKERAGE_TEXT.search(merchant))


def is_actual_income(transaction: Transaction) -> bool:
    """Inflow matching the explicit income vocabulary; transfers are never income"""
    if not transaction.is_inflow:
        return False
    if _has_transfer_label(transaction):
        return False
    if is_investment_contribution(transaction):
        return False

    tag = tag_transaction(transaction)
    if tag in INCOME_TAGS:
        return True
    if tag in PAYMENT_RAIL_TAGS:
        return False
    return bool(_INCOME_TEXT.search(transaction.text))


def transfer_status(
    transaction: Transaction, context: Optional[ClassificationContext] = None
) -> TransferStatus:
    """Internal only on an explicit account-transfer code or a same-institution pair.

    Transfer-like movement that cannot be paired inside one institution is left
    for the user to confirm.
    """
    context = context or _EMPTY_CONTEXT

    if is_investment_contribution(transaction):
        return TransferStatus.EXTERNAL

    tag = tag_transaction(transaction)
    if tag in PAYMENT_RAIL_TAGS:
        return TransferStatus.EXTERNAL
    if tag == Tag.TRANSFER_ACCOUNT:
        return TransferStatus.INTERNAL

    looks_like_transfer = (
        tag in TRANSFER_TAGS
        or _has_transfer_label(transaction)
        or bool(_TRANSFER_TEXT.search(transaction.text))
    )
    if not looks_like_transfer or tag in INCOME_TAGS or tag in DEBT_PAYMENT_TAGS:
        return TransferStatus.EXTERNAL

    counterpart = context.counterpart(transaction)
    if counterpart is not None and context.same_institution(
        transaction.account_id, counterpart.account_id
    ):
        return TransferStatus.INTERNAL
    return TransferStatus.NEEDS_REVIEW


def is_internal_transfer(
    transaction: Transaction, context: Optional[ClassificationContext] = None
) -> bool:
    return transfer_status(transaction, context) == TransferStatus.INTERNAL


def is_essential_expense(
    transaction: Transaction, context: Optional[ClassificationContext] = None
) -> bool:
    if not transaction.is_outflow or is_investment_contribution(transaction):
        return False
    if transfer_status(transaction, context) != TransferStatus.EXTERNAL:
        return False

    tag = tag_transaction(transaction)
    if tag in ESSENTIAL_TAGS:
        return True
    return tag == Tag.UNKNOWN and is_recurring(transaction)


def is_discretionary_expense(
    transaction: Transaction, context: Optional[ClassificationContext] = None
) -> bool:
    if not transaction.is_outflow or is_investment_contribution(transaction):
        return False
    if transfer_status(transaction, context) != TransferStatus.EXTERNAL:
        return False
    return not is_essential_expense(transaction, context)


# --- Categories and confidence -------------------------------------------------


def expense_category(transaction: Transaction) -> Optional[ExpenseCategory]:
    """Specific breakdown category, or None when nothing specific matched"""
    return _CATEGORY_BY_TAG.get(tag_transaction(transaction))


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def expense_confidence(transaction: Transaction, tag: Optional[CategoryTag] = None) -> float:
    tag = tag or tag_transaction(transaction)

    if transaction.category_confidence is not None:
        confidence = _clamp(transaction.category_confidence)
    elif tag != Tag.UNKNOWN and _label_tag(transaction) == tag:
        confidence = 0.75
    elif tag != Tag.UNKNOWN:
        confidence = 0.6
    else:
        confidence = 0.4

    if tag in UNAMBIGUOUS_TAGS:
        confidence = max(confidence, UNAMBIGUOUS_CONFIDENCE_FLOOR)
    if tag in PAYMENT_RAIL_TAGS:
        confidence = min(confidence, PAYMENT_RAIL_CONFIDENCE_CAP)
    return confidence


def _income_confidence(transaction: Transaction, tag: CategoryTag) -> float:
    if transaction.category_confidence is not None:
        return _clamp(transaction.category_confidence)
    return 0.9 if _label_tag(transaction) in INCOME_TAGS else 0.7


def classify(
    transaction: Transaction,
    context: Optional[ClassificationContext] = None,
    override: Optional[TransactionClass] = None,
) -> Classification:
    """Combine the predicates into a single verdict"""
    context = context or _EMPTY_CONTEXT
    tag = tag_transaction(transaction)

    if override is not None:
        category = None
        if override == TransactionClass.ESSENTIAL_EXPENSE:
            category = _CATEGORY_BY_TAG.get(tag, ExpenseCategory.OTHER)
        return Classification(kind=override, tag=tag, confidence=1.0, category=category)

    if transaction.amount_cents == 0:
        return Classification(kind=TransactionClass.EXCLUDED, tag=tag, confidence=0.0)

    if is_investment_contribution(transaction):
        confidence = max(0.9, transaction.category_confidence or 0.0)
        return Classification(
            kind=TransactionClass.INVESTMENT_CONTRIBUTION, tag=tag, confidence=_clamp(confidence)
        )

    status = transfer_status(transaction, context)
    if status == TransferStatus.INTERNAL:
        return Classification(kind=TransactionClass.INTERNAL_TRANSFER, tag=tag, confidence=0.95)
    if status == TransferStatus.NEEDS_REVIEW:
        return Classification(
            kind=TransactionClass.EXCLUDED,
            tag=tag,
            confidence=REVIEW_CONFIDENCE,
            needs_review=True,
        )

    if transaction.is_inflow:
        if is_actual_income(transaction):
            return Classification(
                kind=TransactionClass.INCOME, tag=tag, confidence=_income_confidence(transaction, tag)
            )
        # Refunds, reimbursements, unexplained credits: neither income nor expense
        return Classification(kind=TransactionClass.EXCLUDED, tag=tag, confidence=0.5)

    confidence = expense_confidence(transaction, tag)
    if tag in DEBT_PAYMENT_TAGS or (tag == Tag.MORTGAGE and context.has_mortgage_account):
        return Classification(kind=TransactionClass.DEBT_PAYMENT, tag=tag, confidence=confidence)

    if is_essential_expense(transaction, context):
        return Classification(
            kind=TransactionClass.ESSENTIAL_EXPENSE,
            tag=tag,
            confidence=confidence,
            category=_CATEGORY_BY_TAG.get(tag),
        )

    return Classification(kind=TransactionClass.DISCRETIONARY_EXPENSE, tag=tag, confidence=confidence)
