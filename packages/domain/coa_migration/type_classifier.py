"""
Account Type Classifier - Rule-based canonical type detection (fast path)

Maps a legacy account's free-text type, name and balance sign onto a
CanonicalAccountType using an ordered vocabulary cascade.

NO AI CALLS - Pure rule-based logic. Never fails.

Rule order (first match wins):
- Asset nouns          → ASSET             (0.95)
- Liability nouns      → LIABILITY         (0.95)
- Equity nouns         → EQUITY            (0.95)
- Revenue nouns        → REVENUE           (0.90)
- Cost-of-sales nouns  → COST_OF_SALES     (0.92)
- Expense nouns        → TAX / INDIRECT / DIRECT expense (0.94 / 0.88 / 0.85)
- Credit balance       → REVENUE           (0.90)
- Debit balance        → expense sub-cascade
- Nothing matched      → DIRECT_EXPENSE    (0.50, needs review)
"""
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple, Union

from packages.domain.coa_migration.schemas import CanonicalAccountType, TypeClassification
from packages.domain.coa_migration.text_utils import normalize


Balance = Union[Decimal, float, int]


@dataclass(frozen=True)
class TypeRule:
    """
    Disjunction of substring checks against the legacy type and name.

    Terms are matched against normalized text, so they must be lowercase
    and punctuation-free.
    """
    name: str
    account_type: CanonicalAccountType
    confidence: float
    rationale: str
    type_terms: Tuple[str, ...] = ()
    name_terms: Tuple[str, ...] = ()

    def matches(self, type_text: str, name_text: str) -> bool:
        return (any(term in type_text for term in self.type_terms)
                or any(term in name_text for term in self.name_terms))


class AccountTypeClassifier:
    """
    Classifies legacy accounts into canonical account types.

    Confidence is a fixed constant per rule, reflecting how unambiguous
    that rule's vocabulary is.
    """

    # Below this confidence the fallback path sends an account to manual review
    REVIEW_THRESHOLD = 0.75

    PRIMARY_RULES = (
        TypeRule(
            name="asset",
            account_type=CanonicalAccountType.ASSET,
            confidence=0.95,
            rationale="Common asset account patterns detected",
            type_terms=("asset", "fixed assets", "plant", "sundry debtors"),
            name_terms=("cash", "bank", "receivable", "inventory", "equipment", "machinery", "debtors"),
        ),
        TypeRule(
            name="liability",
            account_type=CanonicalAccountType.LIABILITY,
            confidence=0.95,
            rationale="Common liability account patterns detected",
            type_terms=("liability", "sundry creditors"),
            name_terms=("payable", "creditors", "loan", "accrued", "debt"),
        ),
        TypeRule(
            name="equity",
            account_type=CanonicalAccountType.EQUITY,
            confidence=0.95,
            rationale="Common equity account patterns detected",
            type_terms=("equity",),
            name_terms=("capital", "retained", "owner", "stock"),
        ),
        TypeRule(
            name="revenue",
            account_type=CanonicalAccountType.REVENUE,
            confidence=0.90,
            rationale="Revenue patterns detected",
            type_terms=("revenue", "income"),
            name_terms=("sales", "revenue", "income"),
        ),
        TypeRule(
            name="cost_of_sales",
            account_type=CanonicalAccountType.COST_OF_SALES,
            confidence=0.92,
            rationale="Cost of sales patterns detected",
            name_terms=("cost of", "cogs", "cost of goods", "food cost", "beverage cost", "materials"),
        ),
    )

    # Gate for the expense sub-cascade
    EXPENSE_RULE = TypeRule(
        name="expense",
        account_type=CanonicalAccountType.DIRECT_EXPENSE,
        confidence=0.85,
        rationale="General expense patterns detected",
        type_terms=("expense",),
        name_terms=("expense", "wages", "salary", "rent", "utilities"),
    )

    EXPENSE_SUBTYPE_RULES = (
        TypeRule(
            name="tax_expense",
            account_type=CanonicalAccountType.TAX_EXPENSE,
            confidence=0.94,
            rationale="Tax-related expense detected",
            name_terms=("tax", "fica", "payroll tax"),
        ),
        TypeRule(
            name="indirect_expense",
            account_type=CanonicalAccountType.INDIRECT_EXPENSE,
            confidence=0.88,
            rationale="Indirect expense patterns detected",
            name_terms=("marketing", "insurance", "office", "administrative"),
        ),
    )

    CREDIT_BALANCE_RULE = TypeRule(
        name="credit_balance",
        account_type=CanonicalAccountType.REVENUE,
        confidence=0.90,
        rationale="Credit balance suggests a revenue account",
    )

    DEBIT_BALANCE_RULE = TypeRule(
        name="debit_balance",
        account_type=CanonicalAccountType.DIRECT_EXPENSE,
        confidence=0.85,
        rationale="Debit balance suggests an expense account",
    )

    DEFAULT_RULE = TypeRule(
        name="default",
        account_type=CanonicalAccountType.DIRECT_EXPENSE,
        confidence=0.50,
        rationale="Default mapping - requires manual review",
    )

    # Conventional legacy numbering: leading digit identifies the account class
    CODE_PREFIX_TYPES = {
        "1": CanonicalAccountType.ASSET,
        "2": CanonicalAccountType.LIABILITY,
        "3": CanonicalAccountType.EQUITY,
        "4": CanonicalAccountType.REVENUE,
        "5": CanonicalAccountType.COST_OF_SALES,
        "6": CanonicalAccountType.DIRECT_EXPENSE,
        "7": CanonicalAccountType.INDIRECT_EXPENSE,
        "8": CanonicalAccountType.TAX_EXPENSE,
        "9": CanonicalAccountType.EXTRAORDINARY_EXPENSE,
    }
    CODE_PREFIX_CONFIDENCE = 0.75

    def classify(
        self,
        original_type: Optional[str],
        account_name: Optional[str],
        balance: Optional[Balance] = None,
    ) -> TypeClassification:
        """
        Classify a legacy account into a canonical account type.

        Args:
            original_type: Legacy type text (may be empty)
            account_name: Legacy account name
            balance: Signed balance, used only when no vocabulary matches

        Returns:
            TypeClassification with type, confidence and rationale
        """
        type_text = normalize(original_type)
        name_text = normalize(account_name)

        for rule in self.PRIMARY_RULES:
            if rule.matches(type_text, name_text):
                return self._result(rule)

        if self.EXPENSE_RULE.matches(type_text, name_text):
            return self._result(self._expense_subtype(name_text, self.EXPENSE_RULE))

        if balance is not None and balance < 0:
            return self._result(self.CREDIT_BALANCE_RULE)

        if balance is not None and balance > 0:
            return self._result(self._expense_subtype(name_text, self.DEBIT_BALANCE_RULE))

        return self._result(self.DEFAULT_RULE)

    def classify_by_code(self, original_code: Optional[str]) -> Optional[TypeClassification]:
        """
        Infer type from the leading digit of a conventionally numbered legacy code.

        Returns None when the code has no usable leading digit.
        """
        digits = re.sub(r"\D", "", original_code or "")
        if not digits:
            return None

        account_type = self.CODE_PREFIX_TYPES.get(digits[0])
        if account_type is None:
            return None

        return TypeClassification(
            account_type=account_type,
            confidence=self.CODE_PREFIX_CONFIDENCE,
            rationale="Account type inferred from legacy code prefix",
            mapping_rule="code_prefix",
        )

    def _expense_subtype(self, name_text: str, general_rule: TypeRule) -> TypeRule:
        for rule in self.EXPENSE_SUBTYPE_RULES:
            if rule.matches("", name_text):
                return rule
        return general_rule

    @staticmethod
    def _result(rule: TypeRule) -> TypeClassification:
        return TypeClassification(
            account_type=rule.account_type,
            confidence=rule.confidence,
            rationale=rule.rationale,
            mapping_rule=rule.name,
        )


# Singleton instance
account_type_classifier = AccountTypeClassifier()
