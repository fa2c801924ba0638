"""
Tax Report Service.

WHAT: Aggregates a user's income transactions into BIR quarterly returns
and an annual summary.

WHY: Every completed invoice payment emits an income transaction with its
PHP equivalent. Filing needs those amounts per quarter, taxed with the
same calculator that the /taxes/calculate endpoint exposes.

HOW:
- calculate_quarterly_return is pure: it filters a list of transactions
- TaxReportService loads the transactions through TransactionDAO
- The annual summary taxes the full-year gross once and compares it with
  the quarterly payments already made
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from chaching.core.exceptions import ValidationError
from chaching.core.money import ZERO, round_money, sum_money, to_decimal
from chaching.dao.transaction import TransactionDAO
from chaching.models.transaction import Transaction, TransactionStatus, TransactionType
from chaching.services.tax_service import (
    IncomeType,
    calculate_php_tax,
    quarter_period,
)

logger = logging.getLogger(__name__)


@dataclass
class QuarterlyTaxReturn:
    """
    Figures of one quarterly income tax return, in PHP.

    balance_due is max(0, income_tax - previous_payments).
    """

    quarter: int
    year: int
    period_start: date
    period_end: date
    due_date: date
    gross_income: Decimal
    taxable_income: Decimal
    income_tax: Decimal
    vat_payable: Decimal
    percentage_tax: Decimal
    withholding_tax: Decimal
    previous_payments: Decimal
    balance_due: Decimal
    transaction_count: int = 0


@dataclass
class AnnualTaxSummary:
    """
    A year of income taxed as a whole, in PHP.

    refund_due and additional_tax_due compare the annual income tax with
    the quarterly payments; at most one of them is non-zero.
    """

    year: int
    total_gross_income: Decimal
    total_taxable_income: Decimal
    total_income_tax: Decimal
    total_vat: Decimal
    total_percentage_tax: Decimal
    total_withholding_tax: Decimal
    net_income: Decimal
    effective_rate: Decimal
    quarterly_returns: List[QuarterlyTaxReturn]
    total_quarterly_payments: Decimal
    refund_due: Decimal
    additional_tax_due: Decimal


def counts_as_income(transaction: Transaction) -> bool:
    """Completed income; pending and cancelled entries are not taxed yet."""
    return (
        transaction.type == TransactionType.INCOME
        and transaction.status == TransactionStatus.COMPLETED
    )


def calculate_quarterly_return(
    quarter: int,
    year: int,
    transactions: Sequence[Transaction],
    previous_payments: Decimal = ZERO,
    income_type: IncomeType = IncomeType.PROFESSIONAL,
    is_vat_registered: bool = False,
) -> QuarterlyTaxReturn:
    """
    Compute a quarterly return from a list of transactions.

    Transactions outside the quarter and anything that is not completed
    income are ignored, so callers may pass a whole year.

    Args:
        quarter: 1-4
        year: Calendar year
        transactions: Candidate transactions
        previous_payments: Tax already paid for this period
        income_type: Drives the withholding disclosure
        is_vat_registered: VAT instead of percentage tax

    Returns:
        QuarterlyTaxReturn

    Raises:
        ValidationError: Invalid quarter or negative previous payments
    """
    period = quarter_period(quarter, year)
    previous_payments = round_money(previous_payments)
    if previous_payments < 0:
        raise ValidationError(
            message="Previous payments cannot be negative",
            previous_payments=previous_payments,
        )

    included = [t for t in transactions if counts_as_income(t) and period.includes(t.date)]
    gross = round_money(sum_money(to_decimal(t.amount_php) for t in included))

    calculation = calculate_php_tax(gross, income_type=income_type, is_vat_registered=is_vat_registered)

    return QuarterlyTaxReturn(
        quarter=quarter,
        year=year,
        period_start=period.period_start,
        period_end=period.period_end,
        due_date=period.due_date,
        gross_income=gross,
        taxable_income=calculation.taxable_income,
        income_tax=calculation.income_tax,
        vat_payable=calculation.vat_amount,
        percentage_tax=calculation.percentage_tax,
        withholding_tax=calculation.withholding_tax,
        previous_payments=previous_payments,
        balance_due=max(ZERO, calculation.income_tax - previous_payments),
        transaction_count=len(included),
    )


def calculate_annual_summary(
    year: int,
    transactions: Sequence[Transaction],
    quarterly_payments: Optional[Sequence[Decimal]] = None,
    income_type: IncomeType = IncomeType.PROFESSIONAL,
    is_vat_registered: bool = False,
) -> AnnualTaxSummary:
    """
    Annual summary of a year's income.

    WHY: Graduated rates apply to annual income, so taxing each quarter
    separately understates the liability. The quarterly returns are kept
    for reference; the totals come from one full-year calculation.

    Args:
        year: Calendar year
        transactions: Candidate transactions
        quarterly_payments: Tax paid for Q1..Q4 (missing quarters count as 0)
        income_type: Drives the withholding disclosure
        is_vat_registered: VAT instead of percentage tax

    Returns:
        AnnualTaxSummary

    Raises:
        ValidationError: More than four payments or a negative payment
    """
    payments = [round_money(p) for p in (quarterly_payments or [])]
    if len(payments) > 4:
        raise ValidationError(message="At most four quarterly payments", count=len(payments))
    if any(p < 0 for p in payments):
        raise ValidationError(message="Quarterly payments cannot be negative")
    payments += [round_money(ZERO)] * (4 - len(payments))

    quarterly_returns = [
        calculate_quarterly_return(
            quarter,
            year,
            transactions,
            previous_payments=payments[quarter - 1],
            income_type=income_type,
            is_vat_registered=is_vat_registered,
        )
        for quarter in (1, 2, 3, 4)
    ]

    total_gross = sum_money(r.gross_income for r in quarterly_returns)
    annual = calculate_php_tax(total_gross, income_type=income_type, is_vat_registered=is_vat_registered)
    total_payments = sum_money(payments)

    return AnnualTaxSummary(
        year=year,
        total_gross_income=total_gross,
        total_taxable_income=annual.taxable_income,
        total_income_tax=annual.income_tax,
        total_vat=annual.vat_amount,
        total_percentage_tax=annual.percentage_tax,
        total_withholding_tax=annual.withholding_tax,
        net_income=annual.net_income,
        effective_rate=annual.effective_tax_rate,
        quarterly_returns=quarterly_returns,
        total_quarterly_payments=total_payments,
        refund_due=max(ZERO, total_payments - annual.income_tax),
        additional_tax_due=max(ZERO, annual.income_tax - total_payments),
    )


class TaxReportService:
    """
    Service for tax reports built from stored transactions.

    WHAT: Loads a user's transactions and hands them to the pure report
    functions.

    HOW: Request-scoped; one instance per session and owner.
    """

    def __init__(self, session: AsyncSession, user_id: str):
        """
        Initialize TaxReportService.

        Args:
            session: Async database session
            user_id: Owner id whose transactions are reported
        """
        self.session = session
        self.user_id = user_id
        self.transaction_dao = TransactionDAO(session)

    async def get_quarterly_return(
        self,
        quarter: int,
        year: int,
        previous_payments: Decimal = ZERO,
        income_type: IncomeType = IncomeType.PROFESSIONAL,
        is_vat_registered: bool = False,
    ) -> QuarterlyTaxReturn:
        """
        Quarterly return for the owner.

        Raises:
            ValidationError: Invalid quarter
        """
        period = quarter_period(quarter, year)
        transactions = await self.transaction_dao.get_between(
            self.user_id,
            period.period_start,
            period.period_end,
            type=TransactionType.INCOME,
        )
        tax_return = calculate_quarterly_return(
            quarter,
            year,
            transactions,
            previous_payments=previous_payments,
            income_type=income_type,
            is_vat_registered=is_vat_registered,
        )
        logger.info(
            "Quarterly return calculated",
            extra={
                "user_id": self.user_id,
                "quarter": quarter,
                "year": year,
                "gross_income": str(tax_return.gross_income),
            },
        )
        return tax_return

    async def get_annual_summary(
        self,
        year: int,
        quarterly_payments: Optional[Sequence[Decimal]] = None,
        income_type: IncomeType = IncomeType.PROFESSIONAL,
        is_vat_registered: bool = False,
    ) -> AnnualTaxSummary:
        """Annual summary for the owner."""
        transactions = await self.transaction_dao.get_for_year(self.user_id, year)
        return calculate_annual_summary(
            year,
            transactions,
            quarterly_payments=quarterly_payments,
            income_type=income_type,
            is_vat_registered=is_vat_registered,
        )
