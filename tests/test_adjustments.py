"""Tests for audited administrative adjustments."""

from decimal import Decimal
from uuid import uuid4

import pytest

from thrift_ledger.errors import AdjustmentError, NotFoundError
from thrift_ledger.models import AdjustmentHistory, Employee, Loan, MonthlyTransaction
from thrift_ledger.services.adjustments import AdjustmentService
from tests.factories import (
    count,
    create_employee,
    create_loan,
    create_transaction,
    guaranteed_loans,
    surety_ids,
)

ACTOR = "secretary@society.example"


@pytest.fixture
def service(session, ledger_config) -> AdjustmentService:
    return AdjustmentService(session, ledger_config)


class TestEmployeeAdjustments:
    """Test salary and thrift edits."""

    async def test_create_employee(self, session, service):
        employee = await service.create_employee(
            name=" Ravi ", actor=ACTOR, emp_code="19", salary=Decimal("30000")
        )

        assert employee.name == "Ravi"
        assert employee.salary == Decimal("30000")
        history = await service.history(employee.employee_id)
        assert [entry.action_type for entry in history] == ["create_employee"]

    async def test_create_employee_duplicate_code(self, session, service):
        await create_employee(session, "Ravi", "19")
        await session.commit()

        with pytest.raises(AdjustmentError):
            await service.create_employee(name="Sita", actor=ACTOR, emp_code="19")

    async def test_adjust_salary(self, session, service):
        employee = await create_employee(session, "Ravi", "19", salary="30000")
        await session.commit()

        await service.adjust_salary(employee.employee_id, Decimal("32000"), ACTOR)

        assert employee.salary == Decimal("32000")
        [entry] = await service.history(employee.employee_id)
        assert entry.action_type == "update_salary"
        assert entry.target_field == "salary"
        assert entry.old_value == "30000.00"
        assert entry.new_value == "32000.00"
        assert entry.actor == ACTOR
        assert entry.remarks == "Salary adjusted from 30000.00 to 32000.00"

    async def test_negative_salary_rejected(self, session, service):
        employee = await create_employee(session, "Ravi", "19")
        await session.commit()

        with pytest.raises(AdjustmentError):
            await service.adjust_salary(employee.employee_id, Decimal("-1"), ACTOR)

    async def test_adjust_thrift_records_each_field(self, session, service):
        employee = await create_employee(
            session, "Ravi", "19", thrift_contribution="500", thrift_balance="9000"
        )
        await session.commit()

        await service.adjust_thrift(
            employee.employee_id, ACTOR, contribution=Decimal("600"), balance=Decimal("9500")
        )

        assert employee.thrift_contribution == Decimal("600")
        assert employee.thrift_balance == Decimal("9500")
        history = await service.history(employee.employee_id)
        assert {(e.action_type, e.target_field) for e in history} == {
            ("update_thrift", "thrift_contribution"),
            ("adjust_balance", "thrift_balance"),
        }

    async def test_unknown_employee(self, service):
        with pytest.raises(NotFoundError):
            await service.adjust_salary(uuid4(), Decimal("100"), ACTOR)


class TestLoanAdjustments:
    """Test loan edits, grants, closure and deletion."""

    async def test_top_up_raises_balance_by_difference(self, session, service):
        employee = await create_employee(session, "Ravi", "19")
        loan = await create_loan(session, employee, loan_amount="10000", balance="4000")
        await session.commit()

        await service.adjust_loan(employee.employee_id, ACTOR, loan_amount=Decimal("15000"))

        assert loan.loan_amount == Decimal("15000")
        assert loan.remaining_balance == Decimal("9000")
        [entry] = await service.history(employee.employee_id)
        assert entry.action_type == "create_loan"
        assert entry.loan_id == loan.loan_id
        assert entry.remarks == "Loan top-up: 5000.00. New total: 15000.00"

    async def test_adjust_loan_without_active_loan(self, session, service):
        employee = await create_employee(session, "Ravi", "19")
        await session.commit()

        with pytest.raises(AdjustmentError):
            await service.adjust_loan(employee.employee_id, ACTOR, emi=Decimal("500"))

    async def test_create_loan_with_sureties(self, session, service):
        borrower = await create_employee(session, "Ravi", "19")
        a = await create_employee(session, "Anil", "21")
        b = await create_employee(session, "Bala", "22")
        await session.commit()

        loan = await service.create_loan(
            borrower.employee_id,
            ACTOR,
            loan_amount=Decimal("50000"),
            interest_rate=Decimal("12"),
            emi=Decimal("2500"),
            surety_ids=[a.employee_id, b.employee_id],
        )

        assert loan.remaining_balance == Decimal("50000")
        assert loan.surety_emp_codes == ["21", "22"]
        assert borrower.active_loan_id == loan.loan_id
        assert borrower.loan_status == "Loan"
        assert await surety_ids(session, loan.loan_id) == [a.employee_id, b.employee_id]
        assert await guaranteed_loans(session, b.employee_id) == {loan.loan_id}

    async def test_create_loan_rejects_second_active_loan(self, session, service):
        borrower = await create_employee(session, "Ravi", "19")
        await create_loan(session, borrower)
        await session.commit()

        with pytest.raises(AdjustmentError):
            await service.create_loan(
                borrower.employee_id, ACTOR, Decimal("1000"), Decimal("12"), Decimal("100")
            )

    async def test_create_loan_rejects_self_surety(self, session, service):
        borrower = await create_employee(session, "Ravi", "19")
        await session.commit()

        with pytest.raises(AdjustmentError):
            await service.create_loan(
                borrower.employee_id,
                ACTOR,
                Decimal("1000"),
                Decimal("12"),
                Decimal("100"),
                surety_ids=[borrower.employee_id],
            )

    async def test_unknown_surety_rolls_back(self, session, service):
        """A failed grant leaves no loan, link or history behind."""
        borrower = await create_employee(session, "Ravi", "19")
        await session.commit()

        with pytest.raises(NotFoundError):
            await service.create_loan(
                borrower.employee_id,
                ACTOR,
                Decimal("1000"),
                Decimal("12"),
                Decimal("100"),
                surety_ids=[uuid4()],
            )

        await session.refresh(borrower)
        assert borrower.active_loan_id is None
        assert await count(session, Loan) == 0
        assert await count(session, AdjustmentHistory) == 0

    async def test_close_loan(self, session, service):
        borrower = await create_employee(session, "Ravi", "19")
        surety = await create_employee(session, "Anil", "21")
        loan = await service.create_loan(
            borrower.employee_id, ACTOR, Decimal("1000"), Decimal("12"), Decimal("100"),
            surety_ids=[surety.employee_id],
        )

        await service.close_loan(loan.loan_id, ACTOR)

        assert loan.status == "closed"
        assert loan.remaining_balance == Decimal("0")
        assert borrower.active_loan_id is None
        assert borrower.loan_status == "No Loan"
        assert await guaranteed_loans(session, surety.employee_id) == set()
        history = await service.history(borrower.employee_id)
        assert "close_loan" in [entry.action_type for entry in history]

        with pytest.raises(AdjustmentError):
            await service.close_loan(loan.loan_id, ACTOR)

    async def test_delete_loan(self, session, service):
        borrower = await create_employee(session, "Ravi", "19")
        surety = await create_employee(session, "Anil", "21")
        loan = await service.create_loan(
            borrower.employee_id, ACTOR, Decimal("1000"), Decimal("12"), Decimal("100"),
            surety_ids=[surety.employee_id],
        )
        loan_id = loan.loan_id

        await service.delete_loan(loan_id, ACTOR)

        assert await session.get(Loan, loan_id) is None
        assert borrower.active_loan_id is None
        assert await guaranteed_loans(session, surety.employee_id) == set()
        history = await service.history(borrower.employee_id)
        deleted = [entry for entry in history if entry.action_type == "delete_loan"]
        assert deleted[0].old_value["loan_amount"] == "1000.00"

    async def test_delete_employee_detaches_loans(self, session, service):
        employee = await create_employee(session, "Ravi", "19")
        loan = await create_loan(session, employee)
        await create_transaction(session, employee, "2025-10", thrift_deduction="500")
        await session.commit()
        employee_id = employee.employee_id

        await service.delete_employee(employee_id, ACTOR)

        assert await session.get(Employee, employee_id) is None
        assert await count(session, MonthlyTransaction) == 0
        await session.refresh(loan)
        assert loan.borrower_id is None
        assert await count(session, AdjustmentHistory, AdjustmentHistory.employee_id == employee_id) == 1


class TestYearlyDividend:
    """Test yearly thrift dividend distribution."""

    async def test_distribution(self, session, service):
        """Surplus of 500 over 4000 of thrift pays 0.125 per rupee."""
        ravi = await create_employee(session, "Ravi", "19", thrift_balance="1000")
        sita = await create_employee(session, "Sita", "20", thrift_balance="3000")
        await create_loan(session, ravi, balance="2000")
        await session.commit()

        result = await service.distribute_yearly_dividend(
            "2025", ACTOR,
            share_capital=Decimal("500"),
            bank_balance=Decimal("2500"),
            cash_in_hand=Decimal("500"),
        )

        assert result.rate_per_rupee == Decimal("0.125")
        assert result.society_assets == Decimal("5000")
        assert result.society_capital == Decimal("4500")
        assert ravi.thrift_balance == Decimal("1125")
        assert sita.thrift_balance == Decimal("3375")
        assert [share.dividend for share in result.shares] == [Decimal("125"), Decimal("375")]
        history = await service.history(sita.employee_id)
        assert history[0].action_type == "yearly_thrift_update"
        assert history[0].new_value == "3375.00"

    async def test_no_thrift(self, session, service):
        await create_employee(session, "Ravi", "19")
        await session.commit()

        with pytest.raises(AdjustmentError):
            await service.distribute_yearly_dividend(
                "2025", ACTOR, Decimal("0"), Decimal("0"), Decimal("0")
            )


class TestSyncLoans:
    """Test on-demand loan repair."""

    async def test_recreates_loan_for_flagged_employee(self, session, service):
        """A year of principal is the balance; the rate comes from the interest paid."""
        flagged = await create_employee(session, "Ravi", "19", loan_status="Loan")
        await create_transaction(
            session,
            flagged,
            "2025-09",
            loan_emi="1035",
            principal_repayment="900",
            interest_payment="135",
        )
        unflagged = await create_employee(session, "Sita", "20")
        await create_transaction(session, unflagged, "2025-09", loan_emi="1000")
        await session.commit()

        report = await service.sync_loans()

        assert report.created == 1
        loan = await session.get(Loan, flagged.active_loan_id)
        assert loan.remaining_balance == Decimal("10800")
        assert loan.interest_rate == Decimal("15.0")
        assert unflagged.active_loan_id is None

    async def test_single_employee(self, session, service):
        employee = await create_employee(session, "Sita", "20")
        await create_transaction(session, employee, "2025-09", loan_emi="1000")
        await session.commit()

        report = await service.sync_loans(employee.employee_id)

        assert report.created == 1
        loan = await session.get(Loan, employee.active_loan_id)
        assert loan.remaining_balance == Decimal("12000")
        assert loan.interest_rate == Decimal("12")
