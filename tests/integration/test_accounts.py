"""
Integration tests - AccountRegistry against an in-memory database.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from bizledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    AccountUpdateDTO,
    BillCreateDTO,
    DeletionOutcome,
    DocumentItemDTO,
    InvoiceCreateDTO,
)
from bizledger.application.services import AccountRegistry
from bizledger.core.context import ServiceContext
from bizledger.domain.exceptions import ConcurrencyError, ConflictError, NotFoundError
from bizledger.domain.value_objects import AccountType, TransactionStatus
from bizledger.infrastructure.database.repositories import AuditRepository
from bizledger.infrastructure.database.unit_of_work import UnitOfWork

OTHER_ORG_ID = UUID("00000000-0000-0000-0000-000000000002")


class TestCreateAccount:

    def test_created_account_is_listed_with_zero_balance(self, registry):
        created = registry.create(
            AccountCreateDTO(code="1100", name="Bank", account_type=AccountType.ASSET, description="Main")
        )
        listed = registry.list()
        assert [a.id for a in listed] == [created.id]
        account = listed[0]
        assert (account.code, account.name, account.account_type, account.description) == (
            "1100", "Bank", AccountType.ASSET, "Main",
        )
        assert account.balance == Decimal("0")
        assert account.is_active is True
        assert account.currency == "USD"
        assert account.created_by == "tester"

    def test_duplicate_code_rejected(self, registry, make_account):
        make_account("1000")
        with pytest.raises(ConflictError, match="already exists"):
            registry.create(AccountCreateDTO(code="1000", name="Dup", account_type=AccountType.ASSET))

    def test_same_code_in_other_organization(self, registry, make_account, uow, settings):
        make_account("1000")
        other = AccountRegistry(uow, ServiceContext(OTHER_ORG_ID, "someone"), settings)
        other.create(AccountCreateDTO(code="1000", name="Other cash", account_type=AccountType.ASSET))
        assert len(registry.list()) == 1
        assert len(other.list()) == 1

    def test_audit_entry_written(self, registry, session, context):
        created = registry.create(AccountCreateDTO(code="2000", name="Payables", account_type=AccountType.LIABILITY))
        entries = AuditRepository(session, context.organization_id, context.user_id).for_entity(created.id)
        assert [e.action for e in entries] == ["CREATE"]


class TestListAccounts:

    def test_ordered_by_code_and_filtered(self, registry, make_account):
        make_account("5000", AccountType.EXPENSE)
        make_account("1000", AccountType.ASSET, "Cash")
        make_account("1200", AccountType.ASSET, "Receivables")

        assert [a.code for a in registry.list()] == ["1000", "1200", "5000"]
        assert [a.code for a in registry.list(account_type=AccountType.ASSET)] == ["1000", "1200"]
        assert [a.code for a in registry.list(search="receiv")] == ["1200"]

    def test_exclude_inactive(self, registry, make_account):
        account = make_account("1000")
        registry.update(account.id, AccountUpdateDTO(is_active=False))
        assert registry.list(include_inactive=False) == []


class TestUpdateAccount:

    def test_patch_fields(self, registry, make_account):
        account = make_account("1000")
        updated = registry.update(account.id, AccountUpdateDTO(name="Petty cash", description="Drawer"))
        assert updated.name == "Petty cash"
        assert updated.description == "Drawer"
        assert updated.version == account.version + 1

    def test_code_change_rechecks_uniqueness(self, registry, make_account):
        make_account("1000")
        other = make_account("1100")
        with pytest.raises(ConflictError):
            registry.update(other.id, AccountUpdateDTO(code="1000"))

    def test_stale_version_rejected(self, registry, make_account):
        account = make_account("1000")
        registry.update(account.id, AccountUpdateDTO(name="Renamed"))
        with pytest.raises(ConcurrencyError):
            registry.update(account.id, AccountUpdateDTO(name="Again"), expected_version=account.version)

    def test_type_change_blocked_when_referenced(self, registry, make_transaction, cash_account):
        make_transaction(status=TransactionStatus.POSTED)
        with pytest.raises(ConflictError, match="type"):
            registry.update(cash_account.id, AccountUpdateDTO(account_type=AccountType.EXPENSE))

    def test_type_change_allowed_when_unreferenced(self, registry, make_account):
        account = make_account("1000", AccountType.ASSET)
        updated = registry.update(account.id, AccountUpdateDTO(account_type=AccountType.EXPENSE))
        assert updated.account_type == AccountType.EXPENSE

    def test_unknown_account(self, registry):
        with pytest.raises(NotFoundError):
            registry.update(uuid4(), AccountUpdateDTO(name="x"))


class TestDeleteAccount:

    def test_unreferenced_account_is_hard_deleted(self, registry, make_account):
        account = make_account("1000")
        assert registry.delete(account.id).outcome == DeletionOutcome.DELETED
        with pytest.raises(NotFoundError):
            registry.get(account.id)
        assert registry.delete(account.id).outcome == DeletionOutcome.UNCHANGED

    def test_referenced_account_is_archived_and_repeat_is_noop(self, registry, make_transaction, cash_account):
        make_transaction()
        first = registry.delete(cash_account.id)
        assert first.outcome == DeletionOutcome.ARCHIVED
        assert registry.get(cash_account.id).is_active is False

        second = registry.delete(cash_account.id)
        assert second.outcome == DeletionOutcome.UNCHANGED
        assert second.success is True

    def test_account_used_only_by_document_items_is_archived(self, registry, billing, revenue_account):
        invoice = billing.create_invoice(InvoiceCreateDTO(
            customer_name="Acme Corp",
            issue_date=date(2026, 1, 15),
            due_date=date(2026, 2, 14),
            items=[DocumentItemDTO(description="Consulting", unit_price=Decimal("100"), account_id=revenue_account.id)],
        ))

        assert registry.delete(revenue_account.id).outcome == DeletionOutcome.ARCHIVED
        assert registry.get(revenue_account.id).is_active is False
        assert billing.get_invoice(invoice.id).items[0].account_id == revenue_account.id

    def test_account_used_by_bill_items_keeps_its_type(self, registry, billing, make_account):
        expense = make_account("5000", AccountType.EXPENSE, "Supplies")
        billing.create_bill(BillCreateDTO(
            vendor_name="Paper Co",
            issue_date=date(2026, 1, 15),
            due_date=date(2026, 2, 14),
            items=[DocumentItemDTO(description="Paper", unit_price=Decimal("12.50"), account_id=expense.id)],
        ))
        with pytest.raises(ConflictError, match="type"):
            registry.update(expense.id, AccountUpdateDTO(account_type=AccountType.ASSET))


class TestBalances:

    def test_only_posted_transactions_count(self, registry, make_transaction, cash_account, revenue_account):
        make_transaction("100", "100", TransactionStatus.POSTED)
        make_transaction("40", "40", TransactionStatus.DRAFT)

        assert registry.get_balance(cash_account.id) == Decimal("100.00")
        assert registry.get_balance(revenue_account.id) == Decimal("100.00")

    def test_voided_transactions_do_not_count(self, registry, ledger, make_transaction, cash_account):
        txn = make_transaction("75", "75", TransactionStatus.POSTED)
        ledger.void_transaction(txn.id)
        assert registry.get_balance(cash_account.id) == Decimal("0.00")

    def test_list_reports_balances(self, registry, make_transaction):
        make_transaction("100", "100", TransactionStatus.POSTED)
        balances = {a.code: a.balance for a in registry.list()}
        assert balances == {"1000": Decimal("100.00"), "4000": Decimal("100.00")}

    def test_committed_accounts_visible_to_new_session(self, session_factory, context, settings, make_account):
        make_account("1000")
        other_session = session_factory()
        try:
            other = AccountRegistry(UnitOfWork(other_session), context, settings)
            assert [a.code for a in other.list()] == ["1000"]
        finally:
            other_session.close()
