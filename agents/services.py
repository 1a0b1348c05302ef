"""
AGENTS App - Agent Services

Agent onboarding, configuration, billing of agent-collected cargo and
settlements.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.models import NotificationType, User, UserRole
from core.services import NotificationService
from finance.models import (
    BankAccountService, BankTransactionType, Invoice, InvoiceStatus, InvoiceType,
)
from finance.pricing import freight_item, quantize
from finance.services import CurrencyService, InvoiceService
from logistics.models import BillingParty
from logistics.services import requires_settlement
from .models import (
    AgentProfile, Settlement, SettlementItem, SettlementStatus, SettlementType,
)

logger = logging.getLogger(__name__)

CONFIG_FIELDS = ('company_name', 'can_have_consolidated_cargo', 'billing_currency', 'rate_per_kg', 'is_active')


class AgentService:

    @staticmethod
    @transaction.atomic
    def create_agent(email: str, full_name: str, password: str = None, phone: str = '',
                     regions: Iterable = (), created_by=None, **config) -> AgentProfile:
        """
        Create an AGENT user together with its profile.

        Args:
            email: Login email, must be unused
            full_name: Display name
            password: Optional; without it the account cannot log in yet
            regions: Region instances the agent collects from
            **config: Profile fields (billing_currency, rate_per_kg, ...)

        Raises:
            ValueError: If the email is already registered
        """
        if User.objects.filter(email__iexact=email).exists():
            raise ValueError(f"A user with email {email} already exists")

        user = User.objects.create_user(
            email=email,
            password=password,
            full_name=full_name,
            phone=phone,
            role=UserRole.AGENT,
        )
        profile = AgentProfile.objects.create(
            user=user,
            **{k: v for k, v in config.items() if k in CONFIG_FIELDS}
        )
        profile.regions.set(regions)

        logger.info(f"[AGENTS] Agent {email} created by {getattr(created_by, 'email', 'system')}")
        return profile

    @staticmethod
    def get_profile(user) -> AgentProfile:
        """Profile of an agent, created with defaults on first access."""
        if user.role != UserRole.AGENT:
            raise ValueError(f"{user.email} is not an agent")
        profile, _ = AgentProfile.objects.get_or_create(user=user)
        return profile

    @staticmethod
    @transaction.atomic
    def update_config(profile: AgentProfile, regions: Optional[Iterable] = None, **fields) -> AgentProfile:
        """Update profile fields; `regions` replaces the whole assignment when given."""
        changed = []
        for name, value in fields.items():
            if name in CONFIG_FIELDS:
                setattr(profile, name, value)
                changed.append(name)
        if changed:
            profile.save(update_fields=changed + ['updated_at'])
        if regions is not None:
            profile.regions.set(regions)

        logger.info(f"[AGENTS] Config updated for {profile.user.email}: {', '.join(changed) or 'regions'}")
        return profile

    @classmethod
    def full_config(cls, user) -> Dict:
        """Settings plus assigned regions, as shown in the agent drawer."""
        profile = cls.get_profile(user)
        return {
            'agent_id': str(user.id),
            'email': user.email,
            'full_name': user.full_name,
            'company_name': profile.company_name,
            'can_have_consolidated_cargo': profile.can_have_consolidated_cargo,
            'billing_currency': profile.billing_currency,
            'rate_per_kg': profile.rate_per_kg,
            'is_active': profile.is_active,
            'regions': [
                {'code': r.code, 'name': r.name, 'flag_emoji': r.flag_emoji}
                for r in profile.regions.order_by('display_order', 'name')
            ],
        }

    @classmethod
    def create_cargo_invoice(cls, agent, shipments: List, user=None,
                             rate_per_kg: Optional[Decimal] = None,
                             currency: Optional[str] = None,
                             extra_items: Iterable[Dict] = (),
                             notes: str = '') -> Invoice:
        """
        Bill an agent for cargo they consolidated.

        One freight line per shipment at the agent's rate per kg, followed by
        any extra lines (handling, transit, percentages...).

        Raises:
            ValueError: If the agent is inactive, no shipments are given or a
                shipment belongs to another agent
        """
        profile = cls.get_profile(agent)
        if not profile.is_active:
            raise ValueError(f"Agent {agent.email} is inactive")
        if not shipments:
            raise ValueError("Select at least one shipment to bill")

        foreign = [s.tracking_number for s in shipments if s.agent_id != agent.id]
        if foreign:
            raise ValueError(f"Shipments not collected by this agent: {', '.join(foreign)}")

        rate = profile.rate_per_kg if rate_per_kg is None else rate_per_kg
        items = [
            freight_item(
                s.total_weight_kg,
                rate,
                description=f"Freight {s.tracking_number} ({s.total_weight_kg} kg)",
            )
            for s in shipments
        ]
        items.extend(extra_items)

        invoice = InvoiceService.create_invoice(
            items,
            agent=agent,
            currency=currency or profile.billing_currency,
            invoice_type=InvoiceType.AGENT_CARGO,
            user=user,
            shipment=shipments[0] if len(shipments) == 1 else None,
            notes=notes,
        )
        logger.info(
            f"[AGENTS] Cargo invoice {invoice.invoice_number} for {agent.email}: "
            f"{len(shipments)} shipment(s), {invoice.currency} {invoice.amount}"
        )
        return invoice


# ===========================================
# SETTLEMENTS
# ===========================================

SETTLING_PARTIES = [party for party in BillingParty.values if requires_settlement(party)]

# Settlements that hold their invoices
LIVE_STATUSES = ['pending', 'approved', 'paid']
OPEN_STATUSES = ['pending', 'approved']

SETTLEMENT_TRANSITIONS = {
    'pending': ('approved', 'cancelled'),
    'approved': ('paid', 'cancelled'),
}


class SettlementError(ValueError):
    """Raised when a settlement cannot be created or moved to a status."""


class SettlementService:

    @staticmethod
    def settleable_invoices(agent):
        """
        Invoices addressed to an agent for cargo the agent collects payment on.

        Consolidated invoices without a single shipment are included.
        """
        return Invoice.objects.filter(agent=agent).filter(
            Q(shipment__isnull=True) | Q(shipment__billing_party__in=SETTLING_PARTIES)
        ).exclude(status=InvoiceStatus.CANCELLED)

    @classmethod
    def unsettled_invoices(cls, agent):
        """Paid settleable invoices not held by a live settlement, newest first."""
        return cls.settleable_invoices(agent).filter(
            status=InvoiceStatus.PAID
        ).exclude(
            settlement_items__settlement__status__in=LIVE_STATUSES
        ).order_by('-created_at')

    @classmethod
    @transaction.atomic
    def create_settlement(cls, agent, settlement_type: str, invoices: Iterable = (),
                          amount: Optional[Decimal] = None, currency: Optional[str] = None,
                          period_start=None, period_end=None, notes: str = '',
                          user=None) -> Settlement:
        """
        Open a pending settlement with an agent.

        A collection from the agent lists unsettled invoices; each is valued
        in the settlement currency and the total is their sum. A payment to
        the agent carries a plain amount and no invoices.

        Args:
            agent: AGENT user
            settlement_type: collection_from_agent or payment_to_agent
            invoices: Invoices to collect
            amount: Total of a payment to the agent
            currency: Defaults to the agent's billing currency

        Raises:
            SettlementError: If an invoice cannot be settled, the amount is
                missing or the period ends before it starts
        """
        profile = AgentService.get_profile(agent)
        currency = (currency or profile.billing_currency).upper()
        if period_start and period_end and period_start > period_end:
            raise SettlementError("Settlement period ends before it starts")

        rates = CurrencyService.rates_map()
        invoice_ids = [invoice.pk for invoice in invoices]
        locked = list(
            Invoice.objects.select_for_update().filter(pk__in=invoice_ids).order_by('created_at')
        )

        if settlement_type == SettlementType.COLLECTION_FROM_AGENT:
            if not locked:
                raise SettlementError("Select at least one invoice to settle")
            settleable = set(
                cls.unsettled_invoices(agent).filter(pk__in=invoice_ids).values_list('pk', flat=True)
            )
            refused = [invoice.invoice_number for invoice in locked if invoice.pk not in settleable]
            if refused:
                raise SettlementError(f"Invoices cannot be settled with this agent: {', '.join(refused)}")
            amounts = [
                CurrencyService.convert(invoice.amount, invoice.currency, currency, rates)
                for invoice in locked
            ]
            total = sum(amounts, Decimal('0.00'))
        elif settlement_type == SettlementType.PAYMENT_TO_AGENT:
            if locked:
                raise SettlementError("A payment to an agent does not list invoices")
            if amount is None or amount <= 0:
                raise SettlementError("Settlement amount must be positive")
            amounts = []
            total = quantize(Decimal(str(amount)))
        else:
            raise SettlementError(f"Unknown settlement type: {settlement_type}")

        settlement = Settlement.objects.create(
            settlement_number=Settlement.get_next_settlement_number(),
            agent=agent,
            settlement_type=settlement_type,
            period_start=period_start,
            period_end=period_end,
            total_amount=total,
            currency=currency,
            amount_in_tzs=CurrencyService.convert_to_tzs(total, currency, rates),
            notes=notes,
            created_by=user,
        )
        SettlementItem.objects.bulk_create([
            SettlementItem(settlement=settlement, invoice=invoice, amount=value, currency=currency)
            for invoice, value in zip(locked, amounts)
        ])

        logger.info(
            f"[AGENTS] Settlement {settlement.settlement_number} ({settlement_type}) for "
            f"{agent.email}: {currency} {total}, {len(locked)} invoice(s)"
        )
        return settlement

    @staticmethod
    @transaction.atomic
    def update_status(settlement: Settlement, new_status: str, user=None,
                      bank_account=None, payment_reference: str = '') -> Settlement:
        """
        Move a settlement along pending -> approved -> paid, or cancel it.

        Paying with a bank account credits a collection or debits a payment,
        converted into the account currency. A cancelled settlement releases
        its invoices.

        Raises:
            SettlementError: On a transition the lifecycle does not allow
            InsufficientFundsError: If the account cannot cover a payment
        """
        settlement = Settlement.objects.select_for_update().select_related('agent').get(pk=settlement.pk)
        if new_status not in SETTLEMENT_TRANSITIONS.get(settlement.status, ()):
            raise SettlementError(
                f"Settlement {settlement.settlement_number} cannot go from "
                f"{settlement.status} to {new_status}"
            )

        now = timezone.now()
        if new_status == SettlementStatus.APPROVED:
            settlement.approved_by = user
            settlement.approved_at = now
        elif new_status == SettlementStatus.PAID:
            if bank_account is not None:
                amount = CurrencyService.convert(
                    settlement.total_amount, settlement.currency, bank_account.currency
                )
                description = f"Settlement {settlement.settlement_number}: {settlement.agent.display_name}"
                if settlement.settlement_type == SettlementType.COLLECTION_FROM_AGENT:
                    BankAccountService.credit(
                        bank_account, amount, BankTransactionType.AGENT_COLLECTION,
                        description=description, reference=settlement.settlement_number, user=user,
                    )
                else:
                    BankAccountService.debit(
                        bank_account, amount, BankTransactionType.AGENT_PAYMENT,
                        description=description, reference=settlement.settlement_number, user=user,
                    )
                settlement.bank_account = bank_account
            settlement.paid_at = now
            settlement.payment_reference = payment_reference

        settlement.status = new_status
        settlement.save()

        label = SettlementStatus(new_status).label
        NotificationService.notify(
            settlement.agent,
            f"Settlement {label}",
            f"Settlement {settlement.settlement_number} "
            f"({settlement.currency} {settlement.total_amount:,.2f}) is now {label.lower()}.",
            notification_type=NotificationType.INFO,
        )
        logger.info(
            f"[AGENTS] Settlement {settlement.settlement_number} -> {new_status} "
            f"by {getattr(user, 'email', 'system')}"
        )
        return settlement

    @classmethod
    def agent_balance(cls, agent) -> Dict:
        """
        What an agent and the company owe each other, in the agent's billing currency.

        A positive net_balance means the agent owes the company. Invoices the
        agent has not collected yet are reported but not counted in it.
        """
        profile = AgentService.get_profile(agent)
        base = profile.billing_currency
        rates = CurrencyService.rates_map()

        def total(rows):
            return sum(
                (CurrencyService.convert(amount, currency, base, rates) for amount, currency in rows),
                Decimal('0.00'),
            )

        open_settlements = Settlement.objects.filter(agent=agent, status__in=OPEN_STATUSES)
        collected = total(cls.unsettled_invoices(agent).values_list('amount', 'currency'))
        in_settlement = total(
            open_settlements.filter(settlement_type=SettlementType.COLLECTION_FROM_AGENT)
            .values_list('total_amount', 'currency')
        )
        owed_to_agent = total(
            open_settlements.filter(settlement_type=SettlementType.PAYMENT_TO_AGENT)
            .values_list('total_amount', 'currency')
        )
        uncollected = total(
            (invoice.balance_due, invoice.currency)
            for invoice in cls.settleable_invoices(agent).filter(
                status__in=[InvoiceStatus.PENDING, InvoiceStatus.PARTIALLY_PAID]
            )
        )

        return {
            'agent_id': str(agent.id),
            'agent_name': agent.display_name,
            'base_currency': base,
            'collected_unsettled': collected,
            'collections_in_settlement': in_settlement,
            'owed_to_agent': owed_to_agent,
            'uncollected': uncollected,
            'net_balance': collected + in_settlement - owed_to_agent,
        }

    @classmethod
    def all_balances(cls) -> List[Dict]:
        profiles = AgentProfile.objects.select_related('user').filter(is_active=True)
        return [cls.agent_balance(profile.user) for profile in profiles]
