"""
Materialization graph — payment → order as nodnod nodes.

Every decision is a node that either validates its state or raises
NodeError; the polymorphic outcome picks the one branch that survived.

Architecture:
    MaterializeSpec (injected)
         │
         ▼
    SpecNode
         │
         ▼
    FetchLinkNode
         │
         ├── LinkedNode ─────────────────────────────┐  (replay)
         ├── LedgerErrorNode ────────────────────────┤
         └── UnlinkedNode                            │
                 │                                   │
                 ▼                                   │
             IntentNode                              │
                 ├── ProviderDownNode ───────────────┤
                 ├── UnpaidNode ─────────────────────┤
                 └── PaidNode                        │
                         │                           │
                         ▼                           │
                     SourceNode                      │
                         ├── UnresolvedSourceNode ───┤
                         └── ResolvedSourceNode ─────┤  (commit)
                                                     ▼
                                   MaterializeOutcome (@polymorphic)
                                                     │
                                                     ▼
                                              FinalResultNode

The link is read before the processor is called, so a replay never touches
the payment provider.

Note: no 'from __future__ import annotations' here; nodnod resolves
dependencies from runtime type hints.
"""

from dataclasses import dataclass

import structlog
from nodnod import NodeError, polymorphic, case

from storefront import graph as G
from storefront._errors import CheckoutError, Errors
from storefront._money import to_minor_units
from storefront._types import Result, Ok, Error, OwnerKey
from storefront.cart import CartStore
from storefront.catalog import Catalog
from storefront.checkout import CheckoutLineSnapshot, CheckoutSessionManager
from storefront.payments import PaymentAdapter, PaymentIntent
from storefront.pricing import PricingPolicy, line_total, subtotal_of
from storefront.orders._ledger import OrderLedger, PaymentLink
from storefront.orders._types import (
    FromCart,
    FromSession,
    MaterializedOrder,
    OrderDraft,
    OrderSource,
)

log = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Input: MaterializeSpec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MaterializeSpec:
    """One materialization request plus the collaborators it needs."""

    payment_intent_id: str
    source: OrderSource
    owner: OwnerKey
    email: str | None
    ledger: OrderLedger
    payments: PaymentAdapter
    sessions: CheckoutSessionManager
    carts: CartStore
    catalog: Catalog
    pricing: PricingPolicy


# ═══════════════════════════════════════════════════════════════════════════════
# Entry + link lookup
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SpecNode:
    def __init__(self, spec: MaterializeSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: MaterializeSpec) -> "SpecNode":
        return cls(spec)


@G.node
class FetchLinkNode:
    """Reads the payment link for the intent."""

    def __init__(
        self,
        link: PaymentLink | None,
        spec: MaterializeSpec,
        error: CheckoutError | None = None,
    ) -> None:
        self.link = link
        self.spec = spec
        self.error = error

    @classmethod
    async def __compose__(cls, spec_node: SpecNode) -> "FetchLinkNode":
        spec = spec_node.spec
        match await spec.ledger.find_link(spec.payment_intent_id):
            case Ok(link):
                return cls(link, spec)
            case Error(err):
                return cls(None, spec, error=err)


@G.node
class LinkedNode:
    """Validates: an order already exists for this payment."""

    def __init__(self, link: PaymentLink, spec: MaterializeSpec) -> None:
        self.link = link
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchLinkNode) -> "LinkedNode":
        if fetch.link is None:
            raise NodeError("No link")
        return cls(fetch.link, fetch.spec)


@G.node
class LedgerErrorNode:
    """Validates: the link read itself failed."""

    def __init__(self, error: CheckoutError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, fetch: FetchLinkNode) -> "LedgerErrorNode":
        if fetch.error is None:
            raise NodeError("Ledger readable")
        return cls(fetch.error)


@G.node
class UnlinkedNode:
    """Validates: ledger readable and no order for this payment yet."""

    def __init__(self, spec: MaterializeSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, fetch: FetchLinkNode) -> "UnlinkedNode":
        if fetch.error is not None:
            raise NodeError("Ledger error")
        if fetch.link is not None:
            raise NodeError("Already linked")
        return cls(fetch.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Payment intent
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class IntentNode:
    """Retrieves the live intent from the processor."""

    def __init__(
        self,
        intent: PaymentIntent | None,
        spec: MaterializeSpec,
        error: CheckoutError | None = None,
    ) -> None:
        self.intent = intent
        self.spec = spec
        self.error = error

    @classmethod
    async def __compose__(cls, unlinked: UnlinkedNode) -> "IntentNode":
        spec = unlinked.spec
        match await spec.payments.retrieve_intent(spec.payment_intent_id):
            case Ok(intent):
                return cls(intent, spec)
            case Error(err):
                return cls(None, spec, error=err)


@G.node
class ProviderDownNode:
    """Validates: the intent could not be retrieved."""

    def __init__(self, error: CheckoutError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, node: IntentNode) -> "ProviderDownNode":
        if node.error is None:
            raise NodeError("Intent retrieved")
        return cls(node.error)


@G.node
class UnpaidNode:
    """Validates: intent exists but has not succeeded."""

    def __init__(self, intent: PaymentIntent) -> None:
        self.intent = intent

    @classmethod
    def __compose__(cls, node: IntentNode) -> "UnpaidNode":
        if node.intent is None:
            raise NodeError("No intent")
        if node.intent.succeeded:
            raise NodeError("Paid")
        return cls(node.intent)


@G.node
class PaidNode:
    """Validates: intent succeeded."""

    def __init__(self, intent: PaymentIntent, spec: MaterializeSpec) -> None:
        self.intent = intent
        self.spec = spec

    @classmethod
    def __compose__(cls, node: IntentNode) -> "PaidNode":
        if node.intent is None or not node.intent.succeeded:
            raise NodeError("Not paid")
        return cls(node.intent, node.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Order contents
# ═══════════════════════════════════════════════════════════════════════════════


async def _draft_from_session(
    spec: MaterializeSpec, source: FromSession
) -> Result[OrderDraft, CheckoutError]:
    """
    Snapshot → draft.

    Note: session status is not checked beyond consumption. The payment has
    been captured, so an expired or abandoned quote still becomes an order.
    """
    match await spec.sessions.get(source.checkout_session_id, spec.owner):
        case Error(err):
            return Error(err)
        case Ok(checkout):
            pass

    if checkout.order_id is not None:
        return Error(Errors.session_consumed(checkout.id, checkout.order_id))

    return Ok(
        OrderDraft(
            payment_intent_id=spec.payment_intent_id,
            owner=spec.owner,
            email=spec.email,
            currency=checkout.currency,
            lines=checkout.items,
            subtotal=checkout.subtotal,
            tax=checkout.tax,
            shipping=checkout.shipping,
            discount=checkout.discount,
            total=checkout.total,
            checkout_session_id=checkout.id,
        )
    )


async def _draft_from_cart(spec: MaterializeSpec) -> Result[OrderDraft, CheckoutError]:
    """Live cart → draft, priced now."""
    lines = await spec.carts.lines(spec.owner)
    if not lines:
        return Error(Errors.empty_cart())

    currency = spec.pricing.currency
    variants = await spec.catalog.get_variants(line.variant_id for line in lines)
    missing = [line.variant_id for line in lines if line.variant_id not in variants]
    if missing:
        return Error(Errors.not_found("variant", ", ".join(missing)))

    snapshot = tuple(
        CheckoutLineSnapshot(
            product_id=line.product_id,
            variant_id=line.variant_id,
            name=variants[line.variant_id].name,
            unit_price=variants[line.variant_id].price,
            quantity=line.quantity,
            line_total=line_total(variants[line.variant_id].price, line.quantity, currency),
        )
        for line in lines
    )
    quote = spec.pricing.quote(
        subtotal_of(((s.unit_price, s.quantity) for s in snapshot), currency)
    )
    return Ok(
        OrderDraft(
            payment_intent_id=spec.payment_intent_id,
            owner=spec.owner,
            email=spec.email,
            currency=currency,
            lines=snapshot,
            subtotal=quote.subtotal,
            tax=quote.tax,
            shipping=quote.shipping,
            discount=quote.discount,
            total=quote.total,
        )
    )


@G.node
class SourceNode:
    """Resolves the order contents from a session snapshot or the live cart."""

    def __init__(
        self,
        draft: OrderDraft | None,
        spec: MaterializeSpec,
        error: CheckoutError | None = None,
    ) -> None:
        self.draft = draft
        self.spec = spec
        self.error = error

    @classmethod
    async def __compose__(cls, paid: PaidNode) -> "SourceNode":
        spec = paid.spec
        match spec.source:
            case FromSession() as source:
                resolved = await _draft_from_session(spec, source)
            case FromCart():
                resolved = await _draft_from_cart(spec)

        match resolved:
            case Ok(draft):
                expected = to_minor_units(draft.total, draft.currency)
                if paid.intent.amount != expected:
                    log.warning(
                        "payment_amount_mismatch",
                        payment_intent_id=spec.payment_intent_id,
                        intent_amount=paid.intent.amount,
                        order_amount=expected,
                    )
                return cls(draft, spec)
            case Error(err):
                return cls(None, spec, error=err)


@G.node
class UnresolvedSourceNode:
    """Validates: contents could not be resolved."""

    def __init__(self, error: CheckoutError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, node: SourceNode) -> "UnresolvedSourceNode":
        if node.error is None:
            raise NodeError("Resolved")
        return cls(node.error)


@G.node
class ResolvedSourceNode:
    """Validates: a draft is ready to commit."""

    def __init__(self, draft: OrderDraft, spec: MaterializeSpec) -> None:
        self.draft = draft
        self.spec = spec

    @classmethod
    def __compose__(cls, node: SourceNode) -> "ResolvedSourceNode":
        if node.draft is None:
            raise NodeError("Unresolved")
        return cls(node.draft, node.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutcomeOk:
    order: MaterializedOrder


@dataclass(frozen=True)
class OutcomeError:
    error: CheckoutError


type Outcome = OutcomeOk | OutcomeError


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class MaterializeOutcome:
    """
    Router — exactly one case has all of its dependencies satisfied.
    """

    @case
    def ledger_error(cls, node: LedgerErrorNode) -> Outcome:
        return OutcomeError(node.error)

    @case
    async def replay(cls, node: LinkedNode) -> Outcome:
        """Existing order for this payment, returned unchanged."""
        match await node.spec.ledger.load(node.link.order_id):
            case Ok(existing):
                log.info(
                    "materialize_replayed",
                    payment_intent_id=node.link.payment_intent_id,
                    order_id=node.link.order_id,
                )
                return OutcomeOk(
                    MaterializedOrder(existing.order, existing.items, replayed=True)
                )
            case Error(err):
                return OutcomeError(err)

    @case
    def provider_down(cls, node: ProviderDownNode) -> Outcome:
        return OutcomeError(node.error)

    @case
    def unpaid(cls, node: UnpaidNode) -> Outcome:
        return OutcomeError(
            Errors.payment_not_complete(node.intent.id, node.intent.status.value)
        )

    @case
    def unresolved(cls, node: UnresolvedSourceNode) -> Outcome:
        return OutcomeError(node.error)

    @case
    async def commit(cls, node: ResolvedSourceNode) -> Outcome:
        match await node.spec.ledger.commit(node.draft):
            case Ok(materialized):
                return OutcomeOk(materialized)
            case Error(err):
                return OutcomeError(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalResultNode:
    def __init__(self, outcome: Outcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: MaterializeOutcome) -> "FinalResultNode":
        return cls(outcome.value)

    def to_result(self) -> Result[MaterializedOrder, CheckoutError]:
        match self.outcome:
            case OutcomeOk(order=order):
                return Ok(order)
            case OutcomeError(error=error):
                return Error(error)


async def run_materialize(spec: MaterializeSpec) -> Result[MaterializedOrder, CheckoutError]:
    """Decide and commit via the graph. Post-commit work is the caller's."""
    node = await G.run(FinalResultNode).inject(spec)
    return node.to_result()


__all__ = (
    "MaterializeSpec",
    "Outcome",
    "OutcomeOk",
    "OutcomeError",
    "SpecNode",
    "FetchLinkNode",
    "LinkedNode",
    "LedgerErrorNode",
    "UnlinkedNode",
    "IntentNode",
    "ProviderDownNode",
    "UnpaidNode",
    "PaidNode",
    "SourceNode",
    "UnresolvedSourceNode",
    "ResolvedSourceNode",
    "MaterializeOutcome",
    "FinalResultNode",
    "run_materialize",
)
